"""
Logging setup for hosts embedding the board store.

The store itself only logs through module loggers; the host decides where
records go. setup_logging() installs one stream handler on the root logger,
formatting records as JSON (json_log_formatter) or plain text.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import StoreConfig


def setup_logging(config: StoreConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Board store configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
