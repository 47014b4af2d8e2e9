"""
Configuration for the board store.

All configuration is read from environment variables by the host process.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Unknown dialects are rejected by validate(), not at first query

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep env var names stable; hosts set them in their deployment files
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .dialect import DIALECTS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    """Board store storage configuration.

    Attributes:
        dialect: SQL dialect name (sqlite, postgres, mysql)
        table_prefix: Prefix prepended to every board store table
        sqlite_path: SQLite database file (sqlite dialect only)
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    dialect: str = "sqlite"
    table_prefix: str = ""
    sqlite_path: str = "/var/lib/boards/boards.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -64000  # 64MB

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            dialect=os.getenv("BOARDS_DB_DIALECT", "sqlite").lower(),
            table_prefix=os.getenv("BOARDS_TABLE_PREFIX", ""),
            sqlite_path=os.getenv("BOARDS_SQLITE_PATH", "/var/lib/boards/boards.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-64000")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class StoreConfig:
    """Complete board store configuration.

    Attributes:
        storage: Storage configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.storage.dialect not in DIALECTS:
            raise ValueError(
                f"Invalid BOARDS_DB_DIALECT '{self.storage.dialect}'. "
                f"Must be one of: {', '.join(sorted(DIALECTS))}"
            )

        if self.storage.dialect == "sqlite" and not self.storage.sqlite_path:
            raise ValueError("BOARDS_SQLITE_PATH is required when BOARDS_DB_DIALECT=sqlite")

        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must not be negative")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Board store configuration loaded",
            extra={
                "dialect": self.storage.dialect,
                "table_prefix": self.storage.table_prefix,
                "sqlite_path": self.storage.sqlite_path
                if self.storage.dialect == "sqlite"
                else None,
                "log_level": self.observability.log_level,
            },
        )
