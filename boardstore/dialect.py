"""
SQL dialect capabilities for the board store.

A Dialect is injected into every store. It owns the syntax that differs
between backends:
- Placeholder style, applied once to a fully assembled statement (rebind)
- JSON property existence predicate
- Upsert statement shape
- JSON encoding of properties columns
- Encoding and parsing of history insert_at timestamps
- Whether UNION members may be parenthesised

Statements are always written with the neutral "?" marker. Only rebind()
turns them into the backend's syntax, so a UNION made of several
independently built branches keeps its arguments in order.

Invariants:
    - rebind() never rewrites a "?" inside a quoted SQL literal
    - Dialects are stateless and safe to share between stores
    - Text timestamps from encode_timestamp() sort lexically in time order

How to change safely:
    - A new backend subclasses Dialect and registers itself in DIALECTS
    - Keep property_exists() argument-only, never interpolate the name
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import CodecError
from .query import LIKE_ESCAPE, escape_like

logger = logging.getLogger(__name__)

NEUTRAL_PLACEHOLDER = "?"


class PlaceholderStyle(Enum):
    """Placeholder syntaxes produced by rebind()."""

    QMARK = "qmark"  # ?
    NUMERIC = "numeric"  # $1, $2, ...
    FORMAT = "format"  # %s


class Dialect:
    """Generic dialect.

    Used directly it produces "?" placeholders, an ON CONFLICT upsert and a
    plain substring test for JSON property names. Backends override what
    they do differently.
    """

    name = "generic"
    placeholder_style = PlaceholderStyle.QMARK
    parenthesize_union = True
    timestamp_formats: tuple[str, ...] = (
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M:%S%z",
    )

    def rebind(self, sql: str) -> str:
        """Rewrite neutral "?" markers into this dialect's placeholders.

        Must be called once, on the complete statement.

        Args:
            sql: Statement written with "?" markers

        Returns:
            Statement ready for the driver
        """
        if self.placeholder_style == PlaceholderStyle.QMARK:
            return sql

        out: list[str] = []
        position = 0
        in_literal = False
        for char in sql:
            if char == "'":
                in_literal = not in_literal
                out.append(char)
            elif char == "%" and self.placeholder_style == PlaceholderStyle.FORMAT:
                out.append("%%")
            elif char == NEUTRAL_PLACEHOLDER and not in_literal:
                position += 1
                if self.placeholder_style == PlaceholderStyle.NUMERIC:
                    out.append(f"${position}")
                else:
                    out.append("%s")
            else:
                out.append(char)
        return "".join(out)

    def property_exists(self, column: str, name: str) -> tuple[str, list[Any]]:
        """Predicate testing that a JSON object column has a top-level key.

        Args:
            column: Qualified JSON column, e.g. "b.properties"
            name: Property name

        Returns:
            (sql fragment with "?" markers, arguments)
        """
        return f"{column} LIKE ? ESCAPE '{LIKE_ESCAPE}'", [f'%"{escape_like(name)}"%']

    def upsert(
        self,
        table: str,
        values: dict[str, Any],
        conflict_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> tuple[str, list[Any]]:
        """Build an insert that updates update_columns on key conflict.

        Args:
            table: Target table
            values: Column -> value for the inserted row
            conflict_columns: Columns of the unique key
            update_columns: Columns overwritten when the row exists

        Returns:
            (statement with "?" markers, arguments)
        """
        columns = list(values)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT ({', '.join(conflict_columns)}) DO UPDATE SET "
            + ", ".join(f"{c} = EXCLUDED.{c}" for c in update_columns)
        )
        return sql, [values[c] for c in columns]

    def encode_json(self, value: Any) -> str:
        """Serialize a properties value for storage."""
        return json.dumps(value, separators=(",", ":"))

    def encode_timestamp(self, moment: datetime) -> Any:
        """Value bound to history insert_at columns (UTC, microseconds)."""
        return moment.astimezone(timezone.utc).strftime(self.timestamp_formats[0])

    def parse_timestamp(self, value: Any) -> datetime:
        """Decode an insert_at value into an aware UTC datetime.

        Drivers may already return datetime objects; text is parsed with
        the dialect formats.

        Raises:
            CodecError: If the value matches no known format
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)

        text = value.decode() if isinstance(value, bytes) else str(value or "")
        for fmt in self.timestamp_formats:
            try:
                parsed = datetime.strptime(text, fmt)
            except ValueError:
                continue
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)

        raise CodecError(
            f"cannot parse datetime '{text}' for {self.name} history",
            field_name="insert_at",
        )


class PostgresDialect(Dialect):
    """PostgreSQL: numbered placeholders and native jsonb operators."""

    name = "postgres"
    placeholder_style = PlaceholderStyle.NUMERIC

    def property_exists(self, column: str, name: str) -> tuple[str, list[Any]]:
        return f"{column}->? IS NOT NULL", [name]

    def encode_json(self, value: Any) -> str:
        # jsonb rejects the NUL escape
        return super().encode_json(value).replace("\\u0000", "")

    def encode_timestamp(self, moment: datetime) -> Any:
        # timestamptz column, bound natively by the driver
        return moment.astimezone(timezone.utc)


class SqliteDialect(Dialect):
    """SQLite: "?" placeholders, JSON1 extraction, ON CONFLICT upsert."""

    name = "sqlite"
    placeholder_style = PlaceholderStyle.QMARK
    # Compound SELECT members cannot be parenthesised in SQLite
    parenthesize_union = False

    def property_exists(self, column: str, name: str) -> tuple[str, list[Any]]:
        return f"JSON_EXTRACT({column}, ?) IS NOT NULL", [json_path(name)]


class MysqlDialect(Dialect):
    """MySQL: "%s" placeholders, JSON_EXTRACT, ON DUPLICATE KEY upsert."""

    name = "mysql"
    placeholder_style = PlaceholderStyle.FORMAT
    timestamp_formats = (
        "%Y-%m-%d %H:%M:%S.%f",
        "%Y-%m-%d %H:%M:%S",
    )

    def property_exists(self, column: str, name: str) -> tuple[str, list[Any]]:
        return f"JSON_EXTRACT({column}, ?) IS NOT NULL", [json_path(name)]

    def upsert(
        self,
        table: str,
        values: dict[str, Any],
        conflict_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> tuple[str, list[Any]]:
        # The unique key itself decides the conflict, conflict_columns is implied
        columns = list(values)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            "ON DUPLICATE KEY UPDATE "
            + ", ".join(f"{c} = ?" for c in update_columns)
        )
        args = [values[c] for c in columns] + [values[c] for c in update_columns]
        return sql, args


def json_path(name: str) -> str:
    """JSON path selecting a top-level key, quoted so dots stay literal."""
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'$."{escaped}"'


DIALECTS: dict[str, type[Dialect]] = {
    "postgres": PostgresDialect,
    "sqlite": SqliteDialect,
    "mysql": MysqlDialect,
}


def get_dialect(name: str) -> Dialect:
    """Create the dialect registered under name.

    Raises:
        ValueError: If no dialect has that name
    """
    try:
        dialect_cls = DIALECTS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Invalid dialect '{name}'. Must be one of: {', '.join(sorted(DIALECTS))}"
        ) from None
    logger.debug("Using SQL dialect", extra={"dialect": dialect_cls.name})
    return dialect_cls()
