"""
Database access for the board store.

This module provides the transaction boundary used by every store:
- Database: any DB-API 2.0 driver, given a connection factory
- SqliteDatabase: file-backed SQLite with explicit BEGIN IMMEDIATE
- execute()/query(): run a neutral-marker statement through the dialect
- operation(): maps driver failures to StoreOperationError

Invariants:
    - A transaction commits only when its block exits without an exception
    - Any exception rolls the transaction back and is re-raised
    - No in-process locking; isolation is the storage engine's job
    - Statements reach the driver only after dialect.rebind()

How to change safely:
    - Schema changes must touch boards and boards_history together
    - Keep schema_sql() idempotent (IF NOT EXISTS everywhere)
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .dialect import Dialect
from .errors import BoardStoreError, StoreOperationError

logger = logging.getLogger(__name__)


def get_millis() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


def _unicode_lower(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).lower()


class Database:
    """Transaction boundary over a DB-API 2.0 driver.

    Example:
        >>> import pymysql
        >>> db = Database(lambda: pymysql.connect(host="db", database="boards"))
        >>> with db.transaction() as conn:
        ...     ...
    """

    def __init__(self, connect: Callable[[], Any]) -> None:
        """Initialize the database.

        Args:
            connect: Factory returning a new DB-API connection
        """
        self._connect = connect

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Open a connection and close it afterwards."""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Run the block in one transaction.

        Yields:
            Connection bound to the open transaction
        """
        with self.connection() as conn:
            self._begin(conn)
            try:
                yield conn
            except Exception:
                self._rollback(conn)
                raise
            self._commit(conn)

    def _begin(self, conn: Any) -> None:
        # DB-API connections open a transaction implicitly
        pass

    def _commit(self, conn: Any) -> None:
        conn.commit()

    def _rollback(self, conn: Any) -> None:
        conn.rollback()


class SqliteDatabase(Database):
    """File-backed SQLite database.

    Connections are created per transaction in autocommit mode and the
    transaction is opened explicitly with BEGIN IMMEDIATE, so writers
    serialize in SQLite rather than in this process.

    Example:
        >>> db = SqliteDatabase("/var/lib/boards/boards.db")
        >>> db.initialize()
    """

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the SQLite database.

        Args:
            path: Database file path
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        super().__init__(self._open)
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages

    def _open(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            # The builtin lower() only folds ASCII
            conn.create_function("lower", 1, _unicode_lower, deterministic=True)
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _begin(self, conn: sqlite3.Connection) -> None:
        conn.execute("BEGIN IMMEDIATE")

    def _commit(self, conn: sqlite3.Connection) -> None:
        conn.execute("COMMIT")

    def _rollback(self, conn: sqlite3.Connection) -> None:
        conn.execute("ROLLBACK")

    def initialize(self, table_prefix: str = "") -> None:
        """Create the board tables if they don't exist."""
        with self.connection() as conn:
            conn.executescript(schema_sql(table_prefix))
        logger.info(f"Initialized board store database: {self.path}")


def schema_sql(table_prefix: str = "") -> str:
    """SQLite DDL for the four board store tables."""
    p = table_prefix
    return f"""
        -- Live boards, one row per board
        CREATE TABLE IF NOT EXISTS {p}boards (
            id TEXT NOT NULL PRIMARY KEY,
            team_id TEXT NOT NULL,
            channel_id TEXT,
            created_by TEXT,
            modified_by TEXT,
            type TEXT NOT NULL,
            minimum_role TEXT NOT NULL DEFAULT '',
            title TEXT NOT NULL DEFAULT '',
            description TEXT NOT NULL DEFAULT '',
            icon TEXT NOT NULL DEFAULT '',
            show_description BOOLEAN NOT NULL DEFAULT 0,
            is_template BOOLEAN NOT NULL DEFAULT 0,
            template_version INTEGER NOT NULL DEFAULT 0,
            properties TEXT,
            card_properties TEXT,
            create_at INTEGER NOT NULL DEFAULT 0,
            update_at INTEGER NOT NULL DEFAULT 0,
            delete_at INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_{p}boards_team_id ON {p}boards(team_id, is_template);
        CREATE INDEX IF NOT EXISTS idx_{p}boards_channel_id ON {p}boards(channel_id);

        -- Append-only board snapshots
        CREATE TABLE IF NOT EXISTS {p}boards_history (
            id TEXT NOT NULL,
            insert_at TEXT NOT NULL,
            team_id TEXT NOT NULL,
            channel_id TEXT,
            created_by TEXT,
            modified_by TEXT,
            type TEXT NOT NULL,
            minimum_role TEXT NOT NULL DEFAULT '',
            title TEXT,
            description TEXT,
            icon TEXT,
            show_description BOOLEAN,
            is_template BOOLEAN,
            template_version INTEGER NOT NULL DEFAULT 0,
            properties TEXT,
            card_properties TEXT,
            create_at INTEGER,
            update_at INTEGER,
            delete_at INTEGER
        );

        CREATE INDEX IF NOT EXISTS idx_{p}boards_history_id ON {p}boards_history(id, insert_at);

        -- Explicit memberships
        CREATE TABLE IF NOT EXISTS {p}board_members (
            board_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            roles TEXT NOT NULL DEFAULT '',
            scheme_admin BOOLEAN NOT NULL DEFAULT 0,
            scheme_editor BOOLEAN NOT NULL DEFAULT 0,
            scheme_commenter BOOLEAN NOT NULL DEFAULT 0,
            scheme_viewer BOOLEAN NOT NULL DEFAULT 0,
            PRIMARY KEY (board_id, user_id)
        );

        CREATE INDEX IF NOT EXISTS idx_{p}board_members_user_id ON {p}board_members(user_id);

        -- Append-only membership audit
        CREATE TABLE IF NOT EXISTS {p}board_members_history (
            board_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            action TEXT NOT NULL,
            insert_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_{p}board_members_history_member
            ON {p}board_members_history(board_id, user_id, insert_at);
    """


@contextmanager
def operation(name: str, entity_id: str | None = None) -> Iterator[None]:
    """Map unexpected failures inside the block to StoreOperationError.

    Board store errors (NotFound included) pass through untouched.
    """
    try:
        yield
    except BoardStoreError:
        raise
    except Exception as e:
        logger.error(
            f"{name} ERROR: {e}",
            extra={"operation": name, "entity_id": entity_id},
        )
        raise StoreOperationError(name, entity_id, e) from e


def execute(conn: Any, dialect: Dialect, sql: str, args: Sequence[Any] = ()) -> int:
    """Run a write statement.

    Returns:
        Number of affected rows
    """
    cursor = conn.cursor()
    try:
        cursor.execute(dialect.rebind(sql), list(args))
        return cursor.rowcount
    finally:
        cursor.close()


def query(conn: Any, dialect: Dialect, sql: str, args: Sequence[Any] = ()) -> list[Any]:
    """Run a read statement and fetch every row."""
    cursor = conn.cursor()
    try:
        cursor.execute(dialect.rebind(sql), list(args))
        return cursor.fetchall()
    finally:
        cursor.close()
