"""
Shared plumbing for the SQL stores.

Every public store method takes an optional ``conn``. Without it the method
opens and commits its own transaction; with it the method runs inside the
caller's transaction, which is how a host composes several operations
atomically.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from ..database import Database, execute, get_millis, query
from ..dialect import Dialect


class SqlStoreBase:
    """Database, dialect, table prefix and clock shared by the stores."""

    def __init__(
        self,
        database: Database,
        dialect: Dialect,
        table_prefix: str = "",
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            database: Transaction boundary
            dialect: SQL dialect capability
            table_prefix: Prefix of the board store tables
            clock: Returns the current Unix ms (defaults to wall clock)
        """
        self.database = database
        self.dialect = dialect
        self.table_prefix = table_prefix
        self.clock = clock or get_millis

    def table(self, name: str) -> str:
        return f"{self.table_prefix}{name}"

    @contextmanager
    def _transaction(self, conn: Any = None) -> Iterator[Any]:
        if conn is not None:
            yield conn
            return
        with self.database.transaction() as tx:
            yield tx

    def _execute(self, conn: Any, sql: str, args: Sequence[Any] = ()) -> int:
        return execute(conn, self.dialect, sql, args)

    def _query(self, conn: Any, sql: str, args: Sequence[Any] = ()) -> list[Any]:
        return query(conn, self.dialect, sql, args)
