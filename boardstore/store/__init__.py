"""
SQL-backed board store.

SQLStore wires the three stores over one Database and one Dialect:
- boards: versioned board persistence (BoardStore)
- members: explicit and synthetic memberships (MemberStore)
- search: visibility-aware board search (BoardSearch)

Every store method accepts ``conn=`` to join a transaction opened with
``store.database.transaction()``; insert_board_with_admin() is composed
that way.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from ..config import StoreConfig
from ..database import Database, SqliteDatabase
from ..dialect import Dialect, get_dialect
from ..model import Board, BoardMember
from ..roster import ChildrenStore, Roster, RosterTables, SqlRoster
from .boards import BoardStore
from .members import MemberStore
from .search import BoardSearch

logger = logging.getLogger(__name__)

__all__ = ["BoardSearch", "BoardStore", "MemberStore", "SQLStore"]


class SQLStore:
    """Facade over the board, member and search stores.

    Attributes:
        database: Transaction boundary shared by every store
        dialect: SQL dialect capability
        boards: Board store
        members: Member store
        search: Board search

    Example:
        >>> store = SQLStore(SqliteDatabase("boards.db"), SqliteDialect())
        >>> board, admin = store.insert_board_with_admin(Board(id="b1", team_id="t1"), "u1")
        >>> store.search.search_boards_for_user("", BoardSearchField.TITLE, "u1", True)
    """

    def __init__(
        self,
        database: Database,
        dialect: Dialect,
        roster: Roster | None = None,
        children: ChildrenStore | None = None,
        roster_tables: RosterTables | None = None,
        table_prefix: str = "",
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            database: Transaction boundary
            dialect: SQL dialect capability
            roster: User and membership lookups (defaults to SqlRoster)
            children: Cascade target for board deletion
            roster_tables: Roster tables joined by listing and search queries
            table_prefix: Prefix of the board store tables
            clock: Returns the current Unix ms
        """
        roster_tables = roster_tables or RosterTables()
        roster = roster or SqlRoster(dialect, roster_tables)

        self.database = database
        self.dialect = dialect
        self.boards = BoardStore(database, dialect, children, table_prefix, clock)
        self.members = MemberStore(
            database, dialect, self.boards, roster, roster_tables, table_prefix, clock
        )
        self.search = BoardSearch(
            database,
            dialect,
            self.boards,
            self.members,
            roster,
            roster_tables,
            table_prefix,
            clock,
        )

    @classmethod
    def from_config(
        cls,
        config: StoreConfig,
        database: Database | None = None,
        **kwargs: Any,
    ) -> SQLStore:
        """Build a store from configuration.

        The sqlite dialect opens (and initializes) the configured file;
        other dialects need the host's Database.

        Raises:
            ValueError: If the dialect is unknown or a Database is missing
        """
        config.validate()
        dialect = get_dialect(config.storage.dialect)

        if database is None:
            if config.storage.dialect != "sqlite":
                raise ValueError(
                    f"A Database is required for BOARDS_DB_DIALECT={config.storage.dialect}"
                )
            sqlite = SqliteDatabase(
                config.storage.sqlite_path,
                wal_mode=config.storage.wal_mode,
                busy_timeout_ms=config.storage.busy_timeout_ms,
                cache_size_pages=config.storage.cache_size_pages,
            )
            sqlite.initialize(config.storage.table_prefix)
            database = sqlite

        return cls(database, dialect, table_prefix=config.storage.table_prefix, **kwargs)

    @contextmanager
    def _transaction(self, conn: Any = None) -> Iterator[Any]:
        if conn is not None:
            yield conn
            return
        with self.database.transaction() as tx:
            yield tx

    def insert_board_with_admin(
        self, board: Board, user_id: str, conn: Any = None
    ) -> tuple[Board, BoardMember]:
        """Insert a board and make user_id its admin, atomically.

        Returns:
            (stored board, admin membership)
        """
        with self._transaction(conn) as tx:
            new_board = self.boards.insert_board(board, user_id, conn=tx)
            member = self.members.save_member(
                BoardMember(
                    board_id=new_board.id,
                    user_id=user_id,
                    scheme_admin=True,
                    scheme_editor=True,
                ),
                conn=tx,
            )

        logger.info(
            "Created board with admin",
            extra={"board_id": new_board.id, "team_id": new_board.team_id, "user_id": user_id},
        )
        return new_board, member
