"""
boardstore - Versioned board persistence and membership resolution.

This package stores collaborative boards in a SQL database:
- Board store with an append-only history (delete/undelete by snapshot replay)
- Membership resolution combining stored and synthetic memberships
- Visibility-aware board search across postgres, sqlite and mysql dialects

Example:
    >>> from boardstore import Board, SQLStore, SqliteDatabase, SqliteDialect
    >>>
    >>> db = SqliteDatabase("/tmp/boards.db")
    >>> db.initialize()
    >>> store = SQLStore(db, SqliteDialect())
    >>>
    >>> board, admin = store.insert_board_with_admin(
    ...     Board(id="b1", team_id="team-1", title="Roadmap"), "user-1"
    ... )
    >>> store.boards.delete_board("b1", "user-1")
    >>> store.boards.undelete_board("b1", "user-1")

Invariants:
    - Every board write appends a history snapshot in the same transaction
    - Synthetic memberships are computed on read and never stored
    - Dialects are passed explicitly, never held in module state

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import ObservabilityConfig, StorageConfig, StoreConfig
from .database import Database, SqliteDatabase
from .dialect import Dialect, MysqlDialect, PostgresDialect, SqliteDialect, get_dialect
from .errors import (
    BoardStoreError,
    CodecError,
    NotAllFoundError,
    NotFoundError,
    StoreOperationError,
)
from .model import (
    GLOBAL_TEAM_ID,
    SYSTEM_USER_ID,
    Board,
    BoardHistoryOptions,
    BoardMember,
    BoardMemberHistoryEntry,
    BoardPatch,
    BoardRole,
    BoardSearchField,
    BoardType,
    User,
)
from .observability import setup_logging
from .roster import ChildrenStore, NullChildren, Roster, RosterTables, SqlRoster
from .store import BoardSearch, BoardStore, MemberStore, SQLStore

__all__ = [
    # Version
    "__version__",
    # Entities
    "Board",
    "BoardPatch",
    "BoardMember",
    "BoardMemberHistoryEntry",
    "BoardHistoryOptions",
    "BoardRole",
    "BoardSearchField",
    "BoardType",
    "User",
    "GLOBAL_TEAM_ID",
    "SYSTEM_USER_ID",
    # Stores
    "SQLStore",
    "BoardStore",
    "MemberStore",
    "BoardSearch",
    # Database and dialects
    "Database",
    "SqliteDatabase",
    "Dialect",
    "PostgresDialect",
    "SqliteDialect",
    "MysqlDialect",
    "get_dialect",
    # Collaborators
    "Roster",
    "RosterTables",
    "SqlRoster",
    "ChildrenStore",
    "NullChildren",
    # Configuration
    "StoreConfig",
    "StorageConfig",
    "ObservabilityConfig",
    "setup_logging",
    # Errors
    "BoardStoreError",
    "NotFoundError",
    "NotAllFoundError",
    "CodecError",
    "StoreOperationError",
]
