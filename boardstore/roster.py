"""
Collaborators consumed by the board store.

The stores do not own users, channels or teams, nor the content that lives
inside a board. They reach them through:
- Roster: user, channel-member and team-member lookups
- ChildrenStore: cascading delete/undelete of a board's content

SqlRoster reads roster tables living in the same database, which is also
what the search and member-list queries join against. RosterTables names
those tables and columns.

Invariants:
    - Every lookup raises NotFoundError when the entity is absent
    - Collaborators receive the caller's connection, so they run inside
      the same transaction as the store operation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from .database import query
from .dialect import Dialect
from .errors import NotFoundError
from .model import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterTables:
    """Names of the externally owned roster tables.

    Attributes:
        users: Users table (id, roles)
        bots: Bot accounts (user_id)
        channel_members: Channel memberships (channel_id, user_id)
        team_members: Team memberships (team_id, user_id, delete_at)
    """

    users: str = "users"
    bots: str = "bots"
    channel_members: str = "channel_members"
    team_members: str = "team_members"


class Roster(Protocol):
    """User and membership lookups owned by the host application."""

    def get_user(self, conn: Any, user_id: str) -> User: ...

    def get_channel_member(self, conn: Any, channel_id: str, user_id: str) -> None: ...

    def get_team_member(self, conn: Any, team_id: str, user_id: str) -> None: ...


class ChildrenStore(Protocol):
    """Cascades board deletion to the content stored inside the board."""

    def delete_children(self, conn: Any, board_id: str, user_id: str) -> None: ...

    def undelete_children(self, conn: Any, board_id: str, user_id: str) -> None: ...


class NullChildren:
    """ChildrenStore for hosts whose boards carry no dependent content."""

    def delete_children(self, conn: Any, board_id: str, user_id: str) -> None:
        logger.debug("No children to delete", extra={"board_id": board_id})

    def undelete_children(self, conn: Any, board_id: str, user_id: str) -> None:
        logger.debug("No children to undelete", extra={"board_id": board_id})


class SqlRoster:
    """Roster backed by roster tables in the board store database.

    Example:
        >>> roster = SqlRoster(SqliteDialect())
        >>> with db.transaction() as conn:
        ...     user = roster.get_user(conn, "user-1")
    """

    def __init__(self, dialect: Dialect, tables: RosterTables | None = None) -> None:
        self.dialect = dialect
        self.tables = tables or RosterTables()

    def get_user(self, conn: Any, user_id: str) -> User:
        """Look up a user and its roles.

        Raises:
            NotFoundError: If the user doesn't exist
        """
        rows = query(
            conn,
            self.dialect,
            f"SELECT id, COALESCE(roles, '') FROM {self.tables.users} WHERE id = ?",
            (user_id,),
        )
        if not rows:
            raise NotFoundError("user", user_id)

        row = rows[0]
        return User(id=row[0], roles=row[1])

    def get_channel_member(self, conn: Any, channel_id: str, user_id: str) -> None:
        """Raises NotFoundError unless user_id belongs to channel_id."""
        rows = query(
            conn,
            self.dialect,
            f"SELECT 1 FROM {self.tables.channel_members} WHERE channel_id = ? AND user_id = ?",
            (channel_id, user_id),
        )
        if not rows:
            raise NotFoundError("channel member", f"{channel_id}/{user_id}")

    def get_team_member(self, conn: Any, team_id: str, user_id: str) -> None:
        """Raises NotFoundError unless user_id is an active member of team_id."""
        rows = query(
            conn,
            self.dialect,
            f"""
            SELECT 1 FROM {self.tables.team_members}
            WHERE team_id = ? AND user_id = ? AND delete_at = 0
            """,
            (team_id, user_id),
        )
        if not rows:
            raise NotFoundError("team member", f"{team_id}/{user_id}")
