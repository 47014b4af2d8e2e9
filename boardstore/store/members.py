"""
Board membership resolution.

A user is a member of a board either explicitly, through a board_members
row, or implicitly:
- channel-linked boards grant an editor membership to channel members
- open templates grant a viewer membership to members of the owning team

Implicit (synthetic) memberships are computed on read and never written.
Every explicit membership change is recorded in board_members_history.

Invariants:
    - Explicit rows always win over synthetic memberships
    - The system user and guests never receive synthetic memberships
    - Bots never receive synthetic memberships on board listings
    - "created" is recorded only for a new row, "deleted" only for a
      removed one

How to change safely:
    - Roster lookups go through the injected Roster so hosts can swap them
    - Keep BOARD_MEMBER_FIELDS and member_from_row() in the same order
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from ..codec import (
    BOARD_MEMBER_FIELDS,
    BOARD_MEMBER_HISTORY_FIELDS,
    implicit_members_from_rows,
    member_history_from_row,
    members_from_rows,
)
from ..database import Database, operation
from ..dialect import Dialect
from ..errors import NotFoundError
from ..model import (
    GUEST_ROLE,
    SYSTEM_USER_ID,
    BoardMember,
    BoardMemberHistoryEntry,
    MemberAction,
)
from ..roster import Roster, RosterTables
from .base import SqlStoreBase
from .boards import BoardStore

logger = logging.getLogger(__name__)

MEMBER_FLAG_COLUMNS: tuple[str, ...] = (
    "scheme_admin",
    "scheme_editor",
    "scheme_commenter",
    "scheme_viewer",
)


class MemberStore(SqlStoreBase):
    """Explicit and synthetic board memberships.

    Example:
        >>> members = MemberStore(db, dialect, boards, SqlRoster(dialect))
        >>> members.save_member(BoardMember(board_id="b1", user_id="u1", scheme_editor=True))
        >>> members.get_effective_member("b1", "u1").scheme_editor
        True
    """

    def __init__(
        self,
        database: Database,
        dialect: Dialect,
        boards: BoardStore,
        roster: Roster,
        roster_tables: RosterTables | None = None,
        table_prefix: str = "",
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the member store.

        Args:
            database: Transaction boundary
            dialect: SQL dialect capability
            boards: Board store used to load boards for implicit rules
            roster: User, channel and team lookups
            roster_tables: Roster tables joined by the listing queries
            table_prefix: Prefix of the board store tables
            clock: Returns the current Unix ms
        """
        super().__init__(database, dialect, table_prefix, clock)
        self.boards = boards
        self.roster = roster
        self.roster_tables = roster_tables or RosterTables()

    def _select_members(self, conn: Any, where: str, args: tuple[Any, ...]) -> list[BoardMember]:
        rows = self._query(
            conn,
            f"""
            SELECT {', '.join(BOARD_MEMBER_FIELDS)}
            FROM {self.table('board_members')} AS BM
            LEFT JOIN {self.table('boards')} AS B ON B.id = BM.board_id
            WHERE {where}
            """,
            args,
        )
        return members_from_rows(rows)

    def _find_direct_member(self, conn: Any, board_id: str, user_id: str) -> BoardMember | None:
        members = self._select_members(conn, "BM.board_id = ? AND BM.user_id = ?", (board_id, user_id))
        return members[0] if members else None

    def get_direct_member(self, board_id: str, user_id: str, conn: Any = None) -> BoardMember:
        """Get the explicit membership row.

        Raises:
            NotFoundError: If the user has no explicit membership
        """
        with self._transaction(conn) as tx, operation("getMemberForBoard", board_id):
            member = self._find_direct_member(tx, board_id, user_id)
        if member is None:
            raise NotFoundError("member", f"{board_id}/{user_id}")
        return member

    def get_effective_member(self, board_id: str, user_id: str, conn: Any = None) -> BoardMember:
        """Get the explicit membership, falling back to a synthetic one.

        Synthetic rules, in order:
        1. the system user and guests get none
        2. channel-linked boards: editor if the user is in the channel
        3. open templates: viewer if the user is in the owning team

        Raises:
            NotFoundError: If no explicit or synthetic membership applies,
                or the user or board doesn't exist
        """
        with self._transaction(conn) as tx:
            with operation("getMemberForBoard", board_id):
                member = self._find_direct_member(tx, board_id, user_id)
            if member is not None:
                return member

            if user_id == SYSTEM_USER_ID:
                raise NotFoundError("member", user_id)

            user = self.roster.get_user(tx, user_id)
            if user.is_guest:
                raise NotFoundError("member", f"{user_id} is a guest")

            board = self.boards.get_board(board_id, conn=tx)

            if board.channel_id:
                try:
                    self.roster.get_channel_member(tx, board.channel_id, user_id)
                except NotFoundError:
                    raise NotFoundError("member", f"{board_id}/{user_id}") from None
                return BoardMember.synthetic_editor(board_id, user_id, board.minimum_role)

            if board.is_open and board.is_template:
                try:
                    self.roster.get_team_member(tx, board.team_id, user_id)
                except NotFoundError:
                    raise NotFoundError("member", f"{board_id}/{user_id}") from None
                return BoardMember.synthetic_viewer(board_id, user_id, board.minimum_role)

            raise NotFoundError("member", f"{board_id}/{user_id}")

    def list_members_for_user(self, user_id: str, conn: Any = None) -> list[BoardMember]:
        """List the explicit and channel-derived memberships of a user.

        Guests only get their explicit memberships.

        Raises:
            NotFoundError: If the user doesn't exist
        """
        with self._transaction(conn) as tx:
            with operation("getMembersForUser", user_id):
                explicit = self._select_members(tx, "BM.user_id = ?", (user_id,))

            user = self.roster.get_user(tx, user_id)
            if user.is_guest:
                return explicit

            with operation("getMembersForUser", user_id):
                rows = self._query(
                    tx,
                    f"""
                    SELECT CM.user_id, B.id, COALESCE(B.minimum_role, '')
                    FROM {self.table('boards')} AS B
                    JOIN {self.roster_tables.channel_members} AS CM ON B.channel_id = CM.channel_id
                    WHERE CM.user_id = ? AND B.channel_id <> ''
                    """,
                    (user_id,),
                )
                implicit = implicit_members_from_rows(rows)

        members = list(explicit)
        existing = {m.board_id for m in explicit}
        for member in implicit:
            if member.board_id not in existing:
                members.append(member)
                existing.add(member.board_id)
        return members

    def list_members_for_board(self, board_id: str, conn: Any = None) -> list[BoardMember]:
        """List the explicit and channel-derived members of a board.

        Channel members that are guests or bots get no synthetic membership.
        """
        t = self.roster_tables
        with self._transaction(conn) as tx, operation("getMembersForBoard", board_id):
            explicit = self._select_members(tx, "BM.board_id = ?", (board_id,))
            rows = self._query(
                tx,
                f"""
                SELECT CM.user_id, B.id, COALESCE(B.minimum_role, '')
                FROM {self.table('boards')} AS B
                JOIN {t.channel_members} AS CM ON B.channel_id = CM.channel_id
                JOIN {t.users} AS U ON CM.user_id = U.id
                LEFT JOIN {t.bots} AS bo ON U.id = bo.user_id
                WHERE B.id = ?
                  AND B.channel_id <> ''
                  AND COALESCE(U.roles, '') NOT LIKE ?
                  AND bo.user_id IS NULL
                """,
                (board_id, f"%{GUEST_ROLE}%"),
            )
            implicit = implicit_members_from_rows(rows)

        members = list(explicit)
        existing = {m.user_id for m in explicit}
        for member in implicit:
            if member.user_id not in existing:
                members.append(member)
                existing.add(member.user_id)
        return members

    def _append_history(self, conn: Any, board_id: str, user_id: str, action: MemberAction) -> None:
        self._execute(
            conn,
            f"""
            INSERT INTO {self.table('board_members_history')} (board_id, user_id, action, insert_at)
            VALUES (?, ?, ?, ?)
            """,
            (board_id, user_id, action.value, self.dialect.encode_timestamp(datetime.now(timezone.utc))),
        )

    def save_member(self, member: BoardMember, conn: Any = None) -> BoardMember:
        """Create or update an explicit membership.

        The four capability flags are always overwritten. The roles label
        is not persisted.

        Returns:
            The member as given
        """
        values = {
            "board_id": member.board_id,
            "user_id": member.user_id,
            "roles": "",
            "scheme_admin": member.scheme_admin,
            "scheme_editor": member.scheme_editor,
            "scheme_commenter": member.scheme_commenter,
            "scheme_viewer": member.scheme_viewer,
        }
        sql, args = self.dialect.upsert(
            self.table("board_members"),
            values,
            conflict_columns=("board_id", "user_id"),
            update_columns=MEMBER_FLAG_COLUMNS,
        )

        with self._transaction(conn) as tx, operation("saveMember", member.board_id):
            existed = self._find_direct_member(tx, member.board_id, member.user_id) is not None
            self._execute(tx, sql, args)
            if not existed:
                self._append_history(tx, member.board_id, member.user_id, MemberAction.CREATED)

        logger.debug(
            "Saved board member",
            extra={"board_id": member.board_id, "user_id": member.user_id, "is_new": not existed},
        )
        return member

    def delete_member(self, board_id: str, user_id: str, conn: Any = None) -> None:
        """Remove an explicit membership. Missing rows are ignored."""
        with self._transaction(conn) as tx, operation("deleteMember", board_id):
            removed = self._execute(
                tx,
                f"DELETE FROM {self.table('board_members')} WHERE board_id = ? AND user_id = ?",
                (board_id, user_id),
            )
            if removed > 0:
                self._append_history(tx, board_id, user_id, MemberAction.DELETED)

        logger.debug(
            "Deleted board member",
            extra={"board_id": board_id, "user_id": user_id, "removed": removed},
        )

    def get_member_history(
        self,
        board_id: str,
        user_id: str,
        limit: int = 0,
        conn: Any = None,
    ) -> list[BoardMemberHistoryEntry]:
        """Get the membership audit log of a user on a board, newest first.

        Args:
            board_id: Board identifier
            user_id: User identifier
            limit: Maximum entries returned, 0 for all

        Raises:
            CodecError: If a stored insert_at cannot be parsed
        """
        sql = f"""
            SELECT {', '.join(BOARD_MEMBER_HISTORY_FIELDS)}
            FROM {self.table('board_members_history')}
            WHERE board_id = ? AND user_id = ?
            ORDER BY insert_at DESC
        """
        args: list[Any] = [board_id, user_id]
        if limit > 0:
            sql += " LIMIT ?"
            args.append(limit)

        with self._transaction(conn) as tx, operation("getBoardMemberHistory", board_id):
            rows = self._query(tx, sql, args)
            return [member_history_from_row(self.dialect, row) for row in rows]
