"""
Board search.

Searches are the UNION of independently built branches, one per way a
user can reach a board (open in the team, explicit membership, team
membership, channel membership). Branches render with neutral markers and
the assembled statement is rebound once by the dialect.

Templates are never returned. Results carry no ordering guarantee.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ..codec import board_fields, boards_from_rows
from ..database import Database, operation
from ..dialect import Dialect
from ..errors import NotAllFoundError
from ..model import Board, BoardSearchField, BoardType
from ..query import Condition, Select, eq, title_contains_all, union
from ..roster import Roster, RosterTables
from .base import SqlStoreBase
from .boards import BoardStore
from .members import MemberStore

logger = logging.getLogger(__name__)


class BoardSearch(SqlStoreBase):
    """Visibility-aware board search.

    Example:
        >>> search = BoardSearch(db, dialect, boards, members, SqlRoster(dialect))
        >>> search.search_boards_for_user("road map", BoardSearchField.TITLE, "u1", True)
    """

    def __init__(
        self,
        database: Database,
        dialect: Dialect,
        boards: BoardStore,
        members: MemberStore,
        roster: Roster,
        roster_tables: RosterTables | None = None,
        table_prefix: str = "",
        clock: Callable[[], int] | None = None,
    ) -> None:
        super().__init__(database, dialect, table_prefix, clock)
        self.boards = boards
        self.members = members
        self.roster = roster
        self.roster_tables = roster_tables or RosterTables()

    def _branch(self) -> Select:
        return Select(board_fields("b"), f"{self.table('boards')} AS b").where(
            eq("b.is_template", False)
        )

    def _run(self, conn: Any, name: str, entity_id: str, branches: list[Select]) -> list[Board]:
        sql, args = union(branches, parenthesize=self.dialect.parenthesize_union)
        with operation(name, entity_id):
            return boards_from_rows(self._query(conn, sql, args))

    def search_boards_for_user_in_team(
        self,
        team_id: str,
        term: str,
        user_id: str,
        conn: Any = None,
    ) -> list[Board]:
        """Search the non-template boards of a team visible to a user.

        A board matches when it is open, the user is an explicit member,
        or the user belongs to its linked channel.

        Args:
            team_id: Team to search
            term: Whitespace separated words that must all occur in the
                title, case-insensitively ("" matches everything)
            user_id: Searching user
        """
        t = self.roster_tables
        open_boards = self._branch().where(eq("b.team_id", team_id)).where(
            eq("b.type", BoardType.OPEN.value)
        )
        member_boards = (
            self._branch()
            .join(f"JOIN {self.table('board_members')} AS bm ON b.id = bm.board_id")
            .where(eq("b.team_id", team_id))
            .where(eq("bm.user_id", user_id))
        )
        channel_boards = (
            self._branch()
            .join(f"JOIN {t.channel_members} AS cm ON cm.channel_id = b.channel_id")
            .where(eq("b.team_id", team_id))
            .where(eq("cm.user_id", user_id))
        )
        branches = [open_boards, member_boards, channel_boards]

        if term.strip():
            matches = title_contains_all("b.title", term)
            for branch in branches:
                branch.where(matches)

        with self._transaction(conn) as tx:
            return self._run(tx, "searchBoardsForUserInTeam", team_id, branches)

    def _term_condition(self, term: str, search_field: BoardSearchField) -> Condition:
        if search_field == BoardSearchField.PROPERTY_NAME:
            sql, args = self.dialect.property_exists("b.properties", term)
            return Condition(sql, tuple(args))
        return title_contains_all("b.title", term)

    def search_boards_for_user(
        self,
        term: str,
        search_field: BoardSearchField,
        user_id: str,
        include_public_boards: bool,
        conn: Any = None,
    ) -> list[Board]:
        """Search every non-template board a user can reach.

        Branches are explicit membership, channel membership and, for
        non-guests when include_public_boards is set, open boards of the
        teams the user actively belongs to.

        Args:
            term: Title words or property name ("" matches everything)
            search_field: What term is matched against
            user_id: Searching user
            include_public_boards: Include open boards of the user's teams

        Raises:
            NotFoundError: If the user doesn't exist
        """
        t = self.roster_tables
        member_boards = (
            self._branch()
            .join(f"JOIN {self.table('board_members')} AS bm ON b.id = bm.board_id")
            .where(eq("bm.user_id", user_id))
        )
        channel_boards = (
            self._branch()
            .join(f"JOIN {t.channel_members} AS cm ON cm.channel_id = b.channel_id")
            .where(eq("cm.user_id", user_id))
        )
        team_boards = (
            self._branch()
            .join(f"JOIN {t.team_members} AS tm ON tm.team_id = b.team_id")
            .where(eq("tm.user_id", user_id))
            .where(eq("tm.delete_at", 0))
            .where(eq("b.type", BoardType.OPEN.value))
        )

        if term.strip():
            matches = self._term_condition(term.strip(), search_field)
            for branch in (member_boards, channel_boards, team_boards):
                branch.where(matches)

        with self._transaction(conn) as tx:
            user = self.roster.get_user(tx, user_id)

            branches = [member_boards, channel_boards]
            if include_public_boards and not user.is_guest:
                branches.append(team_boards)

            return self._run(tx, "searchBoardsForUser", user_id, branches)

    def get_boards_for_user_and_team(
        self,
        user_id: str,
        team_id: str,
        include_public_boards: bool,
        conn: Any = None,
    ) -> list[Board]:
        """List the boards of a team available to a user.

        With include_public_boards this is an unfiltered team search.
        Otherwise only boards reached through the user's memberships are
        returned; hosts pass False for guests.
        """
        with self._transaction(conn) as tx:
            if include_public_boards:
                return self.search_boards_for_user_in_team(team_id, "", user_id, conn=tx)

            members = self.members.list_members_for_user(user_id, conn=tx)
            board_ids = [m.board_id for m in members]
            try:
                return self.boards.get_boards_in_team_by_ids(board_ids, team_id, conn=tx)
            except NotAllFoundError as e:
                # Memberships of other teams are expected here
                return list(e.found)
