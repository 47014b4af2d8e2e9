"""
Versioned board store.

Boards live in the boards table, and every write is mirrored into the
append-only boards_history table inside the same transaction. Deletion
snapshots the board and removes the live row; undeletion replays the newest
snapshot.

Invariants:
    - Every successful insert/update/delete/undelete appends exactly one
      history snapshot equal to the row it leaves behind
    - History rows are never updated or deleted
    - History is ordered by insert_at, then update_at
    - Undeleting a missing or live board is a successful no-op

How to change safely:
    - New columns go through codec.BOARD_COLUMNS and both tables
    - Keep the live write and the history append in one transaction
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from ..codec import BOARD_COLUMNS, board_fields, board_history_fields, board_values, boards_from_rows
from ..database import Database, operation
from ..dialect import Dialect
from ..errors import NotAllFoundError, NotFoundError
from ..model import (
    GLOBAL_TEAM_ID,
    TRACKING_TEMPLATE_ID_KEY,
    Board,
    BoardHistoryOptions,
    BoardPatch,
)
from ..query import in_
from ..roster import ChildrenStore, NullChildren
from .base import SqlStoreBase

logger = logging.getLogger(__name__)

# Columns rewritten when an existing board is saved again.
UPDATABLE_COLUMNS: tuple[str, ...] = (
    "modified_by",
    "type",
    "channel_id",
    "minimum_role",
    "title",
    "description",
    "icon",
    "show_description",
    "is_template",
    "template_version",
    "properties",
    "card_properties",
    "update_at",
    "delete_at",
)


def tracking_template_id(title: str) -> str:
    """Stable id for a built-in template, derived one-way from its title."""
    return hashlib.sha256(title.encode("utf-8")).hexdigest()


class BoardStore(SqlStoreBase):
    """Board persistence with a full history trail.

    Thread safety:
        The store holds no mutable state; concurrent writers are
        serialized by the database.

    Example:
        >>> store = BoardStore(SqliteDatabase(path), SqliteDialect())
        >>> board = store.insert_board(Board(id="b1", team_id="t1", title="Roadmap"), "user-1")
        >>> store.delete_board("b1", "user-1")
        >>> store.undelete_board("b1", "user-1")
    """

    def __init__(
        self,
        database: Database,
        dialect: Dialect,
        children: ChildrenStore | None = None,
        table_prefix: str = "",
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the board store.

        Args:
            database: Transaction boundary
            dialect: SQL dialect capability
            children: Cascades deletes to board content
            table_prefix: Prefix of the board store tables
            clock: Returns the current Unix ms
        """
        super().__init__(database, dialect, table_prefix, clock)
        self.children = children or NullChildren()

    def _select_boards(self, conn: Any, where: str, args: Sequence[Any]) -> list[Board]:
        rows = self._query(
            conn,
            f"SELECT {', '.join(board_fields())} FROM {self.table('boards')} WHERE {where}",
            args,
        )
        return boards_from_rows(rows)

    def _find_board(self, conn: Any, board_id: str) -> Board | None:
        boards = self._select_boards(conn, "id = ?", (board_id,))
        return boards[0] if boards else None

    def get_board(self, board_id: str, conn: Any = None) -> Board:
        """Get a live board by ID.

        Raises:
            NotFoundError: If the board doesn't exist or is deleted
        """
        with self._transaction(conn) as tx, operation("getBoard", board_id):
            board = self._find_board(tx, board_id)
        if board is None:
            raise NotFoundError("board", board_id)
        return board

    def get_boards_in_team_by_ids(
        self,
        board_ids: Sequence[str],
        team_id: str,
        conn: Any = None,
    ) -> list[Board]:
        """Get the boards of a team with the given IDs.

        Args:
            board_ids: Board identifiers
            team_id: Team the boards must belong to

        Returns:
            Boards found, in storage order

        Raises:
            NotAllFoundError: If some boards are missing; ``found`` holds
                the others
        """
        ids = list(dict.fromkeys(board_ids))
        if not ids:
            return []

        in_ids = in_("b.id", ids)
        with self._transaction(conn) as tx, operation("getBoardsInTeamByIds", team_id):
            rows = self._query(
                tx,
                f"""
                SELECT {', '.join(board_fields('b'))} FROM {self.table('boards')} AS b
                WHERE b.team_id = ? AND {in_ids.sql}
                """,
                [team_id, *in_ids.args],
            )
            boards = boards_from_rows(rows)

        if len(boards) != len(ids):
            logger.warning(
                "getBoardsInTeamByIds mismatched number of boards found",
                extra={"found": len(boards), "requested": len(ids), "team_id": team_id},
            )
            raise NotAllFoundError("board", ids, boards)

        return boards

    def _insert_history(self, conn: Any, board: Board) -> None:
        values = board_values(self.dialect, board)
        values["insert_at"] = self.dialect.encode_timestamp(datetime.now(timezone.utc))
        columns = list(values)
        self._execute(
            conn,
            f"""
            INSERT INTO {self.table('boards_history')} ({', '.join(columns)})
            VALUES ({', '.join('?' for _ in columns)})
            """,
            list(values.values()),
        )

    def _insert_live(self, conn: Any, board: Board) -> None:
        values = board_values(self.dialect, board)
        self._execute(
            conn,
            f"""
            INSERT INTO {self.table('boards')} ({', '.join(BOARD_COLUMNS)})
            VALUES ({', '.join('?' for _ in BOARD_COLUMNS)})
            """,
            [values[c] for c in BOARD_COLUMNS],
        )

    def insert_board(self, board: Board, user_id: str, conn: Any = None) -> Board:
        """Insert a new board or update the existing one with the same ID.

        New boards get created_by/create_at; existing boards keep their
        stored team, creator and creation time. Either way modified_by and
        update_at are set and the result is appended to the history.

        Args:
            board: Board to save (not modified)
            user_id: Acting user

        Returns:
            The board as stored
        """
        board = board.clone()
        if board.properties is None:
            board.properties = {}
        if board.card_properties is None:
            board.card_properties = []

        # Built-in templates are recognized across installations by this id
        if board.is_template and board.team_id == GLOBAL_TEAM_ID:
            board.properties[TRACKING_TEMPLATE_ID_KEY] = tracking_template_id(board.title)

        with self._transaction(conn) as tx, operation("insertBoard", board.id):
            existing = self._find_board(tx, board.id)

            now = self.clock()
            board.modified_by = user_id
            board.update_at = now

            if existing is not None:
                board.team_id = existing.team_id
                board.created_by = existing.created_by
                board.create_at = existing.create_at

                values = board_values(self.dialect, board)
                assignments = ", ".join(f"{c} = ?" for c in UPDATABLE_COLUMNS)
                self._execute(
                    tx,
                    f"UPDATE {self.table('boards')} SET {assignments} WHERE id = ?",
                    [*(values[c] for c in UPDATABLE_COLUMNS), board.id],
                )
            else:
                board.created_by = user_id
                board.create_at = now
                self._insert_live(tx, board)

            self._insert_history(tx, board)

        logger.debug(
            "Saved board",
            extra={"board_id": board.id, "team_id": board.team_id, "is_new": existing is None},
        )
        return board

    def patch_board(
        self,
        board_id: str,
        patch: BoardPatch,
        user_id: str,
        conn: Any = None,
    ) -> Board:
        """Apply a partial update to a board.

        Raises:
            NotFoundError: If the board doesn't exist
        """
        with self._transaction(conn) as tx:
            existing = self.get_board(board_id, conn=tx)
            return self.insert_board(patch.patch(existing), user_id, conn=tx)

    def delete_board(
        self,
        board_id: str,
        user_id: str,
        keep_children: bool = False,
        conn: Any = None,
    ) -> None:
        """Snapshot a board as deleted and remove its live row.

        Args:
            board_id: Board identifier
            user_id: Acting user
            keep_children: Skip cascading the delete to board content

        Raises:
            NotFoundError: If the board doesn't exist
        """
        with self._transaction(conn) as tx:
            board = self.get_board(board_id, conn=tx)

            with operation("deleteBoard", board_id):
                now = self.clock()
                snapshot = board.clone()
                snapshot.modified_by = user_id
                snapshot.update_at = now
                snapshot.delete_at = now
                self._insert_history(tx, snapshot)

                # Team match guards against deleting another team's board
                self._execute(
                    tx,
                    f"DELETE FROM {self.table('boards')} WHERE id = ? AND COALESCE(team_id, '0') = ?",
                    (board_id, board.team_id),
                )

                if not keep_children:
                    self.children.delete_children(tx, board_id, user_id)

        logger.debug("Deleted board", extra={"board_id": board_id, "keep_children": keep_children})

    def undelete_board(self, board_id: str, user_id: str, conn: Any = None) -> None:
        """Restore a deleted board from its newest history snapshot.

        Boards without history, or whose newest snapshot is not deleted,
        are left alone.
        """
        with self._transaction(conn) as tx:
            snapshots = self.get_board_history(
                board_id, BoardHistoryOptions(limit=1, descending=True), conn=tx
            )
            if not snapshots:
                logger.warning("undeleteBoard board not found", extra={"board_id": board_id})
                return

            board = snapshots[0]
            if board.delete_at == 0:
                logger.warning("undeleteBoard board not deleted", extra={"board_id": board_id})
                return

            with operation("undeleteBoard", board_id):
                board.modified_by = user_id
                board.update_at = self.clock()
                board.delete_at = 0

                self._insert_history(tx, board)
                self._insert_live(tx, board)
                self.children.undelete_children(tx, board_id, user_id)

        logger.debug("Undeleted board", extra={"board_id": board_id})

    def get_board_history(
        self,
        board_id: str,
        opts: BoardHistoryOptions | None = None,
        conn: Any = None,
    ) -> list[Board]:
        """Get the history snapshots of a board.

        Args:
            board_id: Board identifier
            opts: Time window, limit and order

        Returns:
            Snapshots ordered by insert_at then update_at
        """
        opts = opts or BoardHistoryOptions()
        order = " DESC" if opts.descending else ""

        sql = f"SELECT {', '.join(board_history_fields())} FROM {self.table('boards_history')} WHERE id = ?"
        args: list[Any] = [board_id]

        if opts.before_update_at:
            sql += " AND update_at < ?"
            args.append(opts.before_update_at)

        if opts.after_update_at:
            sql += " AND update_at > ?"
            args.append(opts.after_update_at)

        sql += f" ORDER BY insert_at{order}, update_at{order}"

        if opts.limit:
            sql += " LIMIT ?"
            args.append(opts.limit)

        with self._transaction(conn) as tx, operation("getBoardHistory", board_id):
            return boards_from_rows(self._query(tx, sql, args))
