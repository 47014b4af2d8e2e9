"""
Row mapping between storage rows and board entities.

Every query selects columns in the exact order produced by the field lists
below, and every row is decoded by the matching *_from_row function. Rows
are addressed by position so plain DB-API tuples and sqlite3.Row both work.

Invariants:
    - board_fields() and board_from_row() share one column order
    - properties decodes to a dict, card_properties to a list, never None
    - Malformed stored JSON raises CodecError carrying the board id
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from .dialect import Dialect
from .errors import CodecError
from .model import Board, BoardMember, BoardMemberHistoryEntry

logger = logging.getLogger(__name__)

# Columns written for a board, in insert order.
BOARD_COLUMNS: tuple[str, ...] = (
    "id",
    "team_id",
    "channel_id",
    "created_by",
    "modified_by",
    "type",
    "minimum_role",
    "title",
    "description",
    "icon",
    "show_description",
    "is_template",
    "template_version",
    "properties",
    "card_properties",
    "create_at",
    "update_at",
    "delete_at",
)


def board_fields(alias: str = "") -> list[str]:
    """Select list for live boards, optionally qualified by a table alias."""
    if alias and not alias.endswith("."):
        alias += "."

    return [
        f"{alias}id",
        f"{alias}team_id",
        f"COALESCE({alias}channel_id, '')",
        f"COALESCE({alias}created_by, '')",
        f"{alias}modified_by",
        f"{alias}type",
        f"{alias}minimum_role",
        f"{alias}title",
        f"{alias}description",
        f"{alias}icon",
        f"{alias}show_description",
        f"{alias}is_template",
        f"{alias}template_version",
        f"COALESCE({alias}properties, '{{}}')",
        f"COALESCE({alias}card_properties, '[]')",
        f"{alias}create_at",
        f"{alias}update_at",
        f"{alias}delete_at",
    ]


def board_history_fields() -> list[str]:
    """Select list for boards_history, tolerant of NULLs in old snapshots."""
    return [
        "id",
        "team_id",
        "COALESCE(channel_id, '')",
        "COALESCE(created_by, '')",
        "COALESCE(modified_by, '')",
        "type",
        "minimum_role",
        "COALESCE(title, '')",
        "COALESCE(description, '')",
        "COALESCE(icon, '')",
        "COALESCE(show_description, false)",
        "COALESCE(is_template, false)",
        "template_version",
        "COALESCE(properties, '{}')",
        "COALESCE(card_properties, '[]')",
        "COALESCE(create_at, 0)",
        "COALESCE(update_at, 0)",
        "COALESCE(delete_at, 0)",
    ]


# Explicit members are selected with their board joined as B.
BOARD_MEMBER_FIELDS: tuple[str, ...] = (
    "COALESCE(B.minimum_role, '')",
    "BM.board_id",
    "BM.user_id",
    "BM.roles",
    "BM.scheme_admin",
    "BM.scheme_editor",
    "BM.scheme_commenter",
    "BM.scheme_viewer",
)

BOARD_MEMBER_HISTORY_FIELDS: tuple[str, ...] = ("board_id", "user_id", "action", "insert_at")


def decode_json(value: Any, default: Any, entity_id: str, field_name: str) -> Any:
    """Decode a JSON column value.

    Drivers with native JSON support hand back decoded objects; text and
    bytes are parsed.

    Raises:
        CodecError: If the stored text is not valid JSON
    """
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = bytes(value).decode("utf-8")
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError) as e:
        logger.error(
            f"board {field_name} unmarshal error: {e}",
            extra={"board_id": entity_id, "field": field_name},
        )
        raise CodecError(
            f"malformed {field_name} for board {entity_id}: {e}",
            entity_id=entity_id,
            field_name=field_name,
        ) from e
    return default if decoded is None else decoded


def encode_json(dialect: Dialect, value: Any, entity_id: str, field_name: str) -> str:
    """Encode a JSON column value with the dialect's serializer.

    Raises:
        CodecError: If the value is not JSON serializable
    """
    try:
        return dialect.encode_json(value)
    except (TypeError, ValueError) as e:
        logger.error(
            f"failed to marshal board {field_name}: {e}",
            extra={"board_id": entity_id, "field": field_name},
        )
        raise CodecError(
            f"cannot encode {field_name} for board {entity_id}: {e}",
            entity_id=entity_id,
            field_name=field_name,
        ) from e


def board_from_row(row: Sequence[Any]) -> Board:
    """Decode one row selected with board_fields() or board_history_fields()."""
    board_id = row[0]
    return Board(
        id=board_id,
        team_id=row[1],
        channel_id=row[2] or "",
        created_by=row[3] or "",
        modified_by=row[4] or "",
        type=row[5],
        minimum_role=row[6] or "",
        title=row[7] or "",
        description=row[8] or "",
        icon=row[9] or "",
        show_description=bool(row[10]),
        is_template=bool(row[11]),
        template_version=int(row[12] or 0),
        properties=decode_json(row[13], {}, board_id, "properties"),
        card_properties=decode_json(row[14], [], board_id, "card_properties"),
        create_at=int(row[15] or 0),
        update_at=int(row[16] or 0),
        delete_at=int(row[17] or 0),
    )


def boards_from_rows(rows: Iterable[Sequence[Any]]) -> list[Board]:
    return [board_from_row(row) for row in rows]


def board_values(dialect: Dialect, board: Board) -> dict[str, Any]:
    """Column -> bound value for writing a board, in BOARD_COLUMNS order."""
    return {
        "id": board.id,
        "team_id": board.team_id,
        "channel_id": board.channel_id,
        "created_by": board.created_by,
        "modified_by": board.modified_by,
        "type": board.type,
        "minimum_role": board.minimum_role,
        "title": board.title,
        "description": board.description,
        "icon": board.icon,
        "show_description": board.show_description,
        "is_template": board.is_template,
        "template_version": board.template_version,
        "properties": encode_json(dialect, board.properties, board.id, "properties"),
        "card_properties": encode_json(
            dialect, board.card_properties, board.id, "card_properties"
        ),
        "create_at": board.create_at,
        "update_at": board.update_at,
        "delete_at": board.delete_at,
    }


def member_from_row(row: Sequence[Any]) -> BoardMember:
    """Decode one row selected with BOARD_MEMBER_FIELDS."""
    return BoardMember(
        minimum_role=row[0] or "",
        board_id=row[1],
        user_id=row[2],
        roles=row[3] or "",
        scheme_admin=bool(row[4]),
        scheme_editor=bool(row[5]),
        scheme_commenter=bool(row[6]),
        scheme_viewer=bool(row[7]),
    )


def members_from_rows(rows: Iterable[Sequence[Any]]) -> list[BoardMember]:
    return [member_from_row(row) for row in rows]


def implicit_members_from_rows(rows: Iterable[Sequence[Any]]) -> list[BoardMember]:
    """Decode (user_id, board_id, minimum_role) rows into synthetic editors."""
    return [
        BoardMember.synthetic_editor(board_id=row[1], user_id=row[0], minimum_role=row[2] or "")
        for row in rows
    ]


def member_history_from_row(dialect: Dialect, row: Sequence[Any]) -> BoardMemberHistoryEntry:
    """Decode one row selected with BOARD_MEMBER_HISTORY_FIELDS.

    Raises:
        CodecError: If insert_at cannot be parsed by the dialect
    """
    try:
        insert_at = dialect.parse_timestamp(row[3])
    except CodecError as e:
        raise CodecError(
            f"{e.message} for board_members_history scan",
            entity_id=f"{row[0]}/{row[1]}",
            field_name="insert_at",
        ) from e

    return BoardMemberHistoryEntry(
        board_id=row[0],
        user_id=row[1],
        action=row[2],
        insert_at=insert_at,
    )
