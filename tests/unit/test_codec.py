"""
Unit tests for row decoding and board patches.

Tests cover:
- Board row decoding and JSON column handling
- Member and member history rows
- BoardPatch application
"""

from datetime import datetime, timezone

import pytest

from boardstore.codec import (
    BOARD_COLUMNS,
    board_from_row,
    board_values,
    decode_json,
    implicit_members_from_rows,
    member_from_row,
    member_history_from_row,
)
from boardstore.dialect import MysqlDialect, SqliteDialect
from boardstore.errors import CodecError
from boardstore.model import Board, BoardPatch, User


def board_row(**overrides):
    row = {
        "id": "b1",
        "team_id": "t1",
        "channel_id": None,
        "created_by": None,
        "modified_by": "u1",
        "type": "O",
        "minimum_role": "",
        "title": "Roadmap",
        "description": "",
        "icon": "",
        "show_description": 1,
        "is_template": 0,
        "template_version": 2,
        "properties": '{"color":"red"}',
        "card_properties": '[{"id":"p1"}]',
        "create_at": 10,
        "update_at": 20,
        "delete_at": 0,
    }
    row.update(overrides)
    return tuple(row[c] for c in BOARD_COLUMNS)


class TestBoardRows:
    """Tests for board_from_row and board_values."""

    def test_decode(self):
        board = board_from_row(board_row())

        assert board.channel_id == ""
        assert board.created_by == ""
        assert board.show_description is True
        assert board.is_template is False
        assert board.template_version == 2
        assert board.properties == {"color": "red"}
        assert board.card_properties == [{"id": "p1"}]

    def test_null_json_columns(self):
        board = board_from_row(board_row(properties=None, card_properties="null"))

        assert board.properties == {}
        assert board.card_properties == []

    def test_native_json_values(self):
        """Drivers may hand back decoded JSON."""
        board = board_from_row(board_row(properties={"a": 1}, card_properties=b"[]"))

        assert board.properties == {"a": 1}
        assert board.card_properties == []

    def test_malformed_json(self):
        with pytest.raises(CodecError) as exc_info:
            board_from_row(board_row(card_properties="[oops"))

        assert exc_info.value.entity_id == "b1"
        assert exc_info.value.field_name == "card_properties"

    def test_decode_json_default(self):
        assert decode_json("null", {}, "b1", "properties") == {}
        assert decode_json(None, [], "b1", "card_properties") == []

    def test_values_follow_column_order(self):
        board = Board(id="b1", team_id="t1", properties={"k": [1, 2]}, card_properties=[{"id": "p"}])

        values = board_values(SqliteDialect(), board)

        assert tuple(values) == BOARD_COLUMNS
        assert values["properties"] == '{"k":[1,2]}'
        assert board_from_row(tuple(values.values())) == board

    def test_unserializable_properties(self):
        board = Board(id="b1", team_id="t1", properties={"when": object()})

        with pytest.raises(CodecError) as exc_info:
            board_values(SqliteDialect(), board)

        assert exc_info.value.field_name == "properties"


class TestMemberRows:
    """Tests for member decoding."""

    def test_explicit_member(self):
        member = member_from_row(("viewer", "b1", "u1", "", 1, 0, 0, 1))

        assert member.minimum_role == "viewer"
        assert member.scheme_admin is True
        assert member.scheme_viewer is True
        assert member.synthetic is False

    def test_implicit_members(self):
        members = implicit_members_from_rows([("u1", "b1", "commenter"), ("u2", "b1", None)])

        assert [m.user_id for m in members] == ["u1", "u2"]
        assert all(m.synthetic and m.scheme_editor and m.roles == "editor" for m in members)
        assert members[0].minimum_role == "commenter"
        assert members[1].minimum_role == ""

    def test_history_row(self):
        entry = member_history_from_row(
            MysqlDialect(), ("b1", "u1", "created", "2024-05-06 07:08:09.000001")
        )

        assert entry.action == "created"
        assert entry.insert_at == datetime(2024, 5, 6, 7, 8, 9, 1, tzinfo=timezone.utc)

    def test_history_row_bad_timestamp(self):
        with pytest.raises(CodecError) as exc_info:
            member_history_from_row(SqliteDialect(), ("b1", "u1", "created", "not a time"))

        assert exc_info.value.entity_id == "b1/u1"


class TestBoardPatch:
    """Tests for BoardPatch.patch."""

    def board(self):
        return Board(
            id="b1",
            team_id="t1",
            title="Old",
            icon="x",
            properties={"keep": 1, "drop": 2},
            card_properties=[{"id": "p1", "name": "Status"}, {"id": "p2", "name": "Owner"}],
        )

    def test_unset_fields_keep_values(self):
        patched = BoardPatch(title="New").patch(self.board())

        assert patched.title == "New"
        assert patched.icon == "x"

    def test_false_and_empty_values_apply(self):
        board = self.board()
        board.show_description = True

        patched = BoardPatch(show_description=False, icon="").patch(board)

        assert patched.show_description is False
        assert patched.icon == ""

    def test_properties_merge(self):
        patched = BoardPatch(updated_properties={"new": 3}, deleted_properties=["drop"]).patch(
            self.board()
        )

        assert patched.properties == {"keep": 1, "new": 3}

    def test_card_properties(self):
        patched = BoardPatch(
            updated_card_properties=[{"id": "p1", "name": "State"}, {"id": "p3", "name": "Due"}],
            deleted_card_properties=["p2"],
        ).patch(self.board())

        assert patched.card_properties == [
            {"id": "p1", "name": "State"},
            {"id": "p3", "name": "Due"},
        ]

    def test_original_untouched(self):
        board = self.board()

        BoardPatch(updated_properties={"new": 3}, deleted_card_properties=["p1"]).patch(board)

        assert board.properties == {"keep": 1, "drop": 2}
        assert len(board.card_properties) == 2


class TestUser:
    def test_guest_role(self):
        assert User(id="u1", roles="system_user system_guest").is_guest is True
        assert User(id="u1", roles="system_user").is_guest is False
        assert User(id="u1", roles="system_guestish").is_guest is False
