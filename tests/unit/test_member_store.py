"""
Unit tests for board membership resolution.

Tests cover:
- Explicit membership CRUD and its history log
- Synthetic memberships from channels and open templates
- Guest, bot and system user exclusion
- Member listings per user and per board
- User lookups through SqlRoster
"""

from datetime import datetime

import pytest

from boardstore.errors import NotFoundError
from boardstore.model import SYSTEM_USER_ID, Board, BoardMember, BoardType, User
from boardstore.roster import SqlRoster

GUEST_ROLES = "system_user system_guest"


@pytest.fixture
def seeded(store, roster):
    """Users, channel and team rosters plus a few boards.

    - channel-board: private, linked to channel-1
    - template: open template of team-1
    - private: private, unlinked
    """
    roster.user("alice")
    roster.user("bob")
    roster.user("carol")
    roster.user("dave")
    roster.user("guest", roles=GUEST_ROLES)
    roster.user("robot", bot=True)

    for user_id in ("alice", "bob", "guest", "robot"):
        roster.channel_member("channel-1", user_id)

    roster.team_member("team-1", "carol")
    roster.team_member("team-1", "guest")
    roster.team_member("team-1", "dave", delete_at=1234)

    store.boards.insert_board(
        Board(
            id="channel-board",
            team_id="team-1",
            channel_id="channel-1",
            type=BoardType.PRIVATE.value,
            minimum_role="commenter",
        ),
        "alice",
    )
    store.boards.insert_board(
        Board(id="template", team_id="team-1", type=BoardType.OPEN.value, is_template=True),
        "alice",
    )
    store.boards.insert_board(
        Board(id="private", team_id="team-1", type=BoardType.PRIVATE.value), "alice"
    )
    return store


class TestExplicitMembers:
    """Tests for save_member, delete_member and member history."""

    def test_save_and_get(self, seeded):
        seeded.members.save_member(
            BoardMember(board_id="private", user_id="bob", roles="ignored", scheme_viewer=True)
        )

        member = seeded.members.get_direct_member("private", "bob")
        assert member.scheme_viewer is True
        assert member.scheme_editor is False
        assert member.roles == ""
        assert member.synthetic is False

    def test_minimum_role_echoed(self, seeded):
        seeded.members.save_member(BoardMember(board_id="channel-board", user_id="bob"))

        assert seeded.members.get_direct_member("channel-board", "bob").minimum_role == "commenter"

    def test_get_direct_member_missing(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.get_direct_member("private", "bob")

    def test_first_save_records_created(self, seeded):
        """Only the first save writes history; later saves update flags."""
        seeded.members.save_member(BoardMember(board_id="private", user_id="bob", scheme_viewer=True))
        seeded.members.save_member(
            BoardMember(board_id="private", user_id="bob", scheme_admin=True, scheme_editor=True)
        )

        member = seeded.members.get_direct_member("private", "bob")
        assert member.scheme_admin is True
        assert member.scheme_editor is True
        assert member.scheme_viewer is False

        history = seeded.members.get_member_history("private", "bob")
        assert [e.action for e in history] == ["created"]

    def test_delete_records_deleted(self, seeded):
        seeded.members.save_member(BoardMember(board_id="private", user_id="bob", scheme_viewer=True))

        seeded.members.delete_member("private", "bob")

        with pytest.raises(NotFoundError):
            seeded.members.get_direct_member("private", "bob")

        history = seeded.members.get_member_history("private", "bob")
        assert [e.action for e in history] == ["deleted", "created"]
        assert all(isinstance(e.insert_at, datetime) for e in history)
        assert all(e.insert_at.tzinfo is not None for e in history)

    def test_delete_missing_member_writes_nothing(self, seeded):
        seeded.members.delete_member("private", "bob")

        assert seeded.members.get_member_history("private", "bob") == []

    def test_history_limit(self, seeded):
        seeded.members.save_member(BoardMember(board_id="private", user_id="bob"))
        seeded.members.delete_member("private", "bob")

        history = seeded.members.get_member_history("private", "bob", limit=1)

        assert [e.action for e in history] == ["deleted"]


class TestEffectiveMember:
    """Tests for get_effective_member."""

    def test_explicit_row_wins(self, seeded):
        seeded.members.save_member(
            BoardMember(board_id="channel-board", user_id="alice", scheme_admin=True)
        )

        member = seeded.members.get_effective_member("channel-board", "alice")

        assert member.synthetic is False
        assert member.scheme_admin is True

    def test_channel_member_is_synthetic_editor(self, seeded):
        member = seeded.members.get_effective_member("channel-board", "bob")

        assert member.synthetic is True
        assert member.roles == "editor"
        assert member.scheme_editor is True
        assert member.scheme_admin is False
        assert member.minimum_role == "commenter"

    def test_synthetic_member_not_persisted(self, seeded):
        seeded.members.get_effective_member("channel-board", "bob")

        with pytest.raises(NotFoundError):
            seeded.members.get_direct_member("channel-board", "bob")

    def test_not_in_channel(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.get_effective_member("channel-board", "carol")

    def test_guest_gets_nothing(self, seeded):
        """Guests never get synthetic memberships, even in the channel."""
        with pytest.raises(NotFoundError):
            seeded.members.get_effective_member("channel-board", "guest")

    def test_system_user_gets_nothing(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.get_effective_member("channel-board", SYSTEM_USER_ID)

    def test_unknown_user(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.get_effective_member("channel-board", "nobody")

    def test_missing_board(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.get_effective_member("nope", "bob")

    def test_open_template_team_member_is_viewer(self, seeded):
        member = seeded.members.get_effective_member("template", "carol")

        assert member.synthetic is True
        assert member.roles == "viewer"
        assert member.scheme_viewer is True
        assert member.scheme_editor is False

    def test_open_template_former_team_member(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.get_effective_member("template", "dave")

    def test_private_board_without_channel(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.get_effective_member("private", "carol")


class TestMemberListings:
    """Tests for list_members_for_user and list_members_for_board."""

    def test_members_for_user(self, seeded):
        seeded.members.save_member(BoardMember(board_id="private", user_id="bob", scheme_viewer=True))

        members = {m.board_id: m for m in seeded.members.list_members_for_user("bob")}

        assert set(members) == {"private", "channel-board"}
        assert members["private"].synthetic is False
        assert members["channel-board"].synthetic is True
        assert members["channel-board"].scheme_editor is True
        assert members["channel-board"].minimum_role == "commenter"

    def test_members_for_user_explicit_wins(self, seeded):
        seeded.members.save_member(
            BoardMember(board_id="channel-board", user_id="bob", scheme_admin=True)
        )

        members = seeded.members.list_members_for_user("bob")

        assert len(members) == 1
        assert members[0].synthetic is False
        assert members[0].scheme_admin is True

    def test_members_for_guest_are_explicit_only(self, seeded):
        seeded.members.save_member(BoardMember(board_id="private", user_id="guest", scheme_viewer=True))

        members = seeded.members.list_members_for_user("guest")

        assert [m.board_id for m in members] == ["private"]

    def test_members_for_unknown_user(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.members.list_members_for_user("nobody")

    def test_members_for_board(self, seeded):
        """Guests and bots in the channel get no synthetic membership."""
        seeded.members.save_member(
            BoardMember(board_id="channel-board", user_id="alice", scheme_admin=True)
        )

        members = {m.user_id: m for m in seeded.members.list_members_for_board("channel-board")}

        assert set(members) == {"alice", "bob"}
        assert members["alice"].synthetic is False
        assert members["alice"].scheme_admin is True
        assert members["bob"].synthetic is True

    def test_members_for_unlinked_board(self, seeded):
        seeded.members.save_member(BoardMember(board_id="private", user_id="carol"))

        members = seeded.members.list_members_for_board("private")

        assert [m.user_id for m in members] == ["carol"]


class TestSqlRoster:
    """Tests for SqlRoster lookups."""

    def test_get_user(self, database, dialect, roster):
        roster.user("guest", roles=GUEST_ROLES)

        with database.transaction() as conn:
            user = SqlRoster(dialect).get_user(conn, "guest")

        assert user == User(id="guest", roles=GUEST_ROLES)
        assert user.is_guest is True

    def test_bot_is_an_ordinary_user(self, database, dialect, roster):
        """Bot accounts only matter to the board member listing."""
        roster.user("robot", bot=True)

        with database.transaction() as conn:
            user = SqlRoster(dialect).get_user(conn, "robot")

        assert user == User(id="robot", roles="system_user")

    def test_unknown_user(self, database, dialect):
        with database.transaction() as conn:
            with pytest.raises(NotFoundError):
                SqlRoster(dialect).get_user(conn, "nobody")
