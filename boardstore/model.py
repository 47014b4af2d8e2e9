"""
Domain entities for the board store.

This module defines the entities persisted and returned by the stores:
- Board and its partial-update companion BoardPatch
- BoardMember (explicit or synthetic)
- BoardMemberHistoryEntry for the membership audit log
- User, the collaborator view used for guest/bot decisions

Invariants:
    - delete_at == 0 means the board is live
    - Timestamps are Unix milliseconds, except history insert_at (datetime)
    - A synthetic BoardMember is never written to storage

How to change safely:
    - New Board fields need a column in boards AND boards_history
    - Keep codec.board_fields() and board_from_row() in the same order
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

GLOBAL_TEAM_ID = "0"
SYSTEM_USER_ID = "system"

GUEST_ROLE = "system_guest"

TRACKING_TEMPLATE_ID_KEY = "trackingTemplateId"


class BoardType(Enum):
    """Board visibility types."""

    OPEN = "O"
    PRIVATE = "P"


class BoardRole(Enum):
    """Role labels carried by memberships and board minimum roles."""

    NONE = ""
    VIEWER = "viewer"
    COMMENTER = "commenter"
    EDITOR = "editor"
    ADMIN = "admin"


class BoardSearchField(Enum):
    """What a board search term is matched against."""

    TITLE = "title"
    PROPERTY_NAME = "property_name"


class MemberAction(Enum):
    """Actions recorded in the membership history log."""

    CREATED = "created"
    DELETED = "deleted"


@dataclass
class Board:
    """A board and every persisted field of it.

    Attributes:
        id: Board identifier
        team_id: Owning team
        channel_id: Linked channel ("" when not linked)
        created_by: User that first inserted the board
        modified_by: User of the latest write
        type: BoardType value ("O" or "P")
        minimum_role: Minimum role granted to every member
        title: Board title
        description: Board description
        icon: Board icon
        show_description: Whether the description is shown
        is_template: Whether the board is a template
        template_version: Template version number
        properties: Free-form board properties
        card_properties: Ordered card property schema objects
        create_at: Creation timestamp (Unix ms)
        update_at: Last update timestamp (Unix ms)
        delete_at: Deletion timestamp (Unix ms), 0 when live
    """

    id: str
    team_id: str
    channel_id: str = ""
    created_by: str = ""
    modified_by: str = ""
    type: str = BoardType.OPEN.value
    minimum_role: str = ""
    title: str = ""
    description: str = ""
    icon: str = ""
    show_description: bool = False
    is_template: bool = False
    template_version: int = 0
    properties: dict[str, Any] = field(default_factory=dict)
    card_properties: list[dict[str, Any]] = field(default_factory=list)
    create_at: int = 0
    update_at: int = 0
    delete_at: int = 0

    def clone(self) -> Board:
        """Deep copy, so JSON fields can be changed without aliasing."""
        return copy.deepcopy(self)

    @property
    def is_open(self) -> bool:
        return self.type == BoardType.OPEN.value


@dataclass
class BoardPatch:
    """Partial update for a board.

    Every attribute left as None is not applied. Property maps are merged
    key by key and card properties are replaced by their "id".
    """

    type: str | None = None
    minimum_role: str | None = None
    title: str | None = None
    description: str | None = None
    icon: str | None = None
    show_description: bool | None = None
    channel_id: str | None = None
    updated_properties: dict[str, Any] = field(default_factory=dict)
    deleted_properties: list[str] = field(default_factory=list)
    updated_card_properties: list[dict[str, Any]] = field(default_factory=list)
    deleted_card_properties: list[str] = field(default_factory=list)

    def patch(self, board: Board) -> Board:
        """Apply the patch to a copy of board and return it."""
        patched = board.clone()

        for name in (
            "type",
            "minimum_role",
            "title",
            "description",
            "icon",
            "show_description",
            "channel_id",
        ):
            value = getattr(self, name)
            if value is not None:
                setattr(patched, name, value)

        patched.properties.update(copy.deepcopy(self.updated_properties))
        for key in self.deleted_properties:
            patched.properties.pop(key, None)

        if self.updated_card_properties:
            by_id = {
                cp.get("id"): i for i, cp in enumerate(patched.card_properties)
            }
            for card_property in self.updated_card_properties:
                index = by_id.get(card_property.get("id"))
                if index is None:
                    patched.card_properties.append(copy.deepcopy(card_property))
                else:
                    patched.card_properties[index] = copy.deepcopy(card_property)

        if self.deleted_card_properties:
            deleted = set(self.deleted_card_properties)
            patched.card_properties = [
                cp for cp in patched.card_properties if cp.get("id") not in deleted
            ]

        return patched


@dataclass
class BoardMember:
    """Membership of a user in a board.

    Attributes:
        board_id: Board identifier
        user_id: User identifier
        roles: Role label ("editor" / "viewer" for synthetic members)
        minimum_role: The board's minimum role
        scheme_admin: Admin capability
        scheme_editor: Editor capability
        scheme_commenter: Commenter capability
        scheme_viewer: Viewer capability
        synthetic: True when computed from rosters rather than stored
    """

    board_id: str
    user_id: str
    roles: str = ""
    minimum_role: str = ""
    scheme_admin: bool = False
    scheme_editor: bool = False
    scheme_commenter: bool = False
    scheme_viewer: bool = False
    synthetic: bool = False

    @classmethod
    def synthetic_editor(
        cls, board_id: str, user_id: str, minimum_role: str = ""
    ) -> BoardMember:
        return cls(
            board_id=board_id,
            user_id=user_id,
            roles=BoardRole.EDITOR.value,
            minimum_role=minimum_role,
            scheme_editor=True,
            synthetic=True,
        )

    @classmethod
    def synthetic_viewer(
        cls, board_id: str, user_id: str, minimum_role: str = ""
    ) -> BoardMember:
        return cls(
            board_id=board_id,
            user_id=user_id,
            roles=BoardRole.VIEWER.value,
            minimum_role=minimum_role,
            scheme_viewer=True,
            synthetic=True,
        )


@dataclass(frozen=True)
class BoardMemberHistoryEntry:
    """One row of the membership audit log."""

    board_id: str
    user_id: str
    action: str
    insert_at: datetime


@dataclass(frozen=True)
class BoardHistoryOptions:
    """Filters for board history queries. Zero values are ignored.

    Attributes:
        before_update_at: Only snapshots with update_at strictly lower
        after_update_at: Only snapshots with update_at strictly greater
        limit: Maximum snapshots returned
        descending: Newest first
    """

    before_update_at: int = 0
    after_update_at: int = 0
    limit: int = 0
    descending: bool = False


@dataclass(frozen=True)
class User:
    """Roster user as seen by the membership rules."""

    id: str
    roles: str = ""

    @property
    def is_guest(self) -> bool:
        return GUEST_ROLE in self.roles.split()
