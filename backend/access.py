# access.py — Board access evaluation
"""
Resolves the role a user holds on a board and answers the permission
questions every handler asks. Everything here is a pure function of the
board's owner, explicit members and visibility; nothing is cached, so a
membership change is visible on the very next request.

Rule order (first match wins):
    1. board owner              -> owner
    2. explicit board member    -> the stored role
    3. public board             -> viewer
    4. anything else            -> none
"""

import os
from enum import Enum
from typing import Any


class BoardRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"
    NONE = "none"


MANAGER_ROLES = frozenset({BoardRole.OWNER, BoardRole.ADMIN})

# Viewers may mutate cards, lists and comments unless this is switched off
VIEWER_CAN_EDIT = os.getenv("VIEWER_CAN_EDIT", "true").lower() == "true"

# "allow": members can still open an archived board by id; "hide": 404
ARCHIVED_BOARD_READ = os.getenv("ARCHIVED_BOARD_READ", "allow").lower()


def _value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


def evaluate(board: Any, user_id: str) -> BoardRole:
    """Return the role of ``user_id`` on ``board``."""
    if board.owner_id == user_id:
        return BoardRole.OWNER

    for member in board.members or []:
        if member.user_id == user_id:
            return BoardRole(_value(member.role))

    if _value(board.visibility) == "public":
        return BoardRole.VIEWER

    return BoardRole.NONE


def is_explicit_member(board: Any, user_id: str) -> bool:
    """Owner or a stored membership; public-board viewers do not count."""
    if board.owner_id == user_id:
        return True
    return any(m.user_id == user_id for m in board.members or [])


def has_access(role: BoardRole) -> bool:
    return role != BoardRole.NONE


def can_manage(role: BoardRole) -> bool:
    """Update the board, add or remove members."""
    return role in MANAGER_ROLES


def can_archive_board(role: BoardRole) -> bool:
    return role == BoardRole.OWNER


def can_edit_content(role: BoardRole) -> bool:
    """Create, update, move or delete lists, cards and comments."""
    if role == BoardRole.VIEWER:
        return VIEWER_CAN_EDIT
    return has_access(role)


def can_edit_comment(author_id: str, user_id: str) -> bool:
    return author_id == user_id


def can_delete_comment(role: BoardRole, author_id: str, user_id: str) -> bool:
    return author_id == user_id or role in MANAGER_ROLES


def hides_archived_boards() -> bool:
    return ARCHIVED_BOARD_READ == "hide"
