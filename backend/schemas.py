# schemas.py — Request base class and response models shared by the routers
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _enum(v) -> Any:
    return v.value if hasattr(v, "value") else v


class RequestModel(BaseModel):
    """Request bodies accept snake_case names and their camelCase aliases"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================
# RESPONSE MODELS
# ============================================================

class UserRef(BaseModel):
    id: str
    display_name: str
    email: str
    avatar_url: Optional[str] = None


class MemberOut(BaseModel):
    user: UserRef
    role: str
    joined_at: Optional[str] = None


class LabelOut(BaseModel):
    id: str
    name: str
    color: str


class BoardOut(BaseModel):
    id: str
    title: str
    description: str
    owner_id: str
    owner: Optional[UserRef] = None
    visibility: str
    background: str
    labels: List[LabelOut] = []
    members: List[MemberOut] = []
    archived: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AttachmentOut(BaseModel):
    id: str
    name: str
    url: str
    mime_type: Optional[str] = None
    size: int
    uploader_id: str
    uploaded_at: Optional[str] = None


class ChecklistItemOut(BaseModel):
    id: str
    text: str
    completed: bool = False
    completed_by: Optional[str] = None
    completed_at: Optional[str] = None


class ChecklistOut(BaseModel):
    id: str
    title: str
    items: List[ChecklistItemOut] = []


class CardOut(BaseModel):
    id: str
    board_id: str
    list_id: str
    title: str
    description: str
    position: int
    labels: List[str] = []
    members: List[UserRef] = []
    due_date: Optional[str] = None
    start_date: Optional[str] = None
    priority: str
    cover: str = ""
    attachments: List[AttachmentOut] = []
    checklists: List[ChecklistOut] = []
    archived: bool
    completed: bool
    comment_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ListOut(BaseModel):
    id: str
    board_id: str
    title: str
    position: int
    archived: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ListWithCardsOut(ListOut):
    cards: List[CardOut] = []


class BoardDetailOut(BoardOut):
    lists: List[ListWithCardsOut] = []


class CommentOut(BaseModel):
    id: str
    card_id: str
    author_id: str
    author: Optional[UserRef] = None
    text: str
    edited: bool
    edited_at: Optional[str] = None
    created_at: Optional[str] = None


class CardDetailOut(CardOut):
    list_title: Optional[str] = None
    board_title: Optional[str] = None
    comments: List[CommentOut] = []


class ActivityOut(BaseModel):
    id: str
    type: str
    board_id: str
    card_id: Optional[str] = None
    list_id: Optional[str] = None
    user: Optional[UserRef] = None
    description: str
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    message: str
    card_id: Optional[str] = None
    board_id: Optional[str] = None
    read: bool
    created_at: Optional[str] = None


# ============================================================
# CONVERTERS (relationships must already be loaded)
# ============================================================

def user_ref(u) -> Optional[UserRef]:
    if u is None:
        return None
    return UserRef(id=u.id, display_name=u.display_name or "", email=u.email, avatar_url=u.avatar_url)


def board_to_out(board) -> BoardOut:
    """The owner is listed first as a derived "owner" membership"""
    members = [MemberOut(user=user_ref(board.owner), role="owner", joined_at=_ts(board.created_at))]
    members += [
        MemberOut(user=user_ref(m.user), role=_enum(m.role), joined_at=_ts(m.joined_at))
        for m in board.members
    ]
    return BoardOut(
        id=board.id,
        title=board.title,
        description=board.description or "",
        owner_id=board.owner_id,
        owner=user_ref(board.owner),
        visibility=_enum(board.visibility),
        background=board.background,
        labels=[LabelOut(**label) for label in board.labels or []],
        members=members,
        archived=board.archived or False,
        created_at=_ts(board.created_at),
        updated_at=_ts(board.updated_at),
    )


def list_to_out(lst) -> ListOut:
    return ListOut(
        id=lst.id,
        board_id=lst.board_id,
        title=lst.title,
        position=lst.position or 0,
        archived=lst.archived or False,
        created_at=_ts(lst.created_at),
        updated_at=_ts(lst.updated_at),
    )


def checklist_to_out(cl) -> ChecklistOut:
    return ChecklistOut(
        id=cl.id,
        title=cl.title,
        items=[ChecklistItemOut(**item) for item in cl.items or []],
    )


def attachment_to_out(a) -> AttachmentOut:
    return AttachmentOut(
        id=a.id,
        name=a.name,
        url=a.url,
        mime_type=a.mime_type,
        size=a.size or 0,
        uploader_id=a.uploader_id,
        uploaded_at=_ts(a.uploaded_at),
    )


def card_to_out(card, comment_count: int = 0) -> CardOut:
    return CardOut(
        id=card.id,
        board_id=card.board_id,
        list_id=card.list_id,
        title=card.title,
        description=card.description or "",
        position=card.position or 0,
        labels=card.labels or [],
        members=[user_ref(u) for u in card.members],
        due_date=_ts(card.due_date),
        start_date=_ts(card.start_date),
        priority=_enum(card.priority),
        cover=card.cover or "",
        attachments=[attachment_to_out(a) for a in card.attachments],
        checklists=[checklist_to_out(cl) for cl in card.checklists],
        archived=card.archived or False,
        completed=card.completed or False,
        comment_count=comment_count,
        created_at=_ts(card.created_at),
        updated_at=_ts(card.updated_at),
    )


def comment_to_out(c) -> CommentOut:
    return CommentOut(
        id=c.id,
        card_id=c.card_id,
        author_id=c.author_id,
        author=user_ref(c.author),
        text=c.text,
        edited=c.edited or False,
        edited_at=_ts(c.edited_at),
        created_at=_ts(c.created_at),
    )


def activity_to_out(a) -> ActivityOut:
    return ActivityOut(
        id=a.id,
        type=_enum(a.type),
        board_id=a.board_id,
        card_id=a.card_id,
        list_id=a.list_id,
        user=user_ref(a.user),
        description=a.description,
        old_value=a.old_value,
        new_value=a.new_value,
        created_at=_ts(a.created_at),
    )


def notification_to_out(n) -> NotificationOut:
    return NotificationOut(
        id=n.id,
        type=_enum(n.type),
        title=n.title,
        message=n.message,
        card_id=n.card_id,
        board_id=n.board_id,
        read=n.read or False,
        created_at=_ts(n.created_at),
    )
