# routers/cards.py — Cards: CRUD, moves, members, attachments and checklists
import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, UploadFile, File
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import access
from activity import record_activity
from auth import get_current_user, CurrentUser
from blob_store import save_attachment
from database import get_db_session
from exceptions import NotFound, ValidationError
from loaders import load_board, load_list, load_card, load_user, comment_counts, require_role
from models import (
    Card, CardAttachment, CardChecklist, Comment, CardPriority, ActivityType, utcnow,
)
from notifier import notify_card_assigned
from positions import board_transaction, move_card as shift_card
from routers.websocket_router import manager
from schemas import RequestModel, CardDetailOut, card_to_out, comment_to_out

router = APIRouter(prefix="/api/cards", tags=["Cards"])

# Fields snapshotted into card_updated activity entries
TRACKED_FIELDS = ("title", "description", "due_date", "priority")


# ============================================================
# SCHEMAS
# ============================================================

class CardCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=500)
    list_id: str
    board_id: Optional[str] = None
    position: Optional[int] = Field(None, ge=0)
    description: str = ""
    priority: CardPriority = CardPriority.MEDIUM
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    labels: List[str] = Field(default_factory=list)


class CardUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    priority: Optional[CardPriority] = None
    labels: Optional[List[str]] = None
    cover: Optional[str] = None
    completed: Optional[bool] = None


class CardMove(RequestModel):
    list_id: str
    position: int = Field(0, ge=0)


class CardMemberAdd(RequestModel):
    user_id: str


class ChecklistItemIn(RequestModel):
    id: Optional[str] = None
    text: str = Field(..., min_length=1)
    completed: bool = False


class ChecklistCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=200)
    items: List[ChecklistItemIn] = Field(default_factory=list)


class ChecklistUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    items: Optional[List[ChecklistItemIn]] = None


# ============================================================
# HELPERS
# ============================================================

def _snapshot(card: Card) -> dict:
    priority = card.priority.value if hasattr(card.priority, "value") else card.priority
    return {
        "title": card.title,
        "description": card.description,
        "due_date": card.due_date.isoformat() if card.due_date else None,
        "priority": priority,
    }


async def _editable_card(db: AsyncSession, card_id: str, user: CurrentUser):
    card = await load_card(db, card_id)
    board = await load_board(db, card.board_id)
    require_role(board, user.id, access.can_edit_content, "Insufficient permissions")
    return card, board


async def _card_payload(db: AsyncSession, card_id: str) -> dict:
    card = await load_card(db, card_id)
    counts = await comment_counts(db, [card.id])
    return card_to_out(card, counts.get(card.id, 0)).model_dump()


def _checklist_items(items: List[ChecklistItemIn], previous: list, user_id: str) -> list:
    """Keep completion metadata for items that stay completed; stamp newly completed ones"""
    before = {item.get("id"): item for item in previous or []}
    out = []
    for item in items:
        item_id = item.id or str(uuid.uuid4())
        prior = before.get(item_id, {})
        if item.completed and prior.get("completed"):
            completed_by, completed_at = prior.get("completed_by"), prior.get("completed_at")
        elif item.completed:
            completed_by, completed_at = user_id, utcnow().isoformat()
        else:
            completed_by, completed_at = None, None
        out.append({
            "id": item_id,
            "text": item.text,
            "completed": item.completed,
            "completed_by": completed_by,
            "completed_at": completed_at,
        })
    return out


# ============================================================
# CARD ENDPOINTS
# ============================================================

@router.post("", status_code=201)
async def create_card(
    data: CardCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a card in a list; the board is always the list's board"""
    lst = await load_list(db, data.list_id)
    if data.board_id and data.board_id != lst.board_id:
        raise ValidationError(
            "List does not belong to the given board",
            errors=[{"loc": ["body", "board_id"], "msg": "List does not belong to the given board", "type": "value_error"}],
        )
    board = await load_board(db, lst.board_id)
    require_role(board, user.id, access.can_edit_content, "Insufficient permissions")

    card = Card(
        board_id=lst.board_id,
        list_id=lst.id,
        creator_id=user.id,
        title=data.title,
        description=data.description,
        position=data.position or 0,
        priority=data.priority,
        due_date=data.due_date,
        start_date=data.start_date,
        labels=data.labels,
    )
    db.add(card)
    await db.commit()
    payload = await _card_payload(db, card.id)

    await record_activity(
        db, ActivityType.CARD_CREATED, board.id, user.id,
        f'{user.name} added "{card.title}" to {lst.title}',
        card_id=card.id, list_id=lst.id,
    )
    await manager.publish(board.id, "card-created", {"card": payload, "list_id": lst.id})
    return {"success": True, "card": payload}


@router.get("/{card_id}")
async def get_card(
    card_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Card with members, attachments, checklists and comments (oldest first)"""
    card = await load_card(db, card_id)
    board = await load_board(db, card.board_id)
    require_role(board, user.id)

    lst = await load_list(db, card.list_id)
    stmt = (
        select(Comment)
        .where(Comment.card_id == card.id)
        .options(selectinload(Comment.author))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    comments = (await db.execute(stmt)).scalars().all()

    detail = CardDetailOut(
        **card_to_out(card, len(comments)).model_dump(),
        list_title=lst.title,
        board_title=board.title,
        comments=[comment_to_out(c) for c in comments],
    )
    return {"success": True, "card": detail}


@router.put("/{card_id}")
async def update_card(
    card_id: str,
    data: CardUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Partial update; only fields present in the body change"""
    card, board = await _editable_card(db, card_id, user)
    fields = data.model_fields_set
    tracked = [k for k in TRACKED_FIELDS if k in fields]
    old_value = _snapshot(card)

    if "title" in fields:
        if not data.title:
            raise ValidationError("Title cannot be empty", errors=[{"loc": ["body", "title"], "msg": "Title cannot be empty", "type": "value_error"}])
        card.title = data.title
    if "description" in fields:
        card.description = data.description or ""
    if "due_date" in fields:
        card.due_date = data.due_date
    if "start_date" in fields:
        card.start_date = data.start_date
    if "priority" in fields and data.priority is not None:
        card.priority = data.priority
    if "labels" in fields:
        card.labels = data.labels or []
    if "cover" in fields:
        card.cover = data.cover or ""
    if "completed" in fields and data.completed is not None:
        card.completed = data.completed

    await db.commit()
    payload = await _card_payload(db, card.id)

    await record_activity(
        db, ActivityType.CARD_UPDATED, board.id, user.id,
        f'{user.name} updated "{payload["title"]}"',
        card_id=card.id,
        old_value={k: old_value[k] for k in tracked} or None,
        new_value={k: payload[k] for k in tracked} or None,
    )
    await manager.publish(board.id, "card-updated", {"card": payload})
    return {"success": True, "card": payload}


@router.put("/{card_id}/move")
async def move_card(
    card_id: str,
    data: CardMove,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Move a card to a position in the same or another list of its board"""
    card, board = await _editable_card(db, card_id, user)
    target = await load_list(db, data.list_id)
    if target.board_id != card.board_id:
        raise ValidationError(
            "Target list belongs to another board",
            errors=[{"loc": ["body", "list_id"], "msg": "Target list belongs to another board", "type": "value_error"}],
        )

    async with board_transaction(db, board.id):
        old_list_id, old_position = await shift_card(db, card.id, target.id, data.position)

    payload = await _card_payload(db, card.id)

    await record_activity(
        db, ActivityType.CARD_MOVED, board.id, user.id,
        f'{user.name} moved "{payload["title"]}" to {target.title}',
        card_id=card.id, list_id=target.id,
        old_value={"list_id": old_list_id, "position": old_position},
        new_value={"list_id": target.id, "position": data.position},
    )
    await manager.publish(board.id, "card-moved", {
        "card": payload,
        "old_list_id": old_list_id,
        "new_list_id": target.id,
    })
    return {"success": True, "card": payload}


@router.delete("/{card_id}")
async def delete_card(
    card_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Archive a card"""
    card, board = await _editable_card(db, card_id, user)
    card.archived = True
    await db.commit()

    await record_activity(
        db, ActivityType.CARD_DELETED, board.id, user.id,
        f'{user.name} archived "{card.title}"', card_id=card.id, list_id=card.list_id,
    )
    await manager.publish(board.id, "card-deleted", {"card_id": card.id, "list_id": card.list_id})
    return {"success": True, "message": "Card archived"}


# ============================================================
# CARD MEMBERS
# ============================================================

async def _add_card_member(db: AsyncSession, card_id: str, member_id: str, user: CurrentUser) -> dict:
    card, board = await _editable_card(db, card_id, user)
    if not access.is_explicit_member(board, member_id):
        raise ValidationError(
            "User is not a member of this board",
            errors=[{"loc": ["body", "user_id"], "msg": "User is not a member of this board", "type": "value_error"}],
        )

    added = False
    if all(m.id != member_id for m in card.members):
        card.members.append(await load_user(db, member_id))
        await db.commit()
        added = True

    payload = await _card_payload(db, card.id)
    if added:
        await notify_card_assigned(db, user, card, member_id)
        await manager.publish(board.id, "card-updated", {"card": payload})
    return payload


@router.post("/{card_id}/members")
async def add_card_member_from_body(
    card_id: str,
    data: CardMemberAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Assign a board member to the card (user id in the body)"""
    return {"success": True, "card": await _add_card_member(db, card_id, data.user_id, user)}


@router.post("/{card_id}/members/{user_id}")
async def add_card_member(
    card_id: str,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Assign a board member to the card"""
    return {"success": True, "card": await _add_card_member(db, card_id, user_id, user)}


@router.delete("/{card_id}/members/{user_id}")
async def remove_card_member(
    card_id: str,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    card, board = await _editable_card(db, card_id, user)
    remaining = [m for m in card.members if m.id != user_id]
    removed = len(remaining) != len(card.members)
    if removed:
        card.members = remaining
        await db.commit()

    payload = await _card_payload(db, card.id)
    if removed:
        await manager.publish(board.id, "card-updated", {"card": payload})
    return {"success": True, "card": payload}


# ============================================================
# ATTACHMENTS
# ============================================================

@router.post("/{card_id}/attachments")
async def upload_attachment(
    card_id: str,
    file: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Upload a file (multipart field "file") and attach it to the card"""
    card, board = await _editable_card(db, card_id, user)
    blob = await save_attachment(file)

    db.add(CardAttachment(
        card_id=card.id,
        uploader_id=user.id,
        name=blob.name,
        url=blob.url,
        mime_type=blob.mime_type,
        size=blob.size,
    ))
    await db.commit()
    payload = await _card_payload(db, card.id)

    await manager.publish(board.id, "card-updated", {"card": payload})
    return {"success": True, "card": payload}


# ============================================================
# CHECKLISTS
# ============================================================

async def _load_checklist(db: AsyncSession, card: Card, checklist_id: str) -> CardChecklist:
    stmt = select(CardChecklist).where(
        CardChecklist.id == checklist_id, CardChecklist.card_id == card.id
    )
    checklist = (await db.execute(stmt)).scalar_one_or_none()
    if not checklist:
        raise NotFound("Checklist")
    return checklist


@router.post("/{card_id}/checklists")
async def add_checklist(
    card_id: str,
    data: ChecklistCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    card, board = await _editable_card(db, card_id, user)
    db.add(CardChecklist(
        card_id=card.id,
        title=data.title,
        items=_checklist_items(data.items, [], user.id),
    ))
    await db.commit()
    payload = await _card_payload(db, card.id)

    await manager.publish(board.id, "card-updated", {"card": payload})
    return {"success": True, "card": payload}


@router.put("/{card_id}/checklists/{checklist_id}")
async def update_checklist(
    card_id: str,
    checklist_id: str,
    data: ChecklistUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Rename a checklist and/or replace its items"""
    card, board = await _editable_card(db, card_id, user)
    checklist = await _load_checklist(db, card, checklist_id)

    fields = data.model_fields_set
    if "title" in fields:
        if not data.title:
            raise ValidationError("Title cannot be empty", errors=[{"loc": ["body", "title"], "msg": "Title cannot be empty", "type": "value_error"}])
        checklist.title = data.title
    if "items" in fields and data.items is not None:
        # Reassign so the JSON column is marked dirty
        checklist.items = _checklist_items(data.items, checklist.items, user.id)

    await db.commit()
    payload = await _card_payload(db, card.id)

    await manager.publish(board.id, "card-updated", {"card": payload})
    return {"success": True, "card": payload}


@router.delete("/{card_id}/checklists/{checklist_id}")
async def delete_checklist(
    card_id: str,
    checklist_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    card, board = await _editable_card(db, card_id, user)
    checklist = await _load_checklist(db, card, checklist_id)
    await db.delete(checklist)
    await db.commit()
    payload = await _card_payload(db, card.id)

    await manager.publish(board.id, "card-updated", {"card": payload})
    return {"success": True, "card": payload}
