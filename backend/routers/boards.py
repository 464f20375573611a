# routers/boards.py — Boards, membership, list ordering and the full board read
import uuid
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import Field, AliasChoices
from sqlalchemy import select, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import access
from activity import record_activity, list_activity
from auth import get_current_user, CurrentUser
from database import get_db_session
from exceptions import NotFound, ValidationError
from loaders import load_board, load_user, load_open_cards, comment_counts, require_role
from models import Board, BoardMember, BoardList, BoardVisibility, MemberRole, ActivityType, Card, card_members
from notifier import notify_board_invite
from positions import LIST_ORDER, board_transaction, reindex_lists
from routers.websocket_router import manager
from schemas import (
    RequestModel, BoardDetailOut, ListWithCardsOut,
    board_to_out, list_to_out, card_to_out, activity_to_out, user_ref,
)

router = APIRouter(prefix="/api/boards", tags=["Boards"])


# ============================================================
# SCHEMAS
# ============================================================

class LabelIn(RequestModel):
    id: Optional[str] = None
    name: str = ""
    color: str = "#61bd4f"


class BoardCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    visibility: BoardVisibility = BoardVisibility.PRIVATE
    background: str = "#0079bf"
    labels: List[LabelIn] = Field(default_factory=list)


class BoardUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    visibility: Optional[BoardVisibility] = None
    background: Optional[str] = None
    labels: Optional[List[LabelIn]] = None


class MemberAdd(RequestModel):
    user_id: str
    role: MemberRole = Field(
        MemberRole.MEMBER,
        validation_alias=AliasChoices("role", "memberRole", "member_role"),
    )


class ListReorder(RequestModel):
    list_ids: List[str]


def _labels(labels: List[LabelIn]) -> list:
    return [
        {"id": label.id or str(uuid.uuid4()), "name": label.name, "color": label.color}
        for label in labels
    ]


async def _board_payload(db: AsyncSession, board_id: str) -> dict:
    board = await load_board(db, board_id)
    return board_to_out(board).model_dump()


# ============================================================
# BOARD ENDPOINTS
# ============================================================

@router.get("")
async def list_boards(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Boards the caller owns, belongs to, or that are public; archived boards excluded"""
    member_of = select(BoardMember.board_id).where(BoardMember.user_id == user.id)
    stmt = (
        select(Board)
        .where(
            Board.archived.is_(False),
            or_(
                Board.owner_id == user.id,
                Board.id.in_(member_of),
                Board.visibility == BoardVisibility.PUBLIC,
            ),
        )
        .options(
            selectinload(Board.owner),
            selectinload(Board.members).selectinload(BoardMember.user),
        )
        .order_by(Board.updated_at.desc(), Board.id)
    )
    result = await db.execute(stmt)
    boards = result.scalars().all()
    return {"success": True, "boards": [board_to_out(b) for b in boards]}


@router.get("/{board_id}")
async def get_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Full board: open lists in order, each with its open cards in order and comment counts"""
    board = await load_board(db, board_id)
    if board.archived and access.hides_archived_boards():
        raise NotFound("Board")
    require_role(board, user.id)

    lists_stmt = (
        select(BoardList)
        .where(BoardList.board_id == board.id, BoardList.archived.is_(False))
        .order_by(*LIST_ORDER)
    )
    lists = (await db.execute(lists_stmt)).scalars().all()

    cards = await load_open_cards(db, [lst.id for lst in lists])
    counts = await comment_counts(db, [c.id for c in cards])

    by_list = {lst.id: [] for lst in lists}
    for card in cards:
        by_list[card.list_id].append(card_to_out(card, counts.get(card.id, 0)))

    detail = BoardDetailOut(
        **board_to_out(board).model_dump(),
        lists=[
            ListWithCardsOut(**list_to_out(lst).model_dump(), cards=by_list[lst.id])
            for lst in lists
        ],
    )
    return {"success": True, "board": detail}


@router.post("", status_code=201)
async def create_board(
    data: BoardCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a board; the caller becomes its owner"""
    board = Board(
        title=data.title,
        description=data.description,
        owner_id=user.id,
        visibility=data.visibility,
        background=data.background or "#0079bf",
        labels=_labels(data.labels),
    )
    db.add(board)
    await db.commit()

    await record_activity(db, ActivityType.BOARD_CREATED, board.id, user.id, f"{user.name} created this board")
    return {"success": True, "board": await _board_payload(db, board.id)}


@router.put("/{board_id}")
async def update_board(
    board_id: str,
    data: BoardUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update title, description, visibility, background or labels (owner or admin)"""
    board = await load_board(db, board_id)
    require_role(board, user.id, access.can_manage, "Insufficient permissions")

    fields = data.model_fields_set
    before = board_to_out(board).model_dump()
    old_value = {k: before[k] for k in sorted(fields) if k in before}

    if "title" in fields:
        if not data.title:
            raise ValidationError("Title cannot be empty", errors=[{"loc": ["body", "title"], "msg": "Title cannot be empty", "type": "value_error"}])
        board.title = data.title
    if "description" in fields:
        board.description = data.description or ""
    if "visibility" in fields and data.visibility is not None:
        board.visibility = data.visibility
    if "background" in fields and data.background:
        board.background = data.background
    if "labels" in fields and data.labels is not None:
        board.labels = _labels(data.labels)

    await db.commit()
    board = await load_board(db, board.id)
    payload = board_to_out(board).model_dump()

    if payload["visibility"] != before["visibility"]:
        manager.prune(board.id, lambda uid: access.has_access(access.evaluate(board, uid)))

    await record_activity(
        db, ActivityType.BOARD_UPDATED, board.id, user.id,
        f"{user.name} updated this board",
        old_value=old_value,
        new_value={k: payload[k] for k in sorted(fields) if k in payload},
    )
    await manager.publish(board.id, "board-updated", {"board": payload})
    return {"success": True, "board": payload}


@router.delete("/{board_id}")
async def delete_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Archive a board (owner only). Lists and cards are left as they are."""
    board = await load_board(db, board_id)
    require_role(board, user.id, access.can_archive_board, "Only owner can delete board")

    board.archived = True
    await db.commit()

    await record_activity(db, ActivityType.BOARD_DELETED, board.id, user.id, f"{user.name} archived this board")
    await manager.publish(board.id, "board-deleted", {"board_id": board.id})
    return {"success": True, "message": "Board archived"}


# ============================================================
# MEMBERSHIP
# ============================================================

@router.post("/{board_id}/members")
async def add_member(
    board_id: str,
    data: MemberAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Add a member with role admin, member or viewer (owner or admin)"""
    board = await load_board(db, board_id)
    require_role(board, user.id, access.can_manage, "Insufficient permissions")

    invitee = await load_user(db, data.user_id)
    if access.is_explicit_member(board, invitee.id):
        raise ValidationError(
            "User is already a member",
            errors=[{"loc": ["body", "user_id"], "msg": "User is already a member", "type": "duplicate"}],
        )

    db.add(BoardMember(board_id=board.id, user_id=invitee.id, role=data.role))
    await db.commit()
    payload = await _board_payload(db, board.id)

    await record_activity(
        db, ActivityType.MEMBER_ADDED, board.id, user.id,
        f"{user.name} added {invitee.display_name or invitee.email} to this board",
        new_value={"user_id": invitee.id, "role": data.role.value},
    )
    await notify_board_invite(db, user, board, invitee.id)
    await manager.publish(board.id, "member-added", {
        "board": payload,
        "added_user": user_ref(invitee).model_dump(),
    })
    return {"success": True, "board": payload}


@router.delete("/{board_id}/members/{user_id}")
async def remove_member(
    board_id: str,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Remove an explicit member (owner or admin); the owner cannot be removed"""
    board = await load_board(db, board_id)
    require_role(board, user.id, access.can_manage, "Insufficient permissions")

    if user_id == board.owner_id:
        raise ValidationError(
            "The board owner cannot be removed",
            errors=[{"loc": ["path", "user_id"], "msg": "The board owner cannot be removed", "type": "value_error"}],
        )
    membership = next((m for m in board.members if m.user_id == user_id), None)
    if membership is None:
        raise NotFound("Member")

    removed_name = membership.user.display_name if membership.user else user_id
    old_role = membership.role.value if hasattr(membership.role, "value") else membership.role
    # card members must stay a subset of board members
    board_cards = select(Card.id).where(Card.board_id == board.id)
    assigned = (await db.execute(
        select(card_members.c.card_id)
        .where(card_members.c.user_id == user_id, card_members.c.card_id.in_(board_cards))
    )).scalars().all()
    await db.execute(
        delete(card_members)
        .where(card_members.c.user_id == user_id, card_members.c.card_id.in_(board_cards))
    )
    await db.delete(membership)
    await db.commit()
    board = await load_board(db, board.id)
    payload = board_to_out(board).model_dump()

    if not access.has_access(access.evaluate(board, user_id)):
        manager.leave_user(board.id, user_id)

    await record_activity(
        db, ActivityType.MEMBER_REMOVED, board.id, user.id,
        f"{user.name} removed {removed_name} from this board",
        old_value={"user_id": user_id, "role": old_role, "card_ids": sorted(assigned)},
    )
    await manager.publish(board.id, "member-removed", {
        "board": payload,
        "removed_user_id": user_id,
        "unassigned_card_ids": sorted(assigned),
    })
    return {"success": True, "board": payload}


# ============================================================
# LIST ORDER & ACTIVITY
# ============================================================

@router.put("/{board_id}/lists/reorder")
async def reorder_lists(
    board_id: str,
    data: ListReorder,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Rewrite list positions to 0..N-1 in the submitted order"""
    board = await load_board(db, board_id)
    require_role(board, user.id, access.can_edit_content, "Insufficient permissions")

    async with board_transaction(db, board.id):
        await reindex_lists(db, board.id, data.list_ids)

    stmt = (
        select(BoardList)
        .where(BoardList.board_id == board.id, BoardList.archived.is_(False))
        .order_by(*LIST_ORDER)
        .execution_options(populate_existing=True)
    )
    lists = [list_to_out(lst).model_dump() for lst in (await db.execute(stmt)).scalars().all()]

    await manager.publish(board.id, "lists-reordered", {"lists": lists})
    return {"success": True, "lists": lists}


@router.get("/{board_id}/activity")
async def board_activity(
    board_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Most recent activity on the board, newest first"""
    board = await load_board(db, board_id)
    require_role(board, user.id)
    entries = await list_activity(db, board.id, limit)
    return {"success": True, "activities": [activity_to_out(a) for a in entries]}
