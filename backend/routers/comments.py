# routers/comments.py — Card comments with @mention notifications
from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import access
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session
from exceptions import AccessDenied
from loaders import load_board, load_card, load_comment, require_role
from models import Comment, ActivityType, utcnow
from notifier import notify_comment
from routers.websocket_router import manager
from schemas import RequestModel, comment_to_out

router = APIRouter(prefix="/api/comments", tags=["Comments"])


class CommentCreate(RequestModel):
    text: str = Field(..., min_length=1, max_length=10000)
    card_id: str


class CommentUpdate(RequestModel):
    text: str = Field(..., min_length=1, max_length=10000)


async def _comments_for_card(db: AsyncSession, card_id: str, user: CurrentUser) -> dict:
    card = await load_card(db, card_id)
    board = await load_board(db, card.board_id)
    require_role(board, user.id)

    stmt = (
        select(Comment)
        .where(Comment.card_id == card.id)
        .options(selectinload(Comment.author))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    comments = (await db.execute(stmt)).scalars().all()
    return {"success": True, "comments": [comment_to_out(c) for c in comments]}


@router.get("")
async def list_comments(
    card_id: str = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Comments on a card, oldest first"""
    return await _comments_for_card(db, card_id, user)


@router.get("/card/{card_id}")
async def list_card_comments(
    card_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _comments_for_card(db, card_id, user)


@router.post("", status_code=201)
async def create_comment(
    data: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Comment on a card; any @mention notifies the card's other members"""
    card = await load_card(db, data.card_id)
    board = await load_board(db, card.board_id)
    require_role(board, user.id, access.can_edit_content, "Insufficient permissions")

    comment = Comment(card_id=card.id, author_id=user.id, text=data.text)
    db.add(comment)
    await db.commit()
    comment = await load_comment(db, comment.id)
    payload = comment_to_out(comment).model_dump()

    await record_activity(
        db, ActivityType.COMMENT_ADDED, board.id, user.id,
        f'{user.name} commented on "{card.title}"', card_id=card.id,
    )
    await notify_comment(db, user, card, [m.id for m in card.members], data.text)
    await manager.publish(board.id, "comment-added", {"comment": payload, "card_id": card.id})
    return {"success": True, "comment": payload}


@router.put("/{comment_id}")
async def update_comment(
    comment_id: str,
    data: CommentUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Edit a comment (author only)"""
    comment = await load_comment(db, comment_id)
    card = await load_card(db, comment.card_id, include_archived=True)
    board = await load_board(db, card.board_id)
    require_role(board, user.id)
    if not access.can_edit_comment(comment.author_id, user.id):
        raise AccessDenied("Not authorized")

    comment.text = data.text
    comment.edited = True
    comment.edited_at = utcnow()
    await db.commit()
    comment = await load_comment(db, comment.id)
    payload = comment_to_out(comment).model_dump()

    await manager.publish(board.id, "comment-updated", {"comment": payload, "card_id": card.id})
    return {"success": True, "comment": payload}


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a comment (author, or board owner/admin)"""
    comment = await load_comment(db, comment_id)
    card = await load_card(db, comment.card_id, include_archived=True)
    board = await load_board(db, card.board_id)
    role = access.evaluate(board, user.id)
    if not access.can_delete_comment(role, comment.author_id, user.id):
        raise AccessDenied("Not authorized")

    await db.delete(comment)
    await db.commit()

    await manager.publish(board.id, "comment-deleted", {"comment_id": comment_id, "card_id": card.id})
    return {"success": True, "message": "Comment deleted"}
