# routers/lists.py — List CRUD and card ordering within a list
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

import access
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session
from exceptions import ValidationError
from loaders import load_board, load_list, load_open_cards, comment_counts, require_role
from models import BoardList, Card, ActivityType
from positions import board_transaction, move_list, reindex_cards
from routers.websocket_router import manager
from schemas import RequestModel, list_to_out, card_to_out

router = APIRouter(prefix="/api/lists", tags=["Lists"])


class ListCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=200)
    board_id: str
    position: Optional[int] = Field(None, ge=0)


class ListUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    position: Optional[int] = Field(None, ge=0)


class CardReorder(RequestModel):
    card_ids: List[str]


async def _editable_list(db: AsyncSession, list_id: str, user: CurrentUser):
    lst = await load_list(db, list_id)
    board = await load_board(db, lst.board_id)
    require_role(board, user.id, access.can_edit_content, "Insufficient permissions")
    return lst, board


@router.post("", status_code=201)
async def create_list(
    data: ListCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Add a list to a board at the given position (default 0)"""
    board = await load_board(db, data.board_id)
    require_role(board, user.id, access.can_edit_content, "Insufficient permissions")

    lst = BoardList(board_id=board.id, title=data.title, position=data.position or 0)
    db.add(lst)
    await db.commit()
    payload = list_to_out(lst).model_dump()

    await record_activity(
        db, ActivityType.LIST_CREATED, board.id, user.id,
        f'{user.name} added list "{lst.title}"', list_id=lst.id,
    )
    await manager.publish(board.id, "list-created", {"list": payload})
    return {"success": True, "list": payload}


@router.put("/{list_id}")
async def update_list(
    list_id: str,
    data: ListUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Rename a list and/or move it to a new position among the board's lists"""
    lst, board = await _editable_list(db, list_id, user)
    fields = data.model_fields_set
    old_value = {"title": lst.title, "position": lst.position}

    if "title" in fields:
        if not data.title:
            raise ValidationError("Title cannot be empty", errors=[{"loc": ["body", "title"], "msg": "Title cannot be empty", "type": "value_error"}])
        lst.title = data.title

    if "position" in fields and data.position is not None:
        async with board_transaction(db, board.id):
            await move_list(db, lst.id, board.id, data.position)
    else:
        await db.commit()

    lst = await load_list(db, list_id)
    payload = list_to_out(lst).model_dump()

    await record_activity(
        db, ActivityType.LIST_UPDATED, board.id, user.id,
        f'{user.name} updated list "{lst.title}"', list_id=lst.id,
        old_value=old_value, new_value={"title": lst.title, "position": lst.position},
    )
    await manager.publish(board.id, "list-updated", {"list": payload})
    return {"success": True, "list": payload}


@router.delete("/{list_id}")
async def delete_list(
    list_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Archive a list together with every card currently in it"""
    lst, board = await _editable_list(db, list_id, user)

    await db.execute(
        update(Card)
        .where(Card.list_id == lst.id, Card.archived.is_(False))
        .values(archived=True)
        .execution_options(synchronize_session=False)
    )
    lst.archived = True
    await db.commit()

    await record_activity(
        db, ActivityType.LIST_DELETED, board.id, user.id,
        f'{user.name} archived list "{lst.title}"', list_id=lst.id,
    )
    await manager.publish(board.id, "list-deleted", {"list_id": lst.id})
    return {"success": True, "message": "List archived"}


@router.put("/{list_id}/cards/reorder")
async def reorder_cards(
    list_id: str,
    data: CardReorder,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Rewrite card positions to 0..N-1 in the submitted order, pulling in cards from sibling lists"""
    lst, board = await _editable_list(db, list_id, user)

    async with board_transaction(db, board.id):
        await reindex_cards(db, lst.id, board.id, data.card_ids)

    cards = await load_open_cards(db, [lst.id])
    counts = await comment_counts(db, [c.id for c in cards])
    payload = [card_to_out(c, counts.get(c.id, 0)).model_dump() for c in cards]

    await manager.publish(board.id, "cards-reordered", {"list_id": lst.id, "cards": payload})
    return {"success": True, "cards": payload}
