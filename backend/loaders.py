# loaders.py — Entity lookups and the board role gate shared by the routers
from typing import Callable, Dict, List, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import access
from access import BoardRole
from exceptions import AccessDenied, NotFound
from models import Board, BoardMember, BoardList, Card, Comment, User
from positions import CARD_ORDER


async def load_board(db: AsyncSession, board_id: str) -> Board:
    """Board with owner and members freshly loaded; NotFound if absent"""
    stmt = (
        select(Board)
        .where(Board.id == board_id)
        .options(
            selectinload(Board.owner),
            selectinload(Board.members).selectinload(BoardMember.user),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    board = result.scalar_one_or_none()
    if not board:
        raise NotFound("Board")
    return board


async def load_list(db: AsyncSession, list_id: str) -> BoardList:
    stmt = select(BoardList).where(
        BoardList.id == list_id, BoardList.archived.is_(False)
    ).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    lst = result.scalar_one_or_none()
    if not lst:
        raise NotFound("List")
    return lst


async def load_card(db: AsyncSession, card_id: str, include_archived: bool = False) -> Card:
    """Card with members, attachments and checklists; archived cards are missing by default"""
    stmt = (
        select(Card)
        .where(Card.id == card_id)
        .options(
            selectinload(Card.members),
            selectinload(Card.attachments),
            selectinload(Card.checklists),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    card = result.scalar_one_or_none()
    if not card or (card.archived and not include_archived):
        raise NotFound("Card")
    return card


async def load_comment(db: AsyncSession, comment_id: str) -> Comment:
    stmt = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(selectinload(Comment.author))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    comment = result.scalar_one_or_none()
    if not comment:
        raise NotFound("Comment")
    return comment


async def load_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User")
    return user


def require_role(
    board: Board,
    user_id: str,
    check: Callable[[BoardRole], bool] = access.has_access,
    message: str = "Access denied",
) -> BoardRole:
    """Evaluate the caller's role and raise AccessDenied unless ``check`` passes"""
    role = access.evaluate(board, user_id)
    if not access.has_access(role):
        raise AccessDenied("Access denied")
    if not check(role):
        raise AccessDenied(message)
    return role


# ============================================================
# BATCHED READS
# ============================================================

async def comment_counts(db: AsyncSession, card_ids: Sequence[str]) -> Dict[str, int]:
    """One grouped COUNT for all cards"""
    if not card_ids:
        return {}
    stmt = (
        select(Comment.card_id, func.count(Comment.id))
        .where(Comment.card_id.in_(card_ids))
        .group_by(Comment.card_id)
    )
    result = await db.execute(stmt)
    return {card_id: count for card_id, count in result.all()}


async def load_open_cards(db: AsyncSession, list_ids: Sequence[str]) -> List[Card]:
    """Non-archived cards of the given lists in sibling order, in a single query"""
    if not list_ids:
        return []
    stmt = (
        select(Card)
        .where(Card.list_id.in_(list_ids), Card.archived.is_(False))
        .options(
            selectinload(Card.members),
            selectinload(Card.attachments),
            selectinload(Card.checklists),
        )
        .order_by(*CARD_ORDER)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
