# positions.py — Integer ordering of lists within a board and cards within a list
"""
Sibling order is ``position ASC, created_at ASC, id ASC``. Positions are not
required to be contiguous; a bulk reindex rewrites them to ``0..N-1``.

Every shift is one ``UPDATE ... SET position = position +/- 1`` statement.
Callers run the whole shift-then-set sequence inside ``board_transaction``,
which holds the board's lock and commits (or rolls back) once at the end.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import ValidationError
from locks import KeyedLock
from models import BoardList, Card

logger = logging.getLogger("taskboard.positions")

LIST_ORDER = (BoardList.position.asc(), BoardList.created_at.asc(), BoardList.id.asc())
CARD_ORDER = (Card.position.asc(), Card.created_at.asc(), Card.id.asc())

_board_locks = KeyedLock()


def board_lock(board_id: str):
    """Async context manager holding the board's lock; released locks are forgotten"""
    return _board_locks.hold(board_id)


def clear_locks():
    """Forget all board locks (they bind to the loop that first contends them)"""
    _board_locks.clear()


@asynccontextmanager
async def board_transaction(db: AsyncSession, board_id: str):
    """Serialize position writes for one board and commit them as a unit"""
    async with board_lock(board_id):
        try:
            yield
            await db.commit()
        except Exception:
            await db.rollback()
            raise


# ============================================================
# INCREMENTAL MOVES
# ============================================================

async def move_list(db: AsyncSession, list_id: str, board_id: str, to_position: int):
    """Open a slot at ``to_position`` among the board's lists and place the list there"""
    await db.execute(
        update(BoardList)
        .where(
            BoardList.board_id == board_id,
            BoardList.id != list_id,
            BoardList.position >= to_position,
        )
        .values(position=BoardList.position + 1)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(BoardList)
        .where(BoardList.id == list_id)
        .values(position=to_position)
        .execution_options(synchronize_session=False)
    )


async def move_card(
    db: AsyncSession, card_id: str, to_list_id: str, to_position: int
) -> Tuple[str, int]:
    """Move a card within or across lists; returns its previous (list_id, position)"""
    # Read inside the lock so a concurrent move cannot hand us a stale origin
    result = await db.execute(select(Card.list_id, Card.position).where(Card.id == card_id))
    old_list_id, old_position = result.one()

    if old_list_id != to_list_id:
        await db.execute(
            update(Card)
            .where(
                Card.list_id == old_list_id,
                Card.id != card_id,
                Card.position > old_position,
            )
            .values(position=Card.position - 1)
            .execution_options(synchronize_session=False)
        )

    await db.execute(
        update(Card)
        .where(
            Card.list_id == to_list_id,
            Card.id != card_id,
            Card.position >= to_position,
        )
        .values(position=Card.position + 1)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Card)
        .where(Card.id == card_id)
        .values(list_id=to_list_id, position=to_position)
        .execution_options(synchronize_session=False)
    )
    logger.debug(
        f"Card {card_id[:8]} moved {old_list_id[:8]}@{old_position} -> {to_list_id[:8]}@{to_position}"
    )
    return old_list_id, old_position


# ============================================================
# BULK REINDEX
# ============================================================

def _check_unique(ids: Sequence[str], field: str):
    seen, dupes = set(), []
    for i in ids:
        if i in seen:
            dupes.append(i)
        seen.add(i)
    if dupes:
        raise ValidationError(
            "Ordering contains duplicate ids",
            errors=[{"loc": ["body", field], "msg": f"Duplicate id {d}", "type": "duplicate"} for d in dupes],
        )


async def reindex_lists(db: AsyncSession, board_id: str, ordered_ids: List[str]):
    """Rewrite every open list's position on the board to its index in ``ordered_ids``"""
    _check_unique(ordered_ids, "list_ids")

    result = await db.execute(
        select(BoardList.id).where(BoardList.board_id == board_id, BoardList.archived.is_(False))
    )
    current = set(result.scalars().all())
    submitted = set(ordered_ids)

    unknown = submitted - current
    missing = current - submitted
    if unknown or missing:
        errors = [{"loc": ["body", "list_ids"], "msg": f"Unknown list {i}", "type": "unknown"} for i in sorted(unknown)]
        errors += [{"loc": ["body", "list_ids"], "msg": f"Missing list {i}", "type": "missing"} for i in sorted(missing)]
        raise ValidationError("Ordering must list every open list of the board exactly once", errors=errors)

    if ordered_ids:
        await db.execute(
            update(BoardList),
            [{"id": list_id, "position": index} for index, list_id in enumerate(ordered_ids)],
        )


async def reindex_cards(db: AsyncSession, list_id: str, board_id: str, ordered_ids: List[str]):
    """
    Rewrite card positions of a list to their index in ``ordered_ids``.

    The ordering must contain every open card of the list. Open cards of other
    lists on the same board may be included; they are moved into this list.
    """
    _check_unique(ordered_ids, "card_ids")

    result = await db.execute(
        select(Card.id, Card.list_id).where(
            Card.id.in_(ordered_ids),
            Card.board_id == board_id,
            Card.archived.is_(False),
        )
    )
    known = {row.id: row.list_id for row in result}

    result = await db.execute(
        select(Card.id).where(Card.list_id == list_id, Card.archived.is_(False))
    )
    in_list = set(result.scalars().all())

    unknown = [i for i in ordered_ids if i not in known]
    missing = in_list - set(ordered_ids)
    if unknown or missing:
        errors = [{"loc": ["body", "card_ids"], "msg": f"Unknown card {i}", "type": "unknown"} for i in unknown]
        errors += [{"loc": ["body", "card_ids"], "msg": f"Missing card {i}", "type": "missing"} for i in sorted(missing)]
        raise ValidationError("Ordering must list every open card of the list exactly once", errors=errors)

    if ordered_ids:
        await db.execute(
            update(Card),
            [
                {"id": card_id, "list_id": list_id, "position": index}
                for index, card_id in enumerate(ordered_ids)
            ],
        )
    moved_in = [i for i in ordered_ids if known[i] != list_id]
    if moved_in:
        logger.info(f"Reindex moved {len(moved_in)} card(s) into list {list_id[:8]}")
