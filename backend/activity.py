# activity.py — Append-only audit trail of board mutations
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import side_session
from models import Activity, ActivityType

logger = logging.getLogger("taskboard.activity")


async def record_activity(
    db: AsyncSession,
    activity_type: ActivityType,
    board_id: str,
    user_id: str,
    description: str,
    card_id: Optional[str] = None,
    list_id: Optional[str] = None,
    old_value: Optional[Dict[str, Any]] = None,
    new_value: Optional[Dict[str, Any]] = None,
) -> Optional[Activity]:
    """Persist one activity entry after the primary mutation has committed.

    Best-effort: a failure is logged, never raised.
    """
    entry = Activity(
        type=activity_type,
        board_id=board_id,
        card_id=card_id,
        list_id=list_id,
        user_id=user_id,
        description=description,
        old_value=old_value,
        new_value=new_value,
    )
    async with side_session(db) as session:
        try:
            session.add(entry)
            await session.commit()
        except Exception:
            logger.exception(f"Failed to record {activity_type.value} on board {board_id[:8]}")
            return None
    return entry


async def list_activity(db: AsyncSession, board_id: str, limit: int = 50) -> List[Activity]:
    """Newest first"""
    stmt = (
        select(Activity)
        .where(Activity.board_id == board_id)
        .options(selectinload(Activity.user))
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
