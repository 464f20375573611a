# notifier.py — Per-user inbox entries created as side effects of mutations
"""
Rules:
    card member added  -> the assignee (unless they assigned themselves)
    comment with @word -> every card member except the author
    board member added -> the invited user

Entries are committed after the primary mutation and then pushed to the
recipient's live sockets as ``{"type": "notification", ...}``. Failures are
logged and swallowed.
"""

import re
import logging
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database import side_session
from models import Notification, NotificationType
from routers.websocket_router import manager
from schemas import notification_to_out

logger = logging.getLogger("taskboard.notify")

MENTION_PATTERN = re.compile(r"@(\w+)")


def has_mention(text: str) -> bool:
    return bool(MENTION_PATTERN.search(text or ""))


async def _dispatch(db: AsyncSession, entries: List[Notification]) -> List[Notification]:
    if not entries:
        return []
    async with side_session(db) as session:
        try:
            session.add_all(entries)
            await session.commit()
        except Exception:
            logger.exception(f"Failed to store {len(entries)} notification(s)")
            return []

    for n in entries:
        try:
            await manager.send_to_user(n.user_id, {
                "type": "notification",
                "notification": notification_to_out(n).model_dump(),
            })
        except Exception:
            logger.exception(f"Failed to push notification {n.id[:8]}")
    return entries


async def notify_card_assigned(
    db: AsyncSession, actor, card, assignee_id: str
) -> Optional[Notification]:
    if assignee_id == actor.id:
        return None
    entry = Notification(
        user_id=assignee_id,
        type=NotificationType.CARD_ASSIGNED,
        title="You were assigned to a card",
        message=f'{actor.name} assigned you to "{card.title}"',
        card_id=card.id,
        board_id=card.board_id,
    )
    sent = await _dispatch(db, [entry])
    return sent[0] if sent else None


async def notify_comment(
    db: AsyncSession, actor, card, member_ids: Iterable[str], text: str
) -> List[Notification]:
    """Any @mention in the text notifies all card members other than the author"""
    if not has_mention(text):
        return []
    entries = [
        Notification(
            user_id=member_id,
            type=NotificationType.COMMENT_ADDED,
            title="New comment",
            message=f'{actor.name} commented on "{card.title}"',
            card_id=card.id,
            board_id=card.board_id,
        )
        for member_id in member_ids
        if member_id != actor.id
    ]
    return await _dispatch(db, entries)


async def notify_board_invite(
    db: AsyncSession, actor, board, invitee_id: str
) -> Optional[Notification]:
    entry = Notification(
        user_id=invitee_id,
        type=NotificationType.BOARD_INVITED,
        title="You were invited to a board",
        message=f'{actor.name} invited you to join "{board.title}"',
        board_id=board.id,
    )
    sent = await _dispatch(db, [entry])
    return sent[0] if sent else None
