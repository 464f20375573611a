# routers/notifications.py — The caller's notification inbox
from fastapi import APIRouter, Depends
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from exceptions import AccessDenied, NotFound
from models import Notification
from schemas import notification_to_out

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])

INBOX_LIMIT = 50


async def _unread_count(db: AsyncSession, user_id: str) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.user_id == user_id, Notification.read.is_(False)
    )
    return (await db.execute(stmt)).scalar() or 0


async def _own_notification(db: AsyncSession, notification_id: str, user: CurrentUser) -> Notification:
    result = await db.execute(select(Notification).where(Notification.id == notification_id))
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFound("Notification")
    if notification.user_id != user.id:
        raise AccessDenied("Not authorized")
    return notification


# ============================================================
# LIST
# ============================================================

@router.get("")
async def list_notifications(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    """Latest 50 notifications, newest first, plus the unread count"""
    stmt = (
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(INBOX_LIMIT)
    )
    notifications = (await db.execute(stmt)).scalars().all()
    return {
        "success": True,
        "notifications": [notification_to_out(n) for n in notifications],
        "unread_count": await _unread_count(db, user.id),
    }


@router.get("/count")
async def unread_count(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    return {"success": True, "unread_count": await _unread_count(db, user.id)}


# ============================================================
# READ STATE
# ============================================================

@router.put("/read-all")
async def mark_all_read(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    stmt = (
        update(Notification)
        .where(Notification.user_id == user.id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return {"success": True, "message": "All notifications marked as read", "updated": result.rowcount}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    notification = await _own_notification(db, notification_id, user)
    notification.read = True
    await db.commit()
    return {"success": True, "notification": notification_to_out(notification)}


# ============================================================
# DELETE
# ============================================================

@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    notification = await _own_notification(db, notification_id, user)
    await db.delete(notification)
    await db.commit()
    return {"success": True, "message": "Notification deleted"}
