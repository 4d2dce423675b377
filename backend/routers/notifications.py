# routers/notifications.py — In-app notification inbox
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from notification_service import NotificationService, notification_to_dict

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Latest notifications for the caller plus the unread count"""
    return await NotificationService(db).list_for_user(user.id)


@router.post("/read-all")
async def mark_all_read(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    count = await NotificationService(db).mark_all_as_read(user.id)
    return {"marked_read": count}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    notification = await NotificationService(db).mark_as_read(notification_id, user.id)
    return notification_to_dict(notification)
