"""
ZimConnect — Notifications API
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.api.deps import current_user_id, get_notification_service
from zimconnect.database import get_db
from zimconnect.models.notification import Notification
from zimconnect.schemas.match import CountResponse
from zimconnect.schemas.settings import NotificationResponse
from zimconnect.services.notification_service import NotificationService

router = APIRouter()


@router.get("", response_model=list[NotificationResponse], summary="Recent notifications")
async def list_notifications(
    user_id: str = Depends(current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
    db: AsyncSession = Depends(get_db),
) -> list[Notification]:
    return await notifications.list_notifications(user_id, db)


@router.get("/unread/count", response_model=CountResponse, summary="Unread notifications")
async def unread_count(
    user_id: str = Depends(current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    return CountResponse(count=await notifications.unread_count(user_id, db))


@router.post("/read-all", response_model=CountResponse, summary="Mark every notification read")
async def mark_all_read(
    user_id: str = Depends(current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    return CountResponse(count=await notifications.mark_all_read(user_id, db))


@router.post("/{notification_id}/read", response_model=NotificationResponse, summary="Mark one read")
async def mark_read(
    notification_id: str,
    user_id: str = Depends(current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
    db: AsyncSession = Depends(get_db),
) -> Notification:
    return await notifications.mark_read(user_id, notification_id, db)
