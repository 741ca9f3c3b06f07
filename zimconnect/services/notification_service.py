"""
ZimConnect — Notifications

Notification rows are produced by the ledger (likes, matches, messages) in
the same transaction as the event that caused them, subject to the
recipient's notification toggles.  Reads and read-marking are exposed to
the recipient only.
"""

from __future__ import annotations

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.config import get_settings
from zimconnect.errors import NotAuthenticated, StaleReference
from zimconnect.models.notification import Notification
from zimconnect.realtime.events import ChangeEvent, Table
from zimconnect.realtime.feed import ChangeFeed, get_change_feed
from zimconnect.services.settings_service import SettingsService
from zimconnect.services.store import store_call

logger = structlog.get_logger("zimconnect.notification_service")

_TEMPLATES: dict[str, tuple[str, str]] = {
    "like": ("New like", "{name} liked your profile."),
    "match": ("It's a match!", "You and {name} liked each other."),
    "message": ("New message", "{name} sent you a message."),
}


class NotificationService:

    def __init__(
        self,
        feed: ChangeFeed | None = None,
        settings_service: SettingsService | None = None,
    ) -> None:
        self.feed = feed if feed is not None else get_change_feed()
        self.settings_service = settings_service or SettingsService()
        self.settings = get_settings()

    async def stage(
        self,
        user_id: str,
        kind: str,
        actor_name: str,
        db_session: AsyncSession,
    ) -> Notification | None:
        """Add a notification to the session without committing.

        Returns ``None`` when the recipient has switched this kind off.
        """
        if not await self.settings_service.notifications_enabled(user_id, kind, db_session):
            logger.debug("notification_suppressed", user_id=user_id, kind=kind)
            return None
        title, template = _TEMPLATES[kind]
        notification = Notification(
            user_id=user_id,
            type=kind,
            title=title,
            message=template.format(name=actor_name or "Someone"),
        )
        db_session.add(notification)
        return notification

    async def list_notifications(self, user_id: str | None, db_session: AsyncSession) -> list[Notification]:
        if not user_id:
            raise NotAuthenticated("No current user")
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(self.settings.NOTIFICATION_LIST_LIMIT)
        )
        async with store_call("list_notifications"):
            result = await db_session.execute(stmt)
            return list(result.scalars().all())

    async def unread_count(self, user_id: str | None, db_session: AsyncSession) -> int:
        if not user_id:
            return 0
        stmt = (
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.read.is_(False))
        )
        async with store_call("unread_notification_count"):
            return int((await db_session.execute(stmt)).scalar_one())

    async def mark_read(self, user_id: str | None, notification_id: str, db_session: AsyncSession) -> Notification:
        if not user_id:
            raise NotAuthenticated("No current user")
        async with store_call("get_notification"):
            result = await db_session.execute(
                select(Notification)
                .where(Notification.id == notification_id)
                .where(Notification.user_id == user_id)
            )
            notification = result.scalar_one_or_none()
        if notification is None:
            raise StaleReference("Notification not found.", notification_id=notification_id)
        if notification.read:
            return notification

        old_row = notification.as_row()
        notification.read = True
        async with store_call("mark_notification_read", db_session):
            await db_session.commit()
        await self.feed.publish(ChangeEvent.update(Table.NOTIFICATIONS, notification.as_row(), old_row))
        return notification

    async def mark_all_read(self, user_id: str | None, db_session: AsyncSession) -> int:
        if not user_id:
            raise NotAuthenticated("No current user")
        async with store_call("list_unread_notifications"):
            result = await db_session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .where(Notification.read.is_(False))
            )
            unread = list(result.scalars().all())
        if not unread:
            return 0

        old_rows = [n.as_row() for n in unread]
        async with store_call("mark_all_notifications_read", db_session):
            await db_session.execute(
                update(Notification)
                .where(Notification.id.in_([n.id for n in unread]))
                .values(read=True)
                .execution_options(synchronize_session="fetch")
            )
            await db_session.commit()

        events = []
        for notification, old_row in zip(unread, old_rows):
            notification.read = True
            events.append(ChangeEvent.update(Table.NOTIFICATIONS, notification.as_row(), old_row))
        await self.feed.publish_many(events)
        logger.info("notifications_marked_read", user_id=user_id, count=len(unread))
        return len(unread)

    async def publish_created(self, notifications: list[Notification | None]) -> None:
        await self.feed.publish_many(
            ChangeEvent.insert(Table.NOTIFICATIONS, n.as_row())
            for n in notifications
            if n is not None
        )
