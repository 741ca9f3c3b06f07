"""
ZimConnect — Messages

Messages belong to exactly one match and may only be written by one of its
two parties.  ``read_at`` is set by the recipient; each read-marking emits
an UPDATE event so the sender's open chat picks up the read receipt.
"""

from __future__ import annotations

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.config import get_settings
from zimconnect.errors import NotAuthenticated, StaleReference, ValidationFailed
from zimconnect.models._columns import utcnow
from zimconnect.models.match import Match
from zimconnect.models.message import Message
from zimconnect.models.profile import Profile
from zimconnect.realtime.events import ChangeEvent, Table
from zimconnect.realtime.feed import ChangeFeed, get_change_feed
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.notification_service import NotificationService
from zimconnect.services.store import store_call

logger = structlog.get_logger("zimconnect.message_service")


class MessageService:

    def __init__(
        self,
        feed: ChangeFeed | None = None,
        ledger: LedgerService | None = None,
        notification_service: NotificationService | None = None,
    ) -> None:
        self.feed = feed if feed is not None else get_change_feed()
        self.notification_service = notification_service or NotificationService(feed=self.feed)
        self.ledger = ledger or LedgerService(
            feed=self.feed, notification_service=self.notification_service
        )
        self.settings = get_settings()

    async def _party_match(self, match_id: str, user_id: str | None, db_session: AsyncSession) -> Match:
        if not user_id:
            raise NotAuthenticated("No current user")
        match = await self.ledger.get_match(match_id, db_session)
        if match is None:
            raise StaleReference("Match not found.", match_id=match_id)
        if not match.involves(user_id):
            raise ValidationFailed("Not a party to this match.", match_id=match_id)
        return match

    async def send_message(
        self,
        match_id: str,
        sender_id: str | None,
        content: str,
        db_session: AsyncSession,
    ) -> Message:
        body = (content or "").strip()
        if not body:
            raise ValidationFailed("Message content is empty.")
        if len(body) > self.settings.MESSAGE_MAX_LENGTH:
            raise ValidationFailed(
                f"Message exceeds {self.settings.MESSAGE_MAX_LENGTH} characters.",
                length=len(body),
            )
        match = await self._party_match(match_id, sender_id, db_session)

        message = Message(match_id=match.id, sender_id=sender_id, content=body)
        db_session.add(message)

        async with store_call("load_sender"):
            sender = await db_session.get(Profile, sender_id)
        notification = await self.notification_service.stage(
            match.other_party(sender_id),
            "message",
            sender.full_name if sender is not None else "",
            db_session,
        )

        async with store_call("send_message", db_session):
            await db_session.commit()

        await self.feed.publish(ChangeEvent.insert(Table.MESSAGES, message.as_row()))
        await self.notification_service.publish_created([notification])
        logger.info("message_sent", match_id=match.id, sender_id=sender_id, length=len(body))
        return message

    async def list_messages(self, match_id: str, user_id: str | None, db_session: AsyncSession) -> list[Message]:
        """Messages of a match, oldest first."""
        await self._party_match(match_id, user_id, db_session)
        stmt = (
            select(Message)
            .where(Message.match_id == match_id)
            .order_by(Message.created_at.asc())
        )
        async with store_call("list_messages"):
            return list((await db_session.execute(stmt)).scalars().all())

    async def mark_read(self, match_id: str, user_id: str | None, db_session: AsyncSession) -> list[Message]:
        """Set ``read_at`` on the counterpart's unread messages. Returns the updated rows."""
        await self._party_match(match_id, user_id, db_session)
        stmt = (
            select(Message)
            .where(Message.match_id == match_id)
            .where(Message.sender_id != user_id)
            .where(Message.read_at.is_(None))
        )
        async with store_call("load_unread_messages"):
            unread = list((await db_session.execute(stmt)).scalars().all())
        if not unread:
            return []

        old_rows = [m.as_row() for m in unread]
        now = utcnow()
        for message in unread:
            message.read_at = now
        async with store_call("mark_messages_read", db_session):
            await db_session.commit()

        await self.feed.publish_many(
            ChangeEvent.update(Table.MESSAGES, m.as_row(), old)
            for m, old in zip(unread, old_rows)
        )
        logger.info("messages_marked_read", match_id=match_id, user_id=user_id, count=len(unread))
        return unread

    async def last_messages(self, match_ids: list[str], db_session: AsyncSession) -> dict[str, Message]:
        return await self.ledger.last_messages(match_ids, db_session)

    async def unread_message_count(self, user_id: str | None, db_session: AsyncSession) -> int:
        """Unread messages from others across every match of ``user_id``."""
        if not user_id:
            return 0
        my_matches = select(Match.id).where(
            or_(Match.user1_id == user_id, Match.user2_id == user_id)
        )
        stmt = (
            select(func.count())
            .select_from(Message)
            .where(Message.match_id.in_(my_matches))
            .where(Message.sender_id != user_id)
            .where(Message.read_at.is_(None))
        )
        async with store_call("unread_message_count"):
            return int((await db_session.execute(stmt)).scalar_one())
