"""
ZimConnect — Interaction Ledger

Likes, matches and the match-scoped message queries the match list needs.

Ledger invariants enforced here:
  * at most one Like per ordered (liker, liked) pair
  * a Match exists for {A, B} iff Like(A, B) and Like(B, A) both exist; the
    match is created right after the second like commits (re-checked against
    committed rows, so concurrent reciprocal likes still match) and removed
    whenever either like goes away
  * one Match row per unordered pair (stored normalised, user1_id < user2_id)

Every mutation commits first and publishes its change events afterwards, so
subscribers never observe a row the store could still roll back.
"""

from __future__ import annotations

from collections import defaultdict

import structlog
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.errors import NotAuthenticated, StaleReference, ValidationFailed
from zimconnect.models.match import Like, Match
from zimconnect.models.message import Message
from zimconnect.models.profile import Profile
from zimconnect.realtime.events import ChangeEvent, Table
from zimconnect.realtime.feed import ChangeFeed, get_change_feed
from zimconnect.schemas.match import LikedProfileItem, MatchListItem, MessageResponse
from zimconnect.services.notification_service import NotificationService
from zimconnect.services.profile_service import decorate_profile
from zimconnect.services.store import store_call

logger = structlog.get_logger("zimconnect.ledger_service")


class LedgerService:
    """Like / match bookkeeping over the relational store."""

    def __init__(
        self,
        feed: ChangeFeed | None = None,
        notification_service: NotificationService | None = None,
    ) -> None:
        self.feed = feed if feed is not None else get_change_feed()
        self.notification_service = notification_service or NotificationService(feed=self.feed)

    # ── Likes ─────────────────────────────────────────────────────────────

    async def liked_ids(self, user_id: str, db_session: AsyncSession) -> set[str]:
        """Ids of every profile ``user_id`` has an outgoing Like to."""
        async with store_call("liked_ids"):
            result = await db_session.execute(
                select(Like.liked_id).where(Like.liker_id == user_id)
            )
            return set(result.scalars().all())

    async def get_like(self, liker_id: str, liked_id: str, db_session: AsyncSession) -> Like | None:
        async with store_call("get_like"):
            result = await db_session.execute(
                select(Like).where(Like.liker_id == liker_id).where(Like.liked_id == liked_id)
            )
            return result.scalar_one_or_none()

    async def insert_like(self, liker_id: str | None, liked_id: str, db_session: AsyncSession) -> Like:
        """Record Like(liker → liked); creates the Match when the like is reciprocal.

        Raises ValidationFailed for self-likes and duplicates, StaleReference
        when the liked profile no longer exists.
        """
        if not liker_id:
            raise NotAuthenticated("No current user")
        log = logger.bind(liker_id=liker_id, liked_id=liked_id)
        if liker_id == liked_id:
            raise ValidationFailed("Cannot like your own profile.", profile_id=liked_id)

        async with store_call("load_like_parties"):
            result = await db_session.execute(
                select(Profile).where(Profile.id.in_([liker_id, liked_id]))
            )
            parties = {p.id: p for p in result.scalars().all()}
        if liked_id not in parties:
            raise StaleReference(f"Profile {liked_id} not found.", profile_id=liked_id)
        if liker_id not in parties:
            raise StaleReference(f"Profile {liker_id} not found.", profile_id=liker_id)

        if await self.get_like(liker_id, liked_id, db_session) is not None:
            log.warning("like_duplicate")
            raise ValidationFailed("Profile already liked.", profile_id=liked_id)

        notification = await self.notification_service.stage(
            liked_id, "like", parties[liker_id].full_name, db_session
        )
        like = Like(liker_id=liker_id, liked_id=liked_id)
        db_session.add(like)

        async with store_call("insert_like", db_session):
            await db_session.commit()

        await self.feed.publish(ChangeEvent.insert(Table.LIKES, like.as_row()))
        await self.notification_service.publish_created([notification])

        match = await self._ensure_match(like, parties[liker_id], parties[liked_id], db_session)
        log.info("like_recorded", matched=match is not None)
        return like

    async def _ensure_match(
        self,
        like: Like,
        liker: Profile,
        liked: Profile,
        db_session: AsyncSession,
    ) -> Match | None:
        """Create the Match for {liker, liked} if both likes are committed and it is missing.

        Runs after the like's own commit: of two reciprocal likes committed
        concurrently, the later committer always sees the earlier one.  When
        both see each other, the loser of the ``uq_match_pair`` insert leaves
        the match to the winner.
        """
        if await self.get_like(liked.id, liker.id, db_session) is None:
            return None
        if await self.find_match(liker.id, liked.id, db_session) is not None:
            return None

        notifications = [
            await self.notification_service.stage(liked.id, "match", liker.full_name, db_session),
            await self.notification_service.stage(liker.id, "match", liked.full_name, db_session),
        ]
        user1_id, user2_id = Match.normalise_pair(liker.id, liked.id)
        match = Match(user1_id=user1_id, user2_id=user2_id)
        db_session.add(match)

        async with store_call("insert_match", db_session):
            try:
                await db_session.commit()
            except IntegrityError:
                await db_session.rollback()
                await db_session.refresh(like)
                logger.info("match_already_created", user1_id=user1_id, user2_id=user2_id)
                return None

        await self.feed.publish(ChangeEvent.insert(Table.MATCHES, match.as_row()))
        await self.notification_service.publish_created(notifications)
        return match

    async def delete_like(self, liker_id: str | None, liked_id: str, db_session: AsyncSession) -> bool:
        """Remove Like(liker → liked). Returns False when there was nothing to delete.

        Any Match left for the pair is removed with its messages, so the
        ledger never holds a match without both likes.
        """
        if not liker_id:
            raise NotAuthenticated("No current user")
        like = await self.get_like(liker_id, liked_id, db_session)
        if like is None:
            logger.info("unlike_no_like", liker_id=liker_id, liked_id=liked_id)
            return False

        like_row = like.as_row()
        match = await self.find_match(liker_id, liked_id, db_session)
        message_rows: list[dict] = []
        match_row = None
        if match is not None:
            message_rows = await self._delete_match_rows(match, db_session)
            match_row = match.as_row()

        await db_session.delete(like)
        async with store_call("delete_like", db_session):
            await db_session.commit()

        await self._publish_match_removal(match_row, message_rows)
        await self.feed.publish(ChangeEvent.delete(Table.LIKES, like_row))
        logger.info(
            "like_deleted",
            liker_id=liker_id,
            liked_id=liked_id,
            removed_match=match_row is not None,
        )
        return True

    async def list_liked_profiles(self, user_id: str | None, db_session: AsyncSession) -> list[LikedProfileItem]:
        """Outgoing likes, newest first, with the privacy-masked liked profile."""
        if not user_id:
            raise NotAuthenticated("No current user")
        stmt = (
            select(Like, Profile)
            .join(Profile, Profile.id == Like.liked_id)
            .where(Like.liker_id == user_id)
            .order_by(Like.created_at.desc())
        )
        async with store_call("list_liked_profiles"):
            rows = (await db_session.execute(stmt)).all()

        return [
            LikedProfileItem(
                like_id=like.id,
                liked_id=like.liked_id,
                created_at=like.created_at,
                liked_profile=decorate_profile(profile),
            )
            for like, profile in rows
        ]

    async def likes_received_count(self, user_id: str | None, db_session: AsyncSession) -> int:
        if not user_id:
            return 0
        stmt = select(func.count()).select_from(Like).where(Like.liked_id == user_id)
        async with store_call("likes_received_count"):
            return int((await db_session.execute(stmt)).scalar_one())

    # ── Matches ───────────────────────────────────────────────────────────

    async def get_match(self, match_id: str, db_session: AsyncSession) -> Match | None:
        async with store_call("get_match"):
            result = await db_session.execute(select(Match).where(Match.id == match_id))
            return result.scalar_one_or_none()

    async def find_match(self, user_a: str, user_b: str, db_session: AsyncSession) -> Match | None:
        """The Match for the unordered pair {a, b}, looked up in either direction."""
        stmt = select(Match).where(
            or_(
                and_(Match.user1_id == user_a, Match.user2_id == user_b),
                and_(Match.user1_id == user_b, Match.user2_id == user_a),
            )
        )
        async with store_call("find_match"):
            result = await db_session.execute(stmt)
            return result.scalars().first()

    async def delete_match_and_messages(
        self,
        match_id: str,
        user_id: str | None,
        db_session: AsyncSession,
    ) -> int:
        """Composite removal of a match and its messages on behalf of a party.

        Returns the number of messages deleted.
        """
        if not user_id:
            raise NotAuthenticated("No current user")
        match = await self.get_match(match_id, db_session)
        if match is None:
            raise StaleReference("Match not found.", match_id=match_id)
        if not match.involves(user_id):
            raise ValidationFailed("Only a party to the match can delete it.", match_id=match_id)

        match_row = match.as_row()
        message_rows = await self._delete_match_rows(match, db_session)
        async with store_call("delete_match_and_messages", db_session):
            await db_session.commit()

        await self._publish_match_removal(match_row, message_rows)
        logger.info(
            "match_deleted",
            match_id=match_id,
            user_id=user_id,
            messages_deleted=len(message_rows),
        )
        return len(message_rows)

    async def list_matches(self, user_id: str | None, db_session: AsyncSession) -> list[MatchListItem]:
        """The user's matches, newest first, with preview data for the match list."""
        if not user_id:
            raise NotAuthenticated("No current user")
        stmt = (
            select(Match)
            .where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
            .order_by(Match.created_at.desc())
        )
        async with store_call("list_matches"):
            matches = (await db_session.execute(stmt)).scalars().all()
        if not matches:
            return []

        match_ids = [m.id for m in matches]
        other_ids = {m.other_party(user_id) for m in matches}
        async with store_call("load_match_profiles"):
            result = await db_session.execute(select(Profile).where(Profile.id.in_(other_ids)))
            others = {p.id: p for p in result.scalars().all()}
        previews = await self.last_messages(match_ids, db_session)
        unread = await self.unread_counts(user_id, match_ids, db_session)

        items = []
        for match in matches:
            other = others.get(match.other_party(user_id))
            last = previews.get(match.id)
            items.append(
                MatchListItem(
                    id=match.id,
                    user1_id=match.user1_id,
                    user2_id=match.user2_id,
                    created_at=match.created_at,
                    other_user_id=match.other_party(user_id),
                    other_profile=decorate_profile(other) if other is not None else None,
                    last_message=MessageResponse.model_validate(last) if last else None,
                    unread_count=unread.get(match.id, 0),
                )
            )
        return items

    async def match_count(self, user_id: str | None, db_session: AsyncSession) -> int:
        if not user_id:
            return 0
        stmt = (
            select(func.count())
            .select_from(Match)
            .where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
        )
        async with store_call("match_count"):
            return int((await db_session.execute(stmt)).scalar_one())

    # ── Message previews ──────────────────────────────────────────────────

    async def last_messages(self, match_ids: list[str], db_session: AsyncSession) -> dict[str, Message]:
        """Newest message per match id; matches without messages are absent."""
        if not match_ids:
            return {}
        stmt = (
            select(Message)
            .where(Message.match_id.in_(match_ids))
            .order_by(Message.created_at.desc())
        )
        async with store_call("last_messages"):
            messages = (await db_session.execute(stmt)).scalars().all()

        latest: dict[str, Message] = {}
        for message in messages:
            latest.setdefault(message.match_id, message)
        return latest

    async def unread_counts(
        self,
        user_id: str,
        match_ids: list[str],
        db_session: AsyncSession,
    ) -> dict[str, int]:
        """Per-match count of messages from the other party that ``user_id`` has not read."""
        if not match_ids:
            return {}
        stmt = (
            select(Message.match_id, func.count())
            .where(Message.match_id.in_(match_ids))
            .where(Message.sender_id != user_id)
            .where(Message.read_at.is_(None))
            .group_by(Message.match_id)
        )
        async with store_call("unread_counts"):
            rows = (await db_session.execute(stmt)).all()
        counts: dict[str, int] = defaultdict(int)
        for match_id, count in rows:
            counts[match_id] = int(count)
        return dict(counts)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _delete_match_rows(self, match: Match, db_session: AsyncSession) -> list[dict]:
        """Stage deletion of ``match`` and its messages; returns the message rows."""
        async with store_call("load_match_messages"):
            result = await db_session.execute(
                select(Message).where(Message.match_id == match.id)
            )
            message_rows = [m.as_row() for m in result.scalars().all()]

        async with store_call("delete_match_rows", db_session):
            await db_session.execute(
                delete(Message)
                .where(Message.match_id == match.id)
                .execution_options(synchronize_session="fetch")
            )
            await db_session.delete(match)
        return message_rows

    async def _publish_match_removal(self, match_row: dict | None, message_rows: list[dict]) -> None:
        await self.feed.publish_many(
            ChangeEvent.delete(Table.MESSAGES, row) for row in message_rows
        )
        if match_row is not None:
            await self.feed.publish(ChangeEvent.delete(Table.MATCHES, match_row))
