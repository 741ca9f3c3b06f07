"""
ZimConnect — Client session

The explicit state container for one client: identity, query cache,
candidate view, filter state, chat selection, the realtime reconciler and
the services they call.  Nothing here is global; callers hold a reference
to the session and go through its operations.

Every fetcher opens its own database session, so refetches triggered by
the reconciler long after the originating call still have a live session.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zimconnect.client import keys
from zimconnect.client.candidates import CandidateSet
from zimconnect.client.filters import FilterState
from zimconnect.client.identity import CurrentUser, IdentitySession
from zimconnect.client.selection import ChatSelection, SelectionState
from zimconnect.errors import NotAuthenticated, StaleReference, ValidationFailed
from zimconnect.models.match import Like
from zimconnect.realtime.cache import QueryCache
from zimconnect.realtime.feed import ChangeFeed
from zimconnect.realtime.reconciler import RealtimeReconciler, append_message, replace_message
from zimconnect.schemas.match import LikedProfileItem, MatchListItem, MessageResponse
from zimconnect.schemas.profile import CandidateProfile
from zimconnect.services.candidate_service import CandidateSelector
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.message_service import MessageService
from zimconnect.services.notification_service import NotificationService
from zimconnect.services.profile_service import ProfileService
from zimconnect.services.settings_service import SettingsService
from zimconnect.services.swipe_service import SwipeService

logger = structlog.get_logger("zimconnect.client.session")

T = TypeVar("T")


class ClientSession:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed,
        *,
        identity: IdentitySession | None = None,
        cache: QueryCache | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.feed = feed
        self.identity = identity or IdentitySession()
        self.cache = cache or QueryCache()

        self.profiles = ProfileService(feed=feed)
        self.settings_service = SettingsService(profile_service=self.profiles)
        self.notifications = NotificationService(feed=feed, settings_service=self.settings_service)
        self.ledger = LedgerService(feed=feed, notification_service=self.notifications)
        self.messages = MessageService(
            feed=feed, ledger=self.ledger, notification_service=self.notifications
        )
        self.selector = CandidateSelector(ledger=self.ledger)

        self.candidates = CandidateSet(self.cache)
        self.filters = FilterState(self.settings_service)
        self.selection = ChatSelection()
        self.swipes = SwipeService(self.candidates, self.cache, self.selection, self.ledger)
        self.reconciler = RealtimeReconciler(feed, self.cache)

        self._unsubscribers = [
            self.identity.on_auth_change(self._on_auth_change),
            self.selection.on_change(self._on_selection_change),
            self.cache.listen((keys.MATCHES,), self._on_matches_changed),
        ]

    # ── Wiring ────────────────────────────────────────────────────────────

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id

    def _require_user(self) -> str:
        user_id = self.identity.user_id
        if not user_id:
            raise NotAuthenticated("No current user")
        return user_id

    def _on_auth_change(self, user: CurrentUser | None) -> None:
        self.reconciler.stop()
        self.selection.clear()
        self.cache.clear()
        self.candidates.bind(None)
        self.filters = FilterState(self.settings_service)
        if user is not None:
            self.reconciler.start(user.id)

    def _on_selection_change(self, previous: SelectionState, current: SelectionState) -> None:
        self.reconciler.watch_messages(getattr(current, "match_id", None))

    def _on_matches_changed(self, key: tuple, data: Any) -> None:
        if self.user_id is None or key != keys.matches_key(self.user_id):
            return
        self.selection.reconcile(item.id for item in (data or []))

    async def _run(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as db_session:
            return await fn(db_session)

    def _fetcher(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> Callable[[], Awaitable[T]]:
        async def _fetch() -> T:
            return await self._run(fn)
        return _fetch

    # ── Discovery ─────────────────────────────────────────────────────────

    async def load_settings(self, force: bool = False):
        user_id = self._require_user()
        row = await self.cache.fetch(
            keys.settings_key(user_id),
            self._fetcher(lambda db: self.settings_service.get_settings(user_id, db)),
            force=force,
        )
        self.filters.load(row)
        return row

    async def load_candidates(self, force: bool = False) -> list[CandidateProfile]:
        user_id = self._require_user()
        await self._run(lambda db: self.profiles.require_complete(user_id, db))
        await self.load_settings()
        criteria = self.filters.criteria()
        key = keys.discover_key(user_id, criteria.cache_key())
        self.candidates.bind(key)
        await self.cache.fetch(
            key,
            self._fetcher(lambda db: self.selector.select_candidates(user_id, criteria, db)),
            force=force,
        )
        return self.candidates.items

    async def like(self, candidate_id: str) -> Like:
        user_id = self._require_user()
        return await self._run(lambda db: self.swipes.like(candidate_id, user_id, db))

    def pass_candidate(self, candidate_id: str) -> bool:
        return self.swipes.pass_candidate(candidate_id)

    async def unlike(self, profile_id: str) -> bool:
        user_id = self._require_user()
        return await self._run(lambda db: self.swipes.unlike(profile_id, user_id, db))

    async def set_location_override(self, state: str = "", city: str = "") -> list[CandidateProfile]:
        self.filters.set_location_override(state, city)
        self.candidates.reset()
        return await self.load_candidates()

    def leave_discovery(self) -> None:
        self.filters.clear_override()
        self.candidates.reset()

    async def search(self, query: str) -> list[CandidateProfile]:
        user_id = self._require_user()
        return await self._run(lambda db: self.profiles.search_profiles(user_id, query, db))

    # ── Likes & matches ───────────────────────────────────────────────────

    async def load_liked_profiles(self, force: bool = False) -> list[LikedProfileItem]:
        user_id = self._require_user()
        return await self.cache.fetch(
            keys.liked_key(user_id),
            self._fetcher(lambda db: self.ledger.list_liked_profiles(user_id, db)),
            force=force,
        )

    async def load_matches(self, force: bool = False) -> list[MatchListItem]:
        user_id = self._require_user()
        return await self.cache.fetch(
            keys.matches_key(user_id),
            self._fetcher(lambda db: self.ledger.list_matches(user_id, db)),
            force=force,
        )

    async def select_match(self, match_id: str) -> list[MessageResponse]:
        matches = await self.load_matches()
        item = next((m for m in matches if m.id == match_id), None)
        if item is None:
            raise StaleReference("Match not found.", match_id=match_id)
        self.selection.select(match_id, item.other_user_id)
        return await self.load_messages(match_id)

    def clear_match(self) -> None:
        self.selection.clear()

    # ── Messages ──────────────────────────────────────────────────────────

    def _selected_match(self, match_id: str | None) -> str:
        match_id = match_id or self.selection.match_id
        if match_id is None:
            raise ValidationFailed("No chat selected.")
        return match_id

    async def load_messages(self, match_id: str | None = None, force: bool = False) -> list[MessageResponse]:
        user_id = self._require_user()
        match_id = self._selected_match(match_id)

        async def _load(db: AsyncSession) -> list[MessageResponse]:
            rows = await self.messages.list_messages(match_id, user_id, db)
            return [MessageResponse.model_validate(m) for m in rows]

        return await self.cache.fetch(keys.messages_key(match_id), self._fetcher(_load), force=force)

    async def send_message(self, content: str, match_id: str | None = None) -> MessageResponse:
        user_id = self._require_user()
        match_id = self._selected_match(match_id)
        row = await self._run(lambda db: self.messages.send_message(match_id, user_id, content, db))
        message = MessageResponse.model_validate(row)
        self.cache.update(keys.messages_key(match_id), lambda items: append_message(items, message))
        self.cache.invalidate(keys.MATCHES)
        return message

    async def mark_read(self, match_id: str | None = None) -> int:
        user_id = self._require_user()
        match_id = self._selected_match(match_id)
        rows = await self._run(lambda db: self.messages.mark_read(match_id, user_id, db))
        for row in rows:
            message = MessageResponse.model_validate(row)
            self.cache.update(
                keys.messages_key(match_id),
                lambda items, message=message: replace_message(items, message),
            )
        if rows:
            self.cache.invalidate(keys.MATCHES)
            self.cache.invalidate(keys.UNREAD_MESSAGE_COUNT)
        return len(rows)

    # ── Counters ──────────────────────────────────────────────────────────

    async def load_counts(self, force: bool = False) -> dict[str, int]:
        user_id = self._require_user()
        counters = {
            keys.MATCH_COUNT: (keys.match_count_key(user_id), self.ledger.match_count),
            keys.UNREAD_MESSAGE_COUNT: (keys.unread_messages_key(user_id), self.messages.unread_message_count),
            keys.UNREAD_NOTIFICATION_COUNT: (keys.unread_notifications_key(user_id), self.notifications.unread_count),
            keys.LIKES_RECEIVED: (keys.likes_received_key(user_id), self.ledger.likes_received_count),
        }
        counts: dict[str, int] = {}
        for name, (key, reader) in counters.items():
            counts[name] = await self.cache.fetch(
                key,
                self._fetcher(lambda db, reader=reader: reader(user_id, db)),
                force=force,
            )
        return counts

    async def close(self) -> None:
        self.reconciler.stop()
        await self.cache.settle()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.cache.clear()
        logger.info("client_session_closed", user_id=self.user_id)
