"""
ZimConnect — Realtime Reconciler

Keeps the client's cached views consistent with ledger truth as it changes
out-of-band, by translating change-feed events into cache operations.

Dispatch table::

    feed (scope)                     event    effect
    ───────────────────────────────  ───────  ───────────────────────────────────────
    profiles (id ≠ me)               INSERT   invalidate discover-profiles
    profiles (id ≠ me)               UPDATE   invalidate discover-profiles, matches
    profiles (id ≠ me)               DELETE   invalidate discover-profiles, matches
    matches  (me is a party)         any      invalidate matches, match-count,
                                              unread-message-count
                                     INSERT   + invalidate discover-profiles
    messages (match_id = open chat)  INSERT   append to match-messages unless the id
                                              is cached; invalidate matches,
                                              unread-message-count, last-messages
    messages (match_id = open chat)  UPDATE   replace the cached message by id
    messages (match_id = open chat)  DELETE   drop the cached message by id;
                                              invalidate matches
    likes    (any)                   any      invalidate discover-profiles, matches
    notifications (user_id = me)     any      invalidate unread-notification-count

Match state is never built from events: every match or like event only
invalidates, and the refetch reads ledger truth.  A match INSERT arriving
before the like INSERT that caused it therefore converges to the same list.

Exactly one subscription exists per scope.  Re-scoping the message feed
tears the previous subscription down before the new one is attached, and
nothing here ever raises into the caller: failures are logged and the
caches stay at their last known good state.
"""

from __future__ import annotations

from typing import Any, Callable

import structlog
from pydantic import ValidationError

from zimconnect.client import keys
from zimconnect.realtime.cache import QueryCache
from zimconnect.realtime.events import ChangeEvent, EventType, Table
from zimconnect.realtime.feed import ChangeFeed, Subscription
from zimconnect.schemas.match import MessageResponse

logger = structlog.get_logger("zimconnect.realtime.reconciler")

SESSION_SCOPES = ("profiles", "matches", "likes", "notifications")
MESSAGES_SCOPE = "messages"


def _message_id(item: Any) -> str:
    return item.id if isinstance(item, MessageResponse) else item["id"]


def append_message(items: list | None, message: MessageResponse) -> list:
    items = list(items or [])
    if any(_message_id(i) == message.id for i in items):
        return items
    items.append(message)
    return items


def replace_message(items: list | None, message: MessageResponse) -> list:
    return [message if _message_id(i) == message.id else i for i in (items or [])]


def drop_message(items: list | None, message_id: str) -> list:
    return [i for i in (items or []) if _message_id(i) != message_id]


class RealtimeReconciler:
    """Owns every change-feed subscription of one authenticated session."""

    def __init__(self, feed: ChangeFeed, cache: QueryCache) -> None:
        self.feed = feed
        self.cache = cache
        self.user_id: str | None = None
        self.match_id: str | None = None
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def active_scopes(self) -> list[str]:
        return sorted(self._subscriptions)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self, user_id: str) -> None:
        """Attach the session-wide scopes for ``user_id``."""
        if self.user_id is not None:
            self.stop()
        self.user_id = user_id
        me = user_id

        self._attach("profiles", Table.PROFILES, self._on_profile,
                     predicate=lambda row: row.get("id") != me)
        self._attach("matches", Table.MATCHES, self._on_match,
                     predicate=lambda row: me in (row.get("user1_id"), row.get("user2_id")))
        self._attach("likes", Table.LIKES, self._on_like)
        self._attach("notifications", Table.NOTIFICATIONS, self._on_notification,
                     predicate=lambda row: row.get("user_id") == me)
        logger.info("reconciler_started", user_id=user_id, scopes=self.active_scopes)

    def watch_messages(self, match_id: str | None) -> None:
        """Scope the message feed to ``match_id``; ``None`` detaches it."""
        if match_id == self.match_id and (match_id is None or MESSAGES_SCOPE in self._subscriptions):
            return
        self._detach(MESSAGES_SCOPE)
        self.match_id = match_id
        if match_id is None:
            return
        self._attach(MESSAGES_SCOPE, Table.MESSAGES, self._on_message,
                     predicate=lambda row: row.get("match_id") == match_id)
        logger.info("reconciler_watching_messages", user_id=self.user_id, match_id=match_id)

    def stop(self) -> None:
        for scope in list(self._subscriptions):
            self._detach(scope)
        if self.user_id is not None:
            logger.info("reconciler_stopped", user_id=self.user_id)
        self.user_id = None
        self.match_id = None

    def _attach(self, scope: str, table: Table, handler: Callable[[ChangeEvent], None], predicate=None) -> None:
        self._detach(scope)
        try:
            self._subscriptions[scope] = self.feed.subscribe(
                table,
                self._guard(scope, handler),
                predicate=predicate,
                name=f"{scope}:{self.user_id}",
            )
        except Exception:
            logger.exception("reconciler_subscribe_failed", scope=scope, user_id=self.user_id)

    def _detach(self, scope: str) -> None:
        sub = self._subscriptions.pop(scope, None)
        if sub is not None:
            sub.unsubscribe()

    def _guard(self, scope: str, handler: Callable[[ChangeEvent], None]) -> Callable[[ChangeEvent], None]:
        def _handle(event: ChangeEvent) -> None:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "reconciler_event_failed",
                    scope=scope,
                    event_type=event.event_type.value,
                )
        return _handle

    # ── Dispatch ──────────────────────────────────────────────────────────

    def _on_profile(self, event: ChangeEvent) -> None:
        self.cache.invalidate(keys.DISCOVER_PROFILES)
        if event.event_type in (EventType.UPDATE, EventType.DELETE):
            self.cache.invalidate(keys.MATCHES)

    def _on_match(self, event: ChangeEvent) -> None:
        self.cache.invalidate(keys.MATCHES)
        self.cache.invalidate(keys.MATCH_COUNT)
        self.cache.invalidate(keys.UNREAD_MESSAGE_COUNT)
        if event.event_type is EventType.INSERT:
            self.cache.invalidate(keys.DISCOVER_PROFILES)

    def _on_like(self, event: ChangeEvent) -> None:
        self.cache.invalidate(keys.DISCOVER_PROFILES)
        self.cache.invalidate(keys.MATCHES)

    def _on_notification(self, event: ChangeEvent) -> None:
        self.cache.invalidate(keys.UNREAD_NOTIFICATION_COUNT)

    def _on_message(self, event: ChangeEvent) -> None:
        row = event.record
        match_id = row.get("match_id")
        if match_id != self.match_id:
            return
        key = keys.messages_key(match_id)

        if event.event_type is EventType.DELETE:
            self.cache.update(key, lambda items: drop_message(items, row.get("id")))
            self.cache.invalidate(keys.MATCHES)
            return

        try:
            message = MessageResponse.model_validate(row)
        except ValidationError:
            logger.warning("reconciler_bad_message_row", match_id=match_id)
            return

        if event.event_type is EventType.INSERT:
            self.cache.update(key, lambda items: append_message(items, message))
            self.cache.invalidate(keys.MATCHES)
            self.cache.invalidate(keys.UNREAD_MESSAGE_COUNT)
            self.cache.invalidate(keys.LAST_MESSAGES)
        else:
            self.cache.update(key, lambda items: replace_message(items, message))
