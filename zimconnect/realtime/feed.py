"""
ZimConnect — Change Feed

Push notifications of row-level INSERT / UPDATE / DELETE events, filtered by
table, event type and a row predicate.

Two transports share the same subscription machinery:

* ``ChangeFeed`` — in-process fan-out, used by a single API worker and by
  the test-suite.
* ``RedisChangeFeed`` — publishes through Redis pub/sub so every worker's
  subscribers see every commit; incoming messages are fanned out locally.

Each subscription owns an ``asyncio.Queue`` drained by one worker task, so
events reach a subscriber in publish order.  Unsubscribing cancels the
worker and discards anything still queued: a late event from a torn-down
subscription is never delivered.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
from collections import defaultdict
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from zimconnect.realtime.events import ALL_EVENTS, ChangeEvent, EventType, Table

logger = structlog.get_logger("zimconnect.realtime.feed")

Predicate = Callable[[dict[str, Any]], bool]
EventHandler = Callable[[ChangeEvent], Union[Awaitable[None], None]]

_subscription_ids = itertools.count(1)


class Subscription:
    """Handle returned by :meth:`ChangeFeed.subscribe`."""

    def __init__(
        self,
        feed: "ChangeFeed",
        table: Table,
        on_event: EventHandler,
        event_types: Iterable[EventType] = ALL_EVENTS,
        predicate: Optional[Predicate] = None,
        name: str | None = None,
    ) -> None:
        self.id = next(_subscription_ids)
        self.feed = feed
        self.table = table
        self.on_event = on_event
        self.event_types = frozenset(event_types)
        self.predicate = predicate
        self.name = name or f"{table.value}-{self.id}"
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.active = True
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"subscription:{self.name}"
        )

    def accepts(self, event: ChangeEvent) -> bool:
        if event.table is not self.table or event.event_type not in self.event_types:
            return False
        if self.predicate is None:
            return True
        try:
            return bool(self.predicate(event.record))
        except Exception:
            logger.exception("subscription_predicate_failed", subscription=self.name)
            return False

    def offer(self, event: ChangeEvent) -> None:
        if self.active and self.accepts(event):
            self.queue.put_nowait(event)

    async def _run(self) -> None:
        while self.active:
            event = await self.queue.get()
            try:
                if self.active:
                    result = self.on_event(event)
                    if inspect.isawaitable(result):
                        await result
            except Exception:
                logger.exception(
                    "subscription_callback_failed",
                    subscription=self.name,
                    table=event.table.value,
                    event_type=event.event_type.value,
                )
            finally:
                self.queue.task_done()

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.feed._remove(self)
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()
        logger.debug("subscription_closed", subscription=self.name)

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.name} {state}>"


class ChangeFeed:
    """In-process change feed."""

    def __init__(self) -> None:
        self._subscriptions: dict[Table, list[Subscription]] = defaultdict(list)

    async def start(self) -> None:
        logger.info("change_feed_started", transport="memory")

    async def close(self) -> None:
        for sub in list(self.subscriptions()):
            sub.unsubscribe()

    def subscribe(
        self,
        table: Table,
        on_event: EventHandler,
        *,
        event_types: Iterable[EventType] = ALL_EVENTS,
        predicate: Optional[Predicate] = None,
        name: str | None = None,
    ) -> Subscription:
        sub = Subscription(self, table, on_event, event_types, predicate, name)
        self._subscriptions[table].append(sub)
        sub.start()
        logger.debug("subscription_opened", subscription=sub.name, table=table.value)
        return sub

    async def publish(self, event: ChangeEvent) -> None:
        self._dispatch(event)

    async def publish_many(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            await self.publish(event)

    def subscriptions(self, table: Table | None = None) -> list[Subscription]:
        if table is not None:
            return list(self._subscriptions.get(table, []))
        return [s for subs in self._subscriptions.values() for s in subs]

    async def drain(self) -> None:
        """Wait until every queued event has been handed to its subscriber."""
        for _ in range(3):
            await asyncio.gather(*(s.queue.join() for s in self.subscriptions()))
            await asyncio.sleep(0)

    async def ping(self) -> bool:
        return True

    def _dispatch(self, event: ChangeEvent) -> None:
        for sub in list(self._subscriptions.get(event.table, [])):
            sub.offer(event)

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.table, [])
        if sub in subs:
            subs.remove(sub)


class RedisChangeFeed(ChangeFeed):
    """Change feed that fans out through Redis pub/sub."""

    def __init__(self, redis_client, channel_prefix: str) -> None:
        super().__init__()
        self._redis = redis_client
        self._prefix = channel_prefix
        self._pubsub = None
        self._listener: asyncio.Task | None = None

    def channel(self, table: Table) -> str:
        return f"{self._prefix}:{table.value}"

    async def start(self) -> None:
        await self._redis.ping()
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(f"{self._prefix}:*")
        self._listener = asyncio.get_running_loop().create_task(
            self._listen(), name="change-feed-listener"
        )
        logger.info("change_feed_started", transport="redis", prefix=self._prefix)

    async def close(self) -> None:
        await super().close()
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        await self._redis.aclose()
        logger.info("change_feed_closed", transport="redis")

    async def publish(self, event: ChangeEvent) -> None:
        await self._redis.publish(self.channel(event.table), event.model_dump_json())

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                try:
                    event = ChangeEvent.model_validate_json(message["data"])
                except ValidationError:
                    logger.warning("change_feed_bad_payload", channel=message.get("channel"))
                    continue
                self._dispatch(event)
        except Exception:
            logger.exception("change_feed_listener_failed", prefix=self._prefix)


# ---------------------------------------------------------------------------
# Process-wide feed
# ---------------------------------------------------------------------------

_feed: ChangeFeed | None = None


def get_change_feed() -> ChangeFeed:
    """Return the shared change feed (in-process until ``open_change_feed`` runs)."""
    global _feed
    if _feed is None:
        _feed = ChangeFeed()
    return _feed


async def open_change_feed(settings) -> ChangeFeed:
    """Build the configured transport and start it.

    Redis start-up is retried with exponential backoff (1s initial wait,
    10s max, 5 attempts) on connection errors only.
    """
    global _feed
    if settings.REALTIME_BACKEND == "redis":
        import redis.asyncio as aioredis
        from redis.exceptions import ConnectionError as RedisConnectionError
        from redis.exceptions import TimeoutError as RedisTimeoutError

        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        feed: ChangeFeed = RedisChangeFeed(client, settings.REALTIME_CHANNEL_PREFIX)
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
            stop=stop_after_attempt(5),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        ):
            with attempt:
                logger.debug(
                    "change_feed_connect_attempt",
                    attempt_number=attempt.retry_state.attempt_number,
                )
                await feed.start()
    else:
        feed = ChangeFeed()
        await feed.start()
    _feed = feed
    return feed


async def close_change_feed() -> None:
    global _feed
    if _feed is not None:
        await _feed.close()
        _feed = None
