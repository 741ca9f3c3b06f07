"""Unit tests for the change feed: ordering, filtering and teardown."""
import asyncio
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from zimconnect.realtime.events import ChangeEvent, EventType, Table
from zimconnect.realtime.feed import (
    ChangeFeed,
    RedisChangeFeed,
    close_change_feed,
    get_change_feed,
    open_change_feed,
)


def _message(i, match_id="m1"):
    return {"id": f"msg{i}", "match_id": match_id, "sender_id": "a", "content": str(i)}


class TestDelivery:

    @pytest.mark.asyncio
    async def test_events_arrive_in_publish_order(self, feed):
        seen = []
        feed.subscribe(Table.MESSAGES, lambda e: seen.append(e.new["id"]))

        await feed.publish_many(ChangeEvent.insert(Table.MESSAGES, _message(i)) for i in range(5))
        await feed.drain()

        assert seen == [f"msg{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_predicate_and_event_type_filter(self, feed):
        seen = []
        feed.subscribe(
            Table.MESSAGES,
            lambda e: seen.append((e.event_type, e.record["id"])),
            event_types={EventType.DELETE},
            predicate=lambda row: row.get("match_id") == "m1",
        )

        await feed.publish(ChangeEvent.insert(Table.MESSAGES, _message(1)))
        await feed.publish(ChangeEvent.delete(Table.MESSAGES, _message(2, match_id="m2")))
        await feed.publish(ChangeEvent.delete(Table.MESSAGES, _message(3)))
        await feed.publish(ChangeEvent.delete(Table.LIKES, {"id": "l1", "match_id": "m1"}))
        await feed.drain()

        assert seen == [(EventType.DELETE, "msg3")]

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self, feed):
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event.new["id"])

        feed.subscribe(Table.PROFILES, handler)
        await feed.publish(ChangeEvent.insert(Table.PROFILES, {"id": "p1"}))
        await feed.drain()

        assert seen == ["p1"]

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_subscription_alive(self, feed):
        seen = []

        def handler(event):
            if event.new["id"] == "bad":
                raise RuntimeError("handler bug")
            seen.append(event.new["id"])

        feed.subscribe(Table.PROFILES, handler)
        await feed.publish(ChangeEvent.insert(Table.PROFILES, {"id": "bad"}))
        await feed.publish(ChangeEvent.insert(Table.PROFILES, {"id": "good"}))
        await feed.drain()

        assert seen == ["good"]

    @pytest.mark.asyncio
    async def test_failing_predicate_rejects_event(self, feed):
        seen = []
        feed.subscribe(Table.PROFILES, seen.append, predicate=lambda row: row["missing"])

        await feed.publish(ChangeEvent.insert(Table.PROFILES, {"id": "p1"}))
        await feed.drain()

        assert seen == []


class TestTeardown:

    @pytest.mark.asyncio
    async def test_unsubscribe_discards_queued_events(self, feed):
        seen = []
        sub = feed.subscribe(Table.MESSAGES, lambda e: seen.append(e.new["id"]))

        # publish only enqueues; nothing runs until the loop yields
        await feed.publish(ChangeEvent.insert(Table.MESSAGES, _message(1)))
        sub.unsubscribe()
        await feed.drain()
        await asyncio.sleep(0)

        assert seen == []
        assert feed.subscriptions(Table.MESSAGES) == []
        assert sub.active is False

    @pytest.mark.asyncio
    async def test_unsubscribe_twice_is_harmless(self, feed):
        sub = feed.subscribe(Table.LIKES, lambda e: None)
        sub.unsubscribe()
        sub.unsubscribe()
        assert feed.subscriptions() == []

    @pytest.mark.asyncio
    async def test_close_drops_every_subscription(self, feed):
        feed.subscribe(Table.LIKES, lambda e: None)
        feed.subscribe(Table.MATCHES, lambda e: None)
        await feed.close()
        assert feed.subscriptions() == []


class TestRedisTransport:

    @pytest.mark.asyncio
    async def test_publish_goes_to_table_channel(self):
        redis = MagicMock()
        redis.publish = AsyncMock(return_value=1)
        feed = RedisChangeFeed(redis, "zimconnect")

        event = ChangeEvent.insert(Table.MATCHES, {"id": "m1", "user1_id": "a", "user2_id": "b"})
        await feed.publish(event)

        channel, payload = redis.publish.await_args.args
        assert channel == "zimconnect:matches"
        assert json.loads(payload)["new"]["id"] == "m1"

    @pytest.mark.asyncio
    async def test_incoming_messages_fan_out_locally(self):
        event = ChangeEvent.insert(Table.LIKES, {"id": "l1", "liker_id": "a", "liked_id": "b"})

        async def listen():
            yield {"type": "psubscribe", "data": 1}
            yield {"type": "pmessage", "channel": "zimconnect:likes", "data": "not json"}
            yield {"type": "pmessage", "channel": "zimconnect:likes", "data": event.model_dump_json()}

        pubsub = MagicMock()
        pubsub.listen = listen
        feed = RedisChangeFeed(MagicMock(), "zimconnect")
        feed._pubsub = pubsub
        seen = []
        feed.subscribe(Table.LIKES, lambda e: seen.append(e.new["id"]))

        await feed._listen()
        await feed.drain()

        assert seen == ["l1"]
        for sub in feed.subscriptions():
            sub.unsubscribe()

    @pytest.mark.asyncio
    async def test_dropped_connection_is_logged(self):
        from redis.exceptions import ConnectionError as RedisConnectionError

        async def listen():
            yield {"type": "psubscribe", "data": 1}
            raise RedisConnectionError("Connection closed by server.")

        pubsub = MagicMock()
        pubsub.listen = listen
        feed = RedisChangeFeed(MagicMock(), "zimconnect")
        feed._pubsub = pubsub

        with patch("zimconnect.realtime.feed.logger") as logger:
            await feed._listen()

        logger.exception.assert_called_once_with("change_feed_listener_failed", prefix="zimconnect")


class TestOpenChangeFeed:

    @pytest.mark.asyncio
    async def test_memory_backend(self):
        settings = MagicMock(REALTIME_BACKEND="memory")
        feed = await open_change_feed(settings)
        try:
            assert type(feed) is ChangeFeed
            assert get_change_feed() is feed
        finally:
            await close_change_feed()

    @pytest.mark.asyncio
    async def test_redis_start_retried_on_connection_error(self):
        from redis.exceptions import ConnectionError as RedisConnectionError

        redis = MagicMock()
        redis.ping = AsyncMock(side_effect=[RedisConnectionError("refused"), True])
        redis.aclose = AsyncMock()
        pubsub = MagicMock()
        pubsub.psubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.listen = MagicMock(return_value=_never())
        redis.pubsub = MagicMock(return_value=pubsub)
        settings = MagicMock(
            REALTIME_BACKEND="redis", REDIS_URL="redis://x", REALTIME_CHANNEL_PREFIX="zc"
        )

        with patch("redis.asyncio.from_url", return_value=redis):
            feed = await open_change_feed(settings)
        try:
            assert isinstance(feed, RedisChangeFeed)
            assert redis.ping.await_count == 2
            pubsub.psubscribe.assert_awaited_once_with("zc:*")
        finally:
            await close_change_feed()


async def _never():
    await asyncio.Event().wait()
    yield
