"""Unit tests for MessageService: party checks, ordering and read receipts."""
import pytest
import pytest_asyncio

from zimconnect.errors import NotAuthenticated, StaleReference, ValidationFailed
from zimconnect.realtime.events import EventType, Table


@pytest_asyncio.fixture
async def matched(db, ledger, make_profile):
    a = await make_profile(first_name="Tafadzwa")
    b = await make_profile(first_name="Nyasha")
    await ledger.insert_like(a.id, b.id, db)
    await ledger.insert_like(b.id, a.id, db)
    match = await ledger.find_match(a.id, b.id, db)
    return a, b, match


class TestSend:

    @pytest.mark.asyncio
    async def test_messages_listed_oldest_first(self, db, message_service, matched):
        a, b, match = matched
        await message_service.send_message(match.id, a.id, "one", db)
        await message_service.send_message(match.id, b.id, "two", db)
        await message_service.send_message(match.id, a.id, "  three  ", db)

        rows = await message_service.list_messages(match.id, b.id, db)

        assert [m.content for m in rows] == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_empty_or_oversized_content_rejected(self, db, message_service, matched):
        a, _, match = matched
        with pytest.raises(ValidationFailed):
            await message_service.send_message(match.id, a.id, "   ", db)
        with pytest.raises(ValidationFailed):
            await message_service.send_message(
                match.id, a.id, "x" * (message_service.settings.MESSAGE_MAX_LENGTH + 1), db
            )

    @pytest.mark.asyncio
    async def test_outsider_cannot_write_or_read(self, db, message_service, matched, make_profile):
        _, _, match = matched
        outsider = await make_profile()
        with pytest.raises(ValidationFailed):
            await message_service.send_message(match.id, outsider.id, "hi", db)
        with pytest.raises(ValidationFailed):
            await message_service.list_messages(match.id, outsider.id, db)

    @pytest.mark.asyncio
    async def test_unknown_match_and_missing_user(self, db, message_service, matched):
        a, _, _ = matched
        with pytest.raises(StaleReference):
            await message_service.send_message("missing", a.id, "hi", db)
        with pytest.raises(NotAuthenticated):
            await message_service.list_messages("missing", None, db)

    @pytest.mark.asyncio
    async def test_send_publishes_insert(self, db, feed, message_service, matched):
        a, _, match = matched
        seen = []
        feed.subscribe(Table.MESSAGES, seen.append, predicate=lambda row: row["match_id"] == match.id)

        message = await message_service.send_message(match.id, a.id, "hello", db)
        await feed.drain()

        assert [(e.event_type, e.new["id"]) for e in seen] == [(EventType.INSERT, message.id)]


class TestRead:

    @pytest.mark.asyncio
    async def test_mark_read_only_touches_counterpart_messages(self, db, feed, message_service, matched):
        a, b, match = matched
        await message_service.send_message(match.id, a.id, "from a", db)
        await message_service.send_message(match.id, b.id, "from b", db)
        assert await message_service.unread_message_count(b.id, db) == 1
        updates = []
        feed.subscribe(Table.MESSAGES, updates.append, event_types={EventType.UPDATE})

        marked = await message_service.mark_read(match.id, b.id, db)
        await feed.drain()

        assert [m.content for m in marked] == ["from a"]
        assert marked[0].read_at is not None
        assert len(updates) == 1 and updates[0].old["read_at"] is None
        assert await message_service.unread_message_count(b.id, db) == 0
        assert await message_service.unread_message_count(a.id, db) == 1
        assert await message_service.mark_read(match.id, b.id, db) == []

    @pytest.mark.asyncio
    async def test_last_messages_per_match(self, db, message_service, matched):
        a, b, match = matched
        await message_service.send_message(match.id, a.id, "early", db)
        await message_service.send_message(match.id, b.id, "late", db)

        latest = await message_service.last_messages([match.id, "other"], db)

        assert set(latest) == {match.id}
        assert latest[match.id].content == "late"
