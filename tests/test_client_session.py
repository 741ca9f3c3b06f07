"""Tests for the client-side state: identity, chat selection and ClientSession flows."""
import pytest

from zimconnect.client import keys
from zimconnect.client.identity import IdentitySession
from zimconnect.client.selection import ChatSelection, MatchSelected, NO_MATCH
from zimconnect.client.session import ClientSession
from zimconnect.errors import NotAuthenticated, StaleReference, ValidationFailed


class TestIdentity:

    def test_listeners_fire_only_on_user_change(self):
        identity = IdentitySession()
        seen = []
        remove = identity.on_auth_change(lambda user: seen.append(user.id if user else None))

        identity.sign_in("u1")
        identity.sign_in("u1", token="refreshed")
        identity.sign_in("u2")
        identity.sign_out()
        remove()
        identity.sign_in("u3")

        assert seen == ["u1", "u2", None]
        assert identity.current_user().token == ""
        assert identity.user_id == "u3"


class TestChatSelection:

    def test_transitions_notify_with_previous_and_current(self):
        selection = ChatSelection()
        seen = []
        selection.on_change(lambda prev, cur: seen.append((prev, cur)))

        selection.select("m1", "p1")
        selection.select("m1", "p1")
        selection.clear()

        assert seen == [(NO_MATCH, MatchSelected("m1", "p1")), (MatchSelected("m1", "p1"), NO_MATCH)]

    def test_reconcile_drops_vanished_match(self):
        selection = ChatSelection()
        selection.select("m1", "p1")

        assert selection.reconcile(["m1", "m2"]) == MatchSelected("m1", "p1")
        assert selection.reconcile(["m2"]) == NO_MATCH

    def test_clear_if_involves(self):
        selection = ChatSelection()
        selection.select("m1", "p1")
        selection.clear_if_involves("someone-else")
        assert selection.is_selected
        selection.clear_if_involves("p1")
        assert not selection.is_selected


@pytest.fixture
def client(session_factory, feed):
    return ClientSession(session_factory, feed)


class TestClientSession:

    @pytest.mark.asyncio
    async def test_operations_require_sign_in(self, client):
        with pytest.raises(NotAuthenticated):
            await client.load_candidates()

    @pytest.mark.asyncio
    async def test_incomplete_profile_cannot_load_candidates(self, client, make_profile):
        me = await make_profile(photos=[])
        await make_profile()
        client.identity.sign_in(me.id)

        with pytest.raises(ValidationFailed):
            await client.load_candidates()
        assert client.candidates.items == []
        await client.close()

    @pytest.mark.asyncio
    async def test_discovery_like_and_pass(self, client, make_profile):
        me = await make_profile()
        first = await make_profile(first_name="First")
        second = await make_profile(first_name="Second")
        client.identity.sign_in(me.id)

        loaded = await client.load_candidates()
        assert {c.id for c in loaded} == {first.id, second.id}

        await client.like(first.id)
        assert not client.candidates.contains(first.id)
        assert client.pass_candidate(second.id) is True
        assert client.candidates.ids() == []

        await client.cache.settle()
        refreshed = await client.load_candidates()
        assert [c.id for c in refreshed] == [second.id]
        await client.close()

    @pytest.mark.asyncio
    async def test_location_override_rebinds_and_clears(self, client, make_profile):
        me = await make_profile()
        texan = await make_profile(state="Texas", city="Austin")
        georgian = await make_profile()
        client.identity.sign_in(me.id)

        assert [c.id for c in await client.set_location_override(state="Texas")] == [texan.id]

        client.leave_discovery()
        assert {c.id for c in await client.load_candidates()} == {texan.id, georgian.id}
        await client.close()

    @pytest.mark.asyncio
    async def test_chat_flow(self, db, client, ledger, make_profile):
        me = await make_profile()
        other = await make_profile()
        await ledger.insert_like(me.id, other.id, db)
        await ledger.insert_like(other.id, me.id, db)
        match = await ledger.find_match(me.id, other.id, db)
        client.identity.sign_in(me.id)

        with pytest.raises(StaleReference):
            await client.select_match("unknown")
        with pytest.raises(ValidationFailed):
            await client.send_message("nobody selected")

        assert await client.select_match(match.id) == []
        sent = await client.send_message("Mhoro!")

        [cached] = client.cache.get_data(keys.messages_key(match.id))
        assert cached.id == sent.id

        counts = await client.load_counts()
        assert counts[keys.MATCH_COUNT] == 1
        assert counts[keys.UNREAD_MESSAGE_COUNT] == 0

        client.clear_match()
        assert "messages" not in client.reconciler.active_scopes
        await client.close()

    @pytest.mark.asyncio
    async def test_unlike_from_liked_list(self, client, make_profile):
        me = await make_profile()
        other = await make_profile()
        client.identity.sign_in(me.id)
        await client.load_candidates()
        await client.like(other.id)

        [liked] = await client.load_liked_profiles(force=True)
        assert liked.liked_id == other.id

        assert await client.unlike(other.id) is True
        await client.cache.settle()
        assert client.cache.get_data(keys.liked_key(me.id)) == []
        await client.close()
