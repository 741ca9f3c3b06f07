"""HTTP surface tests: routing, caller identity and error-to-status mapping."""
import httpx
import pytest
import pytest_asyncio

from zimconnect.api.deps import get_feed
from zimconnect.database import get_db
from zimconnect.errors import FetchFailed, LikeFailed, NotAuthenticated, StaleReference, ValidationFailed
from zimconnect.main import app, status_for


@pytest_asyncio.fixture
async def client(session_factory, feed):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_feed] = lambda: feed
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


def _as(user_id):
    return {"X-User-Id": user_id}


class TestStatusMapping:

    def test_each_error_kind_has_a_status(self):
        assert status_for(NotAuthenticated()) == 401
        assert status_for(StaleReference()) == 404
        assert status_for(LikeFailed()) == 409
        assert status_for(ValidationFailed()) == 422
        assert status_for(FetchFailed()) == 503


class TestHealth:

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestProfiles:

    @pytest.mark.asyncio
    async def test_missing_identity_is_401(self, client):
        response = await client.get("/api/v1/profiles/me")
        assert response.status_code == 401
        assert response.json()["error"] == "not_authenticated"

    @pytest.mark.asyncio
    async def test_create_then_read_own_profile(self, client, sample_user_id):
        body = {
            "first_name": "Tsitsi", "last_name": "Mutasa", "age": 26, "gender": "woman",
            "city": "Atlanta", "state": "Georgia", "bio": "Hi", "interests": ["art"],
        }
        created = await client.post("/api/v1/profiles", json=body, headers=_as(sample_user_id))
        assert created.status_code == 201
        assert created.json()["profile_complete"] is False

        me = await client.get("/api/v1/profiles/me", headers=_as(sample_user_id))
        assert me.status_code == 200
        assert me.json()["first_name"] == "Tsitsi"

    @pytest.mark.asyncio
    async def test_other_profile_is_privacy_masked(self, client, make_profile):
        me = await make_profile()
        other = await make_profile(first_name="Zodwa", last_name="Khumalo", age=33, show_age=False)

        response = await client.get(f"/api/v1/profiles/{other.id}", headers=_as(me.id))

        assert response.status_code == 200
        data = response.json()
        assert data["display_name"] == "Zodwa Khumalo"
        assert data["age"] is None

    @pytest.mark.asyncio
    async def test_unknown_profile_is_404(self, client, make_profile):
        me = await make_profile()
        response = await client.get("/api/v1/profiles/nope", headers=_as(me.id))
        assert response.status_code == 404


class TestDiscoveryFlow:

    @pytest.mark.asyncio
    async def test_discover_like_match_and_message(self, client, make_profile):
        a = await make_profile(first_name="Ana")
        b = await make_profile(first_name="Ben")

        feed_a = await client.get("/api/v1/discover", headers=_as(a.id))
        assert [p["id"] for p in feed_a.json()] == [b.id]

        assert (await client.post(f"/api/v1/discover/{b.id}/like", headers=_as(a.id))).status_code == 201
        assert (await client.get("/api/v1/discover", headers=_as(a.id))).json() == []
        assert (await client.post(f"/api/v1/discover/{a.id}/like", headers=_as(b.id))).status_code == 201

        matches = (await client.get("/api/v1/matches", headers=_as(a.id))).json()
        assert len(matches) == 1 and matches[0]["other_user_id"] == b.id
        match_id = matches[0]["id"]

        sent = await client.post(
            f"/api/v1/matches/{match_id}/messages", json={"content": "Hello"}, headers=_as(a.id)
        )
        assert sent.status_code == 201
        unread = await client.get("/api/v1/messages/unread/count", headers=_as(b.id))
        assert unread.json() == {"count": 1}
        read = await client.post(f"/api/v1/matches/{match_id}/messages/read", headers=_as(b.id))
        assert read.json() == {"count": 1}

    @pytest.mark.asyncio
    async def test_duplicate_like_is_409_with_cause(self, client, make_profile):
        a = await make_profile()
        b = await make_profile()
        await client.post(f"/api/v1/discover/{b.id}/like", headers=_as(a.id))

        response = await client.post(f"/api/v1/discover/{b.id}/like", headers=_as(a.id))

        assert response.status_code == 409
        assert response.json()["cause"] == "validation_failed"

    @pytest.mark.asyncio
    async def test_incomplete_profile_cannot_discover(self, client, make_profile):
        me = await make_profile(photos=[])
        response = await client.get("/api/v1/discover", headers=_as(me.id))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_query_overrides_filters(self, client, make_profile):
        me = await make_profile()
        texan = await make_profile(state="Texas", city="Austin")
        await make_profile(state="Georgia", city="Atlanta")

        response = await client.get(
            "/api/v1/discover", params={"state": "Texas"}, headers=_as(me.id)
        )

        assert [p["id"] for p in response.json()] == [texan.id]

    @pytest.mark.asyncio
    async def test_unlike_removes_match(self, client, make_profile):
        a = await make_profile()
        b = await make_profile()
        await client.post(f"/api/v1/discover/{b.id}/like", headers=_as(a.id))
        await client.post(f"/api/v1/discover/{a.id}/like", headers=_as(b.id))

        response = await client.delete(f"/api/v1/likes/{a.id}", headers=_as(b.id))

        assert response.status_code == 204
        assert (await client.get("/api/v1/matches/count", headers=_as(a.id))).json() == {"count": 0}
        again = await client.delete(f"/api/v1/likes/{a.id}", headers=_as(b.id))
        assert again.status_code == 404


class TestSettingsAndNotifications:

    @pytest.mark.asyncio
    async def test_settings_created_on_first_read(self, client, make_profile):
        me = await make_profile()
        response = await client.get("/api/v1/settings", headers=_as(me.id))
        assert response.status_code == 200
        assert response.json()["discovery"]["showMe"] == "everyone"

    @pytest.mark.asyncio
    async def test_like_notification_and_read_all(self, client, make_profile):
        a = await make_profile()
        b = await make_profile()
        await client.post(f"/api/v1/discover/{b.id}/like", headers=_as(a.id))

        count = await client.get("/api/v1/notifications/unread/count", headers=_as(b.id))
        assert count.json() == {"count": 1}
        [note] = (await client.get("/api/v1/notifications", headers=_as(b.id))).json()
        assert note["type"] == "like"

        cleared = await client.post("/api/v1/notifications/read-all", headers=_as(b.id))
        assert cleared.json() == {"count": 1}
