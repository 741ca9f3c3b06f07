"""Unit tests for CandidateSelector: exclusion, filters and privacy decoration."""
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError

from zimconnect.errors import FetchFailed, NotAuthenticated
from zimconnect.schemas.settings import FilterCriteria
from zimconnect.services.candidate_service import CandidateSelector
from zimconnect.services.profile_service import LOCATION_HIDDEN, decorate_profile


@pytest.fixture
def selector(ledger):
    return CandidateSelector(ledger=ledger)


def _ids(candidates):
    return {c.id for c in candidates}


class TestExclusion:

    @pytest.mark.asyncio
    async def test_never_returns_self_or_liked(self, db, selector, ledger, make_profile):
        """Every returned id is outside {self} ∪ {liked ids}."""
        me = await make_profile(first_name="Me", age=30)
        liked = [await make_profile(first_name=f"Liked{i}", age=26 + i) for i in range(3)]
        others = [await make_profile(first_name=f"Other{i}", age=25 + i) for i in range(4)]
        for profile in liked:
            await ledger.insert_like(me.id, profile.id, db)

        result = await selector.select_candidates(
            me.id, FilterCriteria(age_range=(18, 99)), db
        )

        forbidden = {me.id} | {p.id for p in liked}
        assert _ids(result).isdisjoint(forbidden)
        assert _ids(result) == {p.id for p in others}

    @pytest.mark.asyncio
    async def test_scenario_filters_and_like_exclude_everyone(self, db, selector, ledger, make_profile):
        """Age [25,35] + Georgia, with a like on P1: P1 liked, P2 too old, P3 wrong state."""
        me = await make_profile(first_name="U", age=29)
        p1 = await make_profile(first_name="P1", age=30, state="Georgia")
        await make_profile(first_name="P2", age=40, state="Georgia")
        await make_profile(first_name="P3", age=28, state="Florida", city="Miami")
        await ledger.insert_like(me.id, p1.id, db)

        result = await selector.select_candidates(
            me.id, FilterCriteria(age_range=(25, 35), state_filter="Georgia"), db
        )

        assert result == []

    @pytest.mark.asyncio
    async def test_empty_store_is_not_an_error(self, db, selector, make_profile):
        me = await make_profile()
        assert await selector.select_candidates(me.id, FilterCriteria(), db) == []


class TestFilters:

    @pytest.mark.asyncio
    async def test_age_bounds_are_inclusive(self, db, selector, make_profile):
        me = await make_profile(age=30)
        low = await make_profile(age=25)
        high = await make_profile(age=35)
        await make_profile(age=24)
        await make_profile(age=36)

        result = await selector.select_candidates(me.id, FilterCriteria(age_range=(25, 35)), db)
        assert _ids(result) == {low.id, high.id}

    @pytest.mark.asyncio
    async def test_gender_everyone_skips_clause(self, db, selector, make_profile):
        me = await make_profile()
        woman = await make_profile(gender="woman")
        man = await make_profile(gender="man")

        everyone = await selector.select_candidates(
            me.id, FilterCriteria(gender_preference="everyone"), db
        )
        men = await selector.select_candidates(
            me.id, FilterCriteria(gender_preference="man"), db
        )

        assert _ids(everyone) == {woman.id, man.id}
        assert _ids(men) == {man.id}

    @pytest.mark.asyncio
    async def test_city_filter(self, db, selector, make_profile):
        me = await make_profile()
        atl = await make_profile(city="Atlanta", state="Georgia")
        await make_profile(city="Savannah", state="Georgia")

        result = await selector.select_candidates(
            me.id, FilterCriteria(state_filter="Georgia", city_filter="Atlanta"), db
        )
        assert _ids(result) == {atl.id}

    @pytest.mark.asyncio
    async def test_interests_do_not_filter(self, db, selector, make_profile):
        me = await make_profile()
        other = await make_profile(interests=["chess"])

        result = await selector.select_candidates(
            me.id, FilterCriteria(interests=("surfing",)), db
        )
        assert _ids(result) == {other.id}

    @pytest.mark.asyncio
    async def test_result_cap(self, db, ledger, make_profile):
        me = await make_profile()
        for _ in range(5):
            await make_profile()
        selector = CandidateSelector(ledger=ledger)
        selector.result_cap = 3

        result = await selector.select_candidates(me.id, FilterCriteria(), db)
        assert len(result) == 3


class TestDecoration:

    @pytest.mark.asyncio
    async def test_hidden_age_never_in_display_name(self, db, selector, make_profile):
        me = await make_profile()
        await make_profile(first_name="Rudo", last_name="Moyo", age=31, show_age=False)

        [candidate] = await selector.select_candidates(me.id, FilterCriteria(), db)

        assert "31" not in candidate.display_name
        assert candidate.display_name == "Rudo Moyo"
        assert candidate.age is None
        assert candidate.show_age is False

    def test_visible_age_appended(self):
        profile = MagicMock(
            id="p", first_name="Tendai", last_name="Ncube", age=27, gender="man",
            city="Atlanta", state="Georgia", bio="", interests=[], photos=[],
            show_age=True, show_location=True, show_online=False, updated_at=None,
        )
        decorated = decorate_profile(profile)
        assert decorated.display_name == "Tendai Ncube, 27"
        assert decorated.display_location == "Atlanta, Georgia"
        assert decorated.show_online is False

    def test_hidden_location_masked(self):
        profile = MagicMock(
            id="p", first_name="Farai", last_name="Dube", age=35, gender="man",
            city="Austin", state="Texas", bio=None, interests=None, photos=None,
            show_age=True, show_location=False, show_online=True, updated_at=None,
        )
        decorated = decorate_profile(profile)
        assert decorated.display_location == LOCATION_HIDDEN
        assert decorated.city is None and decorated.state is None
        assert decorated.photos == []


class TestErrors:

    @pytest.mark.asyncio
    async def test_missing_user_raises(self, db, selector):
        with pytest.raises(NotAuthenticated):
            await selector.select_candidates(None, FilterCriteria(), db)

    @pytest.mark.asyncio
    async def test_store_failure_surfaces_as_fetch_failed(self):
        ledger = MagicMock()
        ledger.liked_ids = AsyncMock(return_value=set())
        db = MagicMock()
        db.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("connection reset")))

        with pytest.raises(FetchFailed):
            await CandidateSelector(ledger=ledger).select_candidates("u1", FilterCriteria(), db)
