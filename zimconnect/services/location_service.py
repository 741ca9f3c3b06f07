"""
ZimConnect — Location reference data (``city_coordinates``).

Feeds the state / city pickers used by the discovery location override and
the settings form.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.models.notification import CityCoordinate
from zimconnect.schemas.settings import StateCities
from zimconnect.services.store import store_call

logger = structlog.get_logger("zimconnect.location_service")


class LocationService:

    async def list_states(self, db_session: AsyncSession) -> list[str]:
        async with store_call("list_states"):
            result = await db_session.execute(
                select(CityCoordinate.state).distinct().order_by(CityCoordinate.state)
            )
            return sorted(set(result.scalars().all()))

    async def list_cities(self, state: str | None, db_session: AsyncSession) -> list[str]:
        """Cities in ``state``, or every known city when no state is given."""
        stmt = select(CityCoordinate.city).distinct()
        if state:
            stmt = stmt.where(CityCoordinate.state == state)
        async with store_call("list_cities"):
            result = await db_session.execute(stmt.order_by(CityCoordinate.city))
            return sorted(set(result.scalars().all()))

    async def coordinates(self, city: str, state: str, db_session: AsyncSession) -> CityCoordinate | None:
        if not city or not state:
            return None
        async with store_call("city_coordinates"):
            result = await db_session.execute(
                select(CityCoordinate)
                .where(CityCoordinate.city == city)
                .where(CityCoordinate.state == state)
            )
            return result.scalar_one_or_none()

    async def grouped(self, db_session: AsyncSession) -> list[StateCities]:
        """Every state with its cities, both alphabetical."""
        async with store_call("location_data"):
            result = await db_session.execute(
                select(CityCoordinate.state, CityCoordinate.city)
                .order_by(CityCoordinate.state, CityCoordinate.city)
            )
            rows = result.all()

        by_state: dict[str, list[str]] = {}
        for state, city in rows:
            cities = by_state.setdefault(state, [])
            if city not in cities:
                cities.append(city)
        return [StateCities(state=s, cities=c) for s, c in by_state.items()]
