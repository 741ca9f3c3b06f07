"""
ZimConnect — Settings & location reference API
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.api.deps import current_user_id, get_location_service, get_settings_service
from zimconnect.database import get_db
from zimconnect.errors import StaleReference
from zimconnect.models.notification import CityCoordinate, UserSettings
from zimconnect.schemas.settings import (
    CityCoordinateResponse,
    StateCities,
    UserSettingsResponse,
    UserSettingsUpdate,
)
from zimconnect.services.location_service import LocationService
from zimconnect.services.settings_service import SettingsService

router = APIRouter()
locations_router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# /settings
# ──────────────────────────────────────────────────────────────────────────────

@router.get("", response_model=UserSettingsResponse, summary="The caller's settings")
async def get_settings(
    user_id: str = Depends(current_user_id),
    settings_service: SettingsService = Depends(get_settings_service),
    db: AsyncSession = Depends(get_db),
) -> UserSettings:
    """Returns the stored settings, creating the defaults on first read."""
    row = await settings_service.get_settings(user_id, db)
    if row is None:
        row = await settings_service.create_default_settings(user_id, db)
    return row


@router.put("", response_model=UserSettingsResponse, summary="Update settings")
async def update_settings(
    payload: UserSettingsUpdate,
    user_id: str = Depends(current_user_id),
    settings_service: SettingsService = Depends(get_settings_service),
    db: AsyncSession = Depends(get_db),
) -> UserSettings:
    return await settings_service.update_settings(user_id, payload, db)


# ──────────────────────────────────────────────────────────────────────────────
# /locations
# ──────────────────────────────────────────────────────────────────────────────

@locations_router.get("/states", response_model=list[str], summary="Known states")
async def list_states(
    locations: LocationService = Depends(get_location_service),
    db: AsyncSession = Depends(get_db),
) -> list[str]:
    return await locations.list_states(db)


@locations_router.get("/cities", response_model=list[str], summary="Cities, optionally by state")
async def list_cities(
    state: Optional[str] = Query(None),
    locations: LocationService = Depends(get_location_service),
    db: AsyncSession = Depends(get_db),
) -> list[str]:
    return await locations.list_cities(state, db)


@locations_router.get("/grouped", response_model=list[StateCities], summary="States with their cities")
async def grouped(
    locations: LocationService = Depends(get_location_service),
    db: AsyncSession = Depends(get_db),
) -> list[StateCities]:
    return await locations.grouped(db)


@locations_router.get("/coordinates", response_model=CityCoordinateResponse, summary="City coordinates")
async def coordinates(
    city: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    locations: LocationService = Depends(get_location_service),
    db: AsyncSession = Depends(get_db),
) -> CityCoordinate:
    row = await locations.coordinates(city, state, db)
    if row is None:
        raise StaleReference("Unknown city.", city=city, state=state)
    return row
