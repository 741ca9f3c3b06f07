"""
ZimConnect — Discovery API

Candidate feed and the like action.  Query parameters override the
caller's persisted discovery settings for this request only.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.api.deps import (
    current_user_id,
    get_candidate_selector,
    get_ledger_service,
    get_profile_service,
    get_settings_service,
)
from zimconnect.database import get_db
from zimconnect.errors import LikeFailed, ZimConnectError
from zimconnect.models.match import Like
from zimconnect.schemas.match import LikeResponse
from zimconnect.schemas.profile import CandidateProfile
from zimconnect.services.candidate_service import CandidateSelector
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.profile_service import ProfileService
from zimconnect.services.settings_service import SettingsService

logger = structlog.get_logger("zimconnect.api.discover")

router = APIRouter()


@router.get("", response_model=list[CandidateProfile], summary="Discovery candidates")
async def discover(
    gender: Optional[str] = Query(None),
    age_min: Optional[int] = Query(None, ge=18, le=100),
    age_max: Optional[int] = Query(None, ge=18, le=100),
    state: str = Query(""),
    city: str = Query(""),
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    settings_service: SettingsService = Depends(get_settings_service),
    selector: CandidateSelector = Depends(get_candidate_selector),
    db: AsyncSession = Depends(get_db),
) -> list[CandidateProfile]:
    await profiles.require_complete(user_id, db)

    row = await settings_service.get_settings(user_id, db)
    criteria = settings_service.resolve_filters(row, state_override=state, city_override=city)

    overrides: dict = {}
    if gender:
        overrides["gender_preference"] = gender
    if age_min is not None or age_max is not None:
        low = age_min if age_min is not None else criteria.age_range[0]
        high = age_max if age_max is not None else criteria.age_range[1]
        if low > high:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"age_min {low} exceeds age_max {high}",
            )
        overrides["age_range"] = (low, high)
    if overrides:
        criteria = criteria.model_copy(update=overrides)

    return await selector.select_candidates(user_id, criteria, db)


@router.post(
    "/{candidate_id}/like",
    response_model=LikeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Like a candidate",
)
async def like_candidate(
    candidate_id: str,
    user_id: str = Depends(current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
    db: AsyncSession = Depends(get_db),
) -> Like:
    """Record the like. Match creation, if any, is reported over the realtime feed."""
    try:
        return await ledger.insert_like(user_id, candidate_id, db)
    except ZimConnectError as exc:
        logger.warning("like_candidate_failed", user_id=user_id, candidate_id=candidate_id, error=exc.code)
        raise LikeFailed("Could not like this profile.", cause=exc, candidate_id=candidate_id) from exc
