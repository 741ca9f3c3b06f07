"""
ZimConnect — Likes API
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.api.deps import current_user_id, get_ledger_service, get_swipe_service
from zimconnect.database import get_db
from zimconnect.errors import StaleReference
from zimconnect.schemas.match import CountResponse, LikedProfileItem
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.swipe_service import SwipeService

router = APIRouter()


@router.get("", response_model=list[LikedProfileItem], summary="Profiles the caller liked")
async def list_liked(
    user_id: str = Depends(current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
    db: AsyncSession = Depends(get_db),
) -> list[LikedProfileItem]:
    return await ledger.list_liked_profiles(user_id, db)


@router.get("/received/count", response_model=CountResponse, summary="Likes received")
async def likes_received(
    user_id: str = Depends(current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    return CountResponse(count=await ledger.likes_received_count(user_id, db))


@router.delete(
    "/{profile_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unlike a profile (removes any match and its messages)",
)
async def unlike(
    profile_id: str,
    user_id: str = Depends(current_user_id),
    swipes: SwipeService = Depends(get_swipe_service),
    db: AsyncSession = Depends(get_db),
) -> Response:
    if not await swipes.unlike(profile_id, user_id, db):
        raise StaleReference("Like not found.", profile_id=profile_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
