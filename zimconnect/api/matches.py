"""
ZimConnect — Matches & Messages API
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.api.deps import current_user_id, get_ledger_service, get_message_service
from zimconnect.database import get_db
from zimconnect.errors import StaleReference
from zimconnect.models.match import Match
from zimconnect.models.message import Message
from zimconnect.schemas.match import (
    CountResponse,
    MatchListItem,
    MatchResponse,
    MessageCreate,
    MessageResponse,
)
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.message_service import MessageService

logger = structlog.get_logger("zimconnect.api.matches")

router = APIRouter()
messages_router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# Matches
# ──────────────────────────────────────────────────────────────────────────────

@router.get("", response_model=list[MatchListItem], summary="The caller's matches")
async def list_matches(
    user_id: str = Depends(current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
    db: AsyncSession = Depends(get_db),
) -> list[MatchListItem]:
    return await ledger.list_matches(user_id, db)


@router.get("/count", response_model=CountResponse, summary="Number of matches")
async def match_count(
    user_id: str = Depends(current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    return CountResponse(count=await ledger.match_count(user_id, db))


@router.get("/with/{profile_id}", response_model=MatchResponse, summary="Match with a profile")
async def match_with(
    profile_id: str,
    user_id: str = Depends(current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
    db: AsyncSession = Depends(get_db),
) -> Match:
    match = await ledger.find_match(user_id, profile_id, db)
    if match is None:
        raise StaleReference("No match with this profile.", profile_id=profile_id)
    return match


# ──────────────────────────────────────────────────────────────────────────────
# Messages within a match
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/{match_id}/messages", response_model=list[MessageResponse], summary="Conversation")
async def list_messages(
    match_id: str,
    user_id: str = Depends(current_user_id),
    messages: MessageService = Depends(get_message_service),
    db: AsyncSession = Depends(get_db),
) -> list[Message]:
    return await messages.list_messages(match_id, user_id, db)


@router.post(
    "/{match_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    match_id: str,
    payload: MessageCreate,
    user_id: str = Depends(current_user_id),
    messages: MessageService = Depends(get_message_service),
    db: AsyncSession = Depends(get_db),
) -> Message:
    return await messages.send_message(match_id, user_id, payload.content, db)


@router.post("/{match_id}/messages/read", response_model=CountResponse, summary="Mark conversation read")
async def mark_read(
    match_id: str,
    user_id: str = Depends(current_user_id),
    messages: MessageService = Depends(get_message_service),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    updated = await messages.mark_read(match_id, user_id, db)
    return CountResponse(count=len(updated))


# ──────────────────────────────────────────────────────────────────────────────
# /messages — cross-match counters
# ──────────────────────────────────────────────────────────────────────────────

@messages_router.get("/unread/count", response_model=CountResponse, summary="Unread messages")
async def unread_messages(
    user_id: str = Depends(current_user_id),
    messages: MessageService = Depends(get_message_service),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    return CountResponse(count=await messages.unread_message_count(user_id, db))
