"""
ZimConnect — API dependencies

Caller identity comes from the ``X-User-Id`` header set by the upstream
identity provider's gateway.  Services are built per request around the
process-wide change feed.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from zimconnect.client.candidates import CandidateSet
from zimconnect.errors import NotAuthenticated
from zimconnect.realtime.cache import QueryCache
from zimconnect.realtime.feed import ChangeFeed, get_change_feed
from zimconnect.services.candidate_service import CandidateSelector
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.location_service import LocationService
from zimconnect.services.message_service import MessageService
from zimconnect.services.notification_service import NotificationService
from zimconnect.services.profile_service import ProfileService
from zimconnect.services.settings_service import SettingsService
from zimconnect.services.swipe_service import SwipeService


async def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise NotAuthenticated("Missing X-User-Id header")
    return x_user_id


def get_feed() -> ChangeFeed:
    return get_change_feed()


def get_profile_service(feed: ChangeFeed = Depends(get_feed)) -> ProfileService:
    return ProfileService(feed=feed)


def get_settings_service(
    profiles: ProfileService = Depends(get_profile_service),
) -> SettingsService:
    return SettingsService(profile_service=profiles)


def get_notification_service(
    feed: ChangeFeed = Depends(get_feed),
    settings_service: SettingsService = Depends(get_settings_service),
) -> NotificationService:
    return NotificationService(feed=feed, settings_service=settings_service)


def get_ledger_service(
    feed: ChangeFeed = Depends(get_feed),
    notifications: NotificationService = Depends(get_notification_service),
) -> LedgerService:
    return LedgerService(feed=feed, notification_service=notifications)


def get_message_service(
    feed: ChangeFeed = Depends(get_feed),
    ledger: LedgerService = Depends(get_ledger_service),
    notifications: NotificationService = Depends(get_notification_service),
) -> MessageService:
    return MessageService(feed=feed, ledger=ledger, notification_service=notifications)


def get_candidate_selector(ledger: LedgerService = Depends(get_ledger_service)) -> CandidateSelector:
    return CandidateSelector(ledger=ledger)


def get_swipe_service(ledger: LedgerService = Depends(get_ledger_service)) -> SwipeService:
    # The HTTP surface holds no candidate view; cache writes land in a
    # request-local cache and are discarded.
    cache = QueryCache()
    return SwipeService(CandidateSet(cache), cache, ledger=ledger)


def get_location_service() -> LocationService:
    return LocationService()
