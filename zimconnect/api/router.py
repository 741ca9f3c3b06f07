"""
ZimConnect — Main API Router

Aggregates all sub-routers under a single prefix so that ``zimconnect.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from zimconnect.api import discover, likes, matches, notifications, profiles, realtime, settings

router = APIRouter()

router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
router.include_router(discover.router, prefix="/discover", tags=["Discovery"])
router.include_router(likes.router, prefix="/likes", tags=["Likes"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(matches.messages_router, prefix="/messages", tags=["Messages"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(settings.router, prefix="/settings", tags=["Settings"])
router.include_router(settings.locations_router, prefix="/locations", tags=["Locations"])
router.include_router(realtime.router, tags=["Realtime"])
