"""
ZimConnect — Profile Store service

Owns every write to the ``profiles`` table and the privacy-aware read shape
(``CandidateProfile``) that any *other* user is allowed to see.

Privacy rules applied by :func:`decorate_profile`:
  * ``display_name``      "First Last" plus ", <age>" only when show_age is on
  * ``display_location``  "City, State" when show_location is on, otherwise
                          the literal "Location hidden"
  * hidden fields are masked to ``None`` on the decorated profile, so no
    consumer can render them by accident.

``profile_complete`` is recomputed on every write; it gates access to the
discovery surface.
"""

from __future__ import annotations

from typing import Any, Iterable

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.config import get_settings
from zimconnect.errors import NotAuthenticated, StaleReference, ValidationFailed
from zimconnect.models.profile import Profile
from zimconnect.realtime.events import ChangeEvent, Table
from zimconnect.realtime.feed import ChangeFeed, get_change_feed
from zimconnect.schemas.profile import CandidateProfile, ProfileCreate
from zimconnect.services.store import store_call
from zimconnect.utils import storage

logger = structlog.get_logger("zimconnect.profile_service")

LOCATION_HIDDEN = "Location hidden"

_MUTABLE_FIELDS = frozenset({
    "first_name", "last_name", "age", "gender", "city", "state", "bio",
    "interests", "show_age", "show_location", "show_online",
})


def build_display_name(first_name: str, last_name: str, age: int | None, show_age: bool) -> str:
    name = f"{first_name} {last_name}".strip()
    if show_age and age:
        return f"{name}, {age}"
    return name


def build_display_location(city: str | None, state: str | None, show_location: bool) -> str:
    if show_location and city and state:
        return f"{city}, {state}"
    return LOCATION_HIDDEN


def decorate_profile(profile: Profile) -> CandidateProfile:
    """Return the privacy-masked, display-ready view of ``profile``."""
    show_age = bool(profile.show_age)
    show_location = bool(profile.show_location)
    return CandidateProfile(
        id=profile.id,
        first_name=profile.first_name,
        last_name=profile.last_name,
        age=profile.age if show_age else None,
        gender=profile.gender,
        city=profile.city if show_location else None,
        state=profile.state if show_location else None,
        bio=profile.bio,
        interests=list(profile.interests or []),
        photos=list(profile.photos or []),
        display_name=build_display_name(
            profile.first_name, profile.last_name, profile.age, show_age
        ),
        display_location=build_display_location(
            profile.city, profile.state, show_location
        ),
        show_age=show_age,
        show_location=show_location,
        show_online=bool(profile.show_online),
        updated_at=profile.updated_at,
    )


class ProfileService:
    """Profile CRUD, photo management and profile search."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self.feed = feed if feed is not None else get_change_feed()
        self.settings = get_settings()

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_profile(self, user_id: str, db_session: AsyncSession) -> Profile | None:
        async with store_call("get_profile"):
            result = await db_session.execute(select(Profile).where(Profile.id == user_id))
            return result.scalar_one_or_none()

    async def require_profile(self, user_id: str | None, db_session: AsyncSession) -> Profile:
        if not user_id:
            raise NotAuthenticated("No current user")
        profile = await self.get_profile(user_id, db_session)
        if profile is None:
            raise StaleReference(f"Profile {user_id} not found.", profile_id=user_id)
        return profile

    async def require_complete(self, user_id: str | None, db_session: AsyncSession) -> Profile:
        """Return the caller's profile, refusing incomplete ones."""
        profile = await self.require_profile(user_id, db_session)
        if not profile.profile_complete:
            raise ValidationFailed(
                "Profile must be completed before using discovery.",
                profile_id=profile.id,
            )
        return profile

    async def search_profiles(
        self,
        current_user_id: str | None,
        query: str,
        db_session: AsyncSession,
    ) -> list[CandidateProfile]:
        """Case-insensitive substring search over name and location."""
        if not current_user_id:
            raise NotAuthenticated("No current user")
        term = query.strip().lower()
        if not term:
            return []

        pattern = f"%{term}%"
        stmt = (
            select(Profile)
            .where(Profile.id != current_user_id)
            .where(
                or_(
                    func.lower(Profile.first_name).like(pattern),
                    func.lower(Profile.last_name).like(pattern),
                    func.lower(Profile.city).like(pattern),
                    func.lower(Profile.state).like(pattern),
                )
            )
            .limit(self.settings.SEARCH_RESULT_CAP)
        )
        async with store_call("search_profiles"):
            result = await db_session.execute(stmt)
            profiles = result.scalars().all()

        logger.info("search_profiles", query=term, result_count=len(profiles))
        return [decorate_profile(p) for p in profiles]

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_profile(
        self,
        user_id: str | None,
        payload: ProfileCreate,
        db_session: AsyncSession,
    ) -> Profile:
        """Create the profile row for a freshly signed-up user."""
        if not user_id:
            raise NotAuthenticated("No current user")
        log = logger.bind(user_id=user_id)

        if await self.get_profile(user_id, db_session) is not None:
            log.warning("create_profile_duplicate")
            raise ValidationFailed("A profile already exists for this user.", profile_id=user_id)

        profile = Profile(
            id=user_id,
            **payload.model_dump(),
            photos=[],
        )
        profile.profile_complete = profile.compute_complete()
        db_session.add(profile)

        async with store_call("create_profile", db_session):
            await db_session.commit()

        await self.feed.publish(ChangeEvent.insert(Table.PROFILES, profile.as_row()))
        log.info("create_profile_complete", profile_complete=profile.profile_complete)
        return profile

    async def update_profile(
        self,
        user_id: str | None,
        changes: dict[str, Any],
        db_session: AsyncSession,
    ) -> Profile:
        """Apply ``changes`` (only mutable fields) and recompute completeness."""
        profile = await self.require_profile(user_id, db_session)
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValidationFailed(f"Fields not editable: {sorted(unknown)}")

        old_row = profile.as_row()
        for field, value in changes.items():
            setattr(profile, field, value)
        return await self._save(profile, old_row, db_session, "update_profile", list(changes))

    async def add_photos(
        self,
        user_id: str | None,
        uploads: Iterable[tuple[bytes, str, str]],
        db_session: AsyncSession,
    ) -> Profile:
        """Upload ``(bytes, content_type, extension)`` items and append their URLs."""
        profile = await self.require_profile(user_id, db_session)
        old_row = profile.as_row()

        photos = list(profile.photos or [])
        for file_bytes, content_type, extension in uploads:
            url = storage.upload_profile_photo(profile.id, file_bytes, content_type, extension)
            photos.append(url)
            logger.info("photo_uploaded", user_id=profile.id, url=url)

        profile.photos = photos
        return await self._save(profile, old_row, db_session, "add_photos", ["photos"])

    async def remove_photo(
        self,
        user_id: str | None,
        url: str,
        db_session: AsyncSession,
    ) -> Profile:
        profile = await self.require_profile(user_id, db_session)
        photos = list(profile.photos or [])
        if url not in photos:
            raise StaleReference("Photo not found on profile.", url=url)

        old_row = profile.as_row()
        photos.remove(url)
        profile.photos = photos
        storage.delete_profile_photo(url)
        return await self._save(profile, old_row, db_session, "remove_photo", ["photos"])

    async def apply_privacy(
        self,
        profile: Profile,
        show_age: bool,
        show_location: bool,
        show_online: bool,
        db_session: AsyncSession,
    ) -> Profile:
        old_row = profile.as_row()
        profile.show_age = show_age
        profile.show_location = show_location
        profile.show_online = show_online
        return await self._save(profile, old_row, db_session, "apply_privacy", ["privacy"])

    async def _save(
        self,
        profile: Profile,
        old_row: dict[str, Any],
        db_session: AsyncSession,
        action: str,
        fields: list[str],
    ) -> Profile:
        profile.profile_complete = profile.compute_complete()
        async with store_call(action, db_session):
            await db_session.commit()
            await db_session.refresh(profile)

        await self.feed.publish(ChangeEvent.update(Table.PROFILES, profile.as_row(), old_row))
        logger.info(
            f"{action}_complete",
            user_id=profile.id,
            updated_fields=fields,
            profile_complete=profile.profile_complete,
        )
        return profile
