"""
ZimConnect — User settings & discovery filter resolution

Persisted per-user settings (discovery, privacy, notification toggles) and
the resolution of the effective ``FilterCriteria`` for a discovery query:

    ephemeral location override  >  persisted discovery settings  >  defaults

Privacy toggles are mirrored onto the profile's ``show_*`` flags on save, so
the Profile Store stays the single source the privacy masking reads from.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.config import get_settings
from zimconnect.errors import NotAuthenticated, ValidationFailed
from zimconnect.models.notification import UserSettings
from zimconnect.schemas.settings import (
    DiscoverySettings,
    FilterCriteria,
    NotificationSettings,
    PrivacySettings,
    UserSettingsUpdate,
)
from zimconnect.services.profile_service import ProfileService
from zimconnect.services.store import store_call

logger = structlog.get_logger("zimconnect.settings_service")


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


class SettingsService:
    """Read, create and update ``user_settings`` rows."""

    def __init__(self, profile_service: ProfileService | None = None) -> None:
        self.profile_service = profile_service or ProfileService()
        self.settings = get_settings()

    def default_discovery(self) -> DiscoverySettings:
        return DiscoverySettings(
            show_me=self.settings.DEFAULT_GENDER_PREFERENCE,
            age_range=self.settings.default_age_range,
        )

    async def get_settings(self, user_id: str | None, db_session: AsyncSession) -> UserSettings | None:
        """Return the user's settings row, or ``None`` when none exists yet."""
        if not user_id:
            raise NotAuthenticated("No current user")
        stmt = (
            select(UserSettings)
            .where(UserSettings.user_id == user_id)
            .order_by(UserSettings.updated_at.desc())
            .limit(1)
        )
        async with store_call("get_settings"):
            result = await db_session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_default_settings(self, user_id: str | None, db_session: AsyncSession) -> UserSettings:
        if not user_id:
            raise NotAuthenticated("No current user")
        row = UserSettings(
            user_id=user_id,
            discovery=_dump(self.default_discovery()),
            privacy=_dump(PrivacySettings()),
            notifications=_dump(NotificationSettings()),
        )
        db_session.add(row)
        async with store_call("create_default_settings", db_session):
            await db_session.commit()
        logger.info("settings_created", user_id=user_id)
        return row

    async def update_settings(
        self,
        user_id: str | None,
        update: UserSettingsUpdate,
        db_session: AsyncSession,
    ) -> UserSettings:
        """Upsert the provided sections; untouched sections keep their values."""
        row = await self.get_settings(user_id, db_session)
        if row is None:
            row = await self.create_default_settings(user_id, db_session)

        changed: list[str] = []
        if update.discovery is not None:
            low, high = update.discovery.age_range
            if low > high or low < 18:
                raise ValidationFailed(f"Invalid age range {low}-{high}")
            row.discovery = _dump(update.discovery)
            changed.append("discovery")
        if update.privacy is not None:
            row.privacy = _dump(update.privacy)
            changed.append("privacy")
        if update.notifications is not None:
            row.notifications = _dump(update.notifications)
            changed.append("notifications")

        async with store_call("update_settings", db_session):
            await db_session.commit()

        if update.privacy is not None:
            profile = await self.profile_service.get_profile(user_id, db_session)
            if profile is not None:
                await self.profile_service.apply_privacy(
                    profile,
                    show_age=update.privacy.show_age,
                    show_location=update.privacy.show_location,
                    show_online=update.privacy.show_online,
                    db_session=db_session,
                )

        logger.info("settings_updated", user_id=user_id, sections=changed)
        return row

    async def notifications_enabled(self, user_id: str, kind: str, db_session: AsyncSession) -> bool:
        """Whether ``user_id`` wants notifications of ``kind`` (like / match / message)."""
        row = await self.get_settings(user_id, db_session)
        if row is None:
            return True
        prefs = NotificationSettings.model_validate(row.notifications or {})
        return {
            "like": prefs.likes,
            "match": prefs.new_matches,
            "message": prefs.messages,
        }.get(kind, True)

    def resolve_filters(
        self,
        row: UserSettings | None,
        state_override: str = "",
        city_override: str = "",
    ) -> FilterCriteria:
        """Combine persisted discovery settings with the session's location override."""
        discovery = (
            DiscoverySettings.model_validate(row.discovery)
            if row is not None and row.discovery
            else self.default_discovery()
        )
        return FilterCriteria(
            gender_preference=discovery.show_me or self.settings.DEFAULT_GENDER_PREFERENCE,
            age_range=tuple(discovery.age_range),
            state_filter=state_override or discovery.state_filter or "",
            city_filter=city_override or discovery.city_filter or "",
            interests=tuple(discovery.interests),
        )
