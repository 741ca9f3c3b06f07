"""Discovery filter state: persisted settings plus the ephemeral location override."""

from __future__ import annotations

from dataclasses import dataclass

from zimconnect.models.notification import UserSettings
from zimconnect.schemas.settings import FilterCriteria
from zimconnect.services.settings_service import SettingsService


@dataclass
class LocationOverride:
    state: str = ""
    city: str = ""

    @property
    def active(self) -> bool:
        return bool(self.state or self.city)


class FilterState:
    """Resolves the ``FilterCriteria`` the Candidate Selector runs with.

    The override lives only as long as the user stays on discovery;
    ``leave_discovery`` drops it.
    """

    def __init__(self, settings_service: SettingsService | None = None) -> None:
        self.settings_service = settings_service or SettingsService()
        self.persisted: UserSettings | None = None
        self.override = LocationOverride()

    def load(self, row: UserSettings | None) -> None:
        self.persisted = row

    def set_location_override(self, state: str = "", city: str = "") -> None:
        self.override = LocationOverride(state=state or "", city=city or "")

    def clear_override(self) -> None:
        self.override = LocationOverride()

    def criteria(self) -> FilterCriteria:
        return self.settings_service.resolve_filters(
            self.persisted,
            state_override=self.override.state,
            city_override=self.override.city,
        )
