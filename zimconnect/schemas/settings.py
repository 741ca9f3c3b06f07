from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from typing import Optional

EVERYONE = "everyone"

class DiscoverySettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    show_me: str = Field(EVERYONE, alias="showMe")
    age_range: tuple[int, int] = Field((22, 35), alias="ageRange")
    state_filter: str = Field("", alias="stateFilter")
    city_filter: str = Field("", alias="cityFilter")
    interests: list[str] = []

class PrivacySettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    show_age: bool = Field(True, alias="showAge")
    show_location: bool = Field(True, alias="showLocation")
    show_online: bool = Field(True, alias="showOnline")

class NotificationSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_matches: bool = Field(True, alias="newMatches")
    messages: bool = True
    likes: bool = True

class UserSettingsResponse(BaseModel):
    id: str
    user_id: str
    discovery: DiscoverySettings
    privacy: PrivacySettings
    notifications: NotificationSettings
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class UserSettingsUpdate(BaseModel):
    discovery: Optional[DiscoverySettings] = None
    privacy: Optional[PrivacySettings] = None
    notifications: Optional[NotificationSettings] = None

class FilterCriteria(BaseModel):
    """Resolved discovery filters for one candidate query."""

    model_config = ConfigDict(frozen=True)

    gender_preference: str = EVERYONE
    age_range: tuple[int, int] = (22, 35)
    state_filter: str = ""
    city_filter: str = ""
    interests: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_age_range(self) -> "FilterCriteria":
        low, high = self.age_range
        if low > high:
            raise ValueError(f"age_range minimum {low} exceeds maximum {high}")
        return self

    def cache_key(self) -> tuple:
        return (
            self.gender_preference,
            self.age_range,
            self.state_filter,
            self.city_filter,
            self.interests,
        )

class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}

class StateCities(BaseModel):
    state: str
    cities: list[str]

class CityCoordinateResponse(BaseModel):
    state: str
    city: str
    latitude: float
    longitude: float

    model_config = {"from_attributes": True}
