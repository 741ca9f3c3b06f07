from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

class ProfileCreate(BaseModel):
    first_name: str
    last_name: str
    age: int = Field(ge=18, le=100)
    gender: str
    city: Optional[str] = None
    state: Optional[str] = None
    bio: Optional[str] = None
    interests: list[str] = []

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    age: Optional[int] = Field(None, ge=18, le=100)
    gender: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    bio: Optional[str] = None
    interests: Optional[list[str]] = None
    show_age: Optional[bool] = None
    show_location: Optional[bool] = None
    show_online: Optional[bool] = None

class ProfileResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    age: Optional[int]
    gender: Optional[str]
    city: Optional[str]
    state: Optional[str]
    bio: Optional[str]
    interests: list[str] = []
    photos: list[str] = []
    show_age: bool
    show_location: bool
    show_online: bool
    profile_complete: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class CandidateProfile(BaseModel):
    """A profile as any other user may see it: hidden fields are masked."""

    id: str
    first_name: str
    last_name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    bio: Optional[str] = None
    interests: list[str] = []
    photos: list[str] = []
    display_name: str
    display_location: str
    show_age: bool
    show_location: bool
    show_online: bool
    updated_at: Optional[datetime] = None

    @property
    def primary_photo(self) -> Optional[str]:
        return self.photos[0] if self.photos else None
