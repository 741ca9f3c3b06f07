"""
ZimConnect — Profile model (the Profile Store).
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from zimconnect.database import Base
from zimconnect.models._columns import JSONColumn, new_id, utcnow

# Fields that must all be non-empty before a profile may enter discovery.
REQUIRED_PROFILE_FIELDS = ("first_name", "last_name", "age", "gender", "bio", "city", "state")


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    first_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    age: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    gender: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    interests: Mapped[list] = mapped_column(
        JSONColumn, nullable=False, default=list, comment="Array of interest labels"
    )
    photos: Mapped[list] = mapped_column(
        JSONColumn, nullable=False, default=list, comment="Array of photo URLs, first is primary"
    )
    show_age: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    show_location: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    show_online: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    profile_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True
    )

    def compute_complete(self) -> bool:
        """True when every required field is filled and at least one photo exists."""
        for field in REQUIRED_PROFILE_FIELDS:
            value = getattr(self, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                return False
        return bool(self.photos)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Profile {self.full_name!r} id={self.id}>"
