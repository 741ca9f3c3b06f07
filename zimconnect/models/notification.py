"""
ZimConnect — Notification, UserSettings and CityCoordinate models.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from zimconnect.database import Base
from zimconnect.models._columns import JSONColumn, new_id, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(
        String, nullable=False, comment="like / match / message"
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Notification {self.type!r} to={self.user_id} read={self.read}>"


class UserSettings(Base):
    __tablename__ = "user_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    discovery: Mapped[dict] = mapped_column(
        JSONColumn, nullable=False, comment="showMe, ageRange, stateFilter, cityFilter, interests"
    )
    privacy: Mapped[dict] = mapped_column(
        JSONColumn, nullable=False, comment="showAge, showLocation, showOnline"
    )
    notifications: Mapped[dict] = mapped_column(
        JSONColumn, nullable=False, comment="newMatches, messages, likes"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True
    )

    def __repr__(self) -> str:
        return f"<UserSettings user={self.user_id}>"


class CityCoordinate(Base):
    __tablename__ = "city_coordinates"
    __table_args__ = (
        UniqueConstraint("state", "city", name="uq_city_state"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    state: Mapped[str] = mapped_column(String, nullable=False, index=True)
    city: Mapped[str] = mapped_column(String, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    def __repr__(self) -> str:
        return f"<CityCoordinate {self.city!r}, {self.state!r}>"
