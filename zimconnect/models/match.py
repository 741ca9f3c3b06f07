"""
ZimConnect — Like and Match models (the Interaction Ledger).
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from zimconnect.database import Base
from zimconnect.models._columns import new_id, utcnow


class Like(Base):
    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("liker_id", "liked_id", name="uq_like_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    liker_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    liked_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Like {self.liker_id} -> {self.liked_id}>"


class Match(Base):
    """One row per unordered pair; ``user1_id`` is always the smaller id."""

    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_match_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user1_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user2_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    @staticmethod
    def normalise_pair(a: str, b: str) -> tuple[str, str]:
        return (a, b) if a < b else (b, a)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def other_party(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def __repr__(self) -> str:
        return f"<Match {self.user1_id} <-> {self.user2_id} id={self.id}>"
