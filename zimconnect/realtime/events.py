"""
ZimConnect — Row-level change events carried by the change feed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


ALL_EVENTS: frozenset[EventType] = frozenset(EventType)


class Table(str, Enum):
    PROFILES = "profiles"
    LIKES = "likes"
    MATCHES = "matches"
    MESSAGES = "messages"
    NOTIFICATIONS = "notifications"


class ChangeEvent(BaseModel):
    """One committed row change.

    ``new`` is set for INSERT and UPDATE, ``old`` for UPDATE and DELETE.
    """

    table: Table
    event_type: EventType
    new: Optional[dict[str, Any]] = None
    old: Optional[dict[str, Any]] = None
    commit_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def record(self) -> dict[str, Any]:
        """The row a subscription predicate is evaluated against."""
        if self.event_type is EventType.DELETE:
            return self.old or {}
        return self.new or {}

    @classmethod
    def insert(cls, table: Table, row: dict[str, Any]) -> "ChangeEvent":
        return cls(table=table, event_type=EventType.INSERT, new=row)

    @classmethod
    def update(cls, table: Table, row: dict[str, Any], old: dict[str, Any] | None = None) -> "ChangeEvent":
        return cls(table=table, event_type=EventType.UPDATE, new=row, old=old)

    @classmethod
    def delete(cls, table: Table, row: dict[str, Any]) -> "ChangeEvent":
        return cls(table=table, event_type=EventType.DELETE, old=row)
