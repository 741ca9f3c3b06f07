"""
ZimConnect — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from zimconnect.models.profile import Profile
from zimconnect.models.match import Like, Match
from zimconnect.models.message import Message
from zimconnect.models.notification import CityCoordinate, Notification, UserSettings

__all__ = [
    "Profile",
    "Like",
    "Match",
    "Message",
    "Notification",
    "UserSettings",
    "CityCoordinate",
]
