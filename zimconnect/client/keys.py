"""Query-cache key families.

The first element of every key names the family; the reconciler
invalidates by family prefix.
"""

DISCOVER_PROFILES = "discover-profiles"
LIKED_PROFILES = "liked-profiles"
MATCHES = "matches"
MATCH_COUNT = "match-count"
MATCH_MESSAGES = "match-messages"
LAST_MESSAGES = "last-messages"
UNREAD_MESSAGE_COUNT = "unread-message-count"
UNREAD_NOTIFICATION_COUNT = "unread-notification-count"
LIKES_RECEIVED = "likes-received"
USER_SETTINGS = "user-settings"


def discover_key(user_id: str, criteria_key: tuple) -> tuple:
    return (DISCOVER_PROFILES, user_id, criteria_key)


def liked_key(user_id: str) -> tuple:
    return (LIKED_PROFILES, user_id)


def matches_key(user_id: str) -> tuple:
    return (MATCHES, user_id)


def match_count_key(user_id: str) -> tuple:
    return (MATCH_COUNT, user_id)


def messages_key(match_id: str) -> tuple:
    return (MATCH_MESSAGES, match_id)


def unread_messages_key(user_id: str) -> tuple:
    return (UNREAD_MESSAGE_COUNT, user_id)


def unread_notifications_key(user_id: str) -> tuple:
    return (UNREAD_NOTIFICATION_COUNT, user_id)


def likes_received_key(user_id: str) -> tuple:
    return (LIKES_RECEIVED, user_id)


def settings_key(user_id: str) -> tuple:
    return (USER_SETTINGS, user_id)
