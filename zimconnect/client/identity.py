"""Identity session: who the current user is, and who to tell when that changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger("zimconnect.client.identity")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    token: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


AuthListener = Callable[[Optional[CurrentUser]], None]


class IdentitySession:
    """Holds the authenticated user for one client."""

    def __init__(self) -> None:
        self._user: CurrentUser | None = None
        self._listeners: list[AuthListener] = []

    def current_user(self) -> CurrentUser | None:
        return self._user

    @property
    def user_id(self) -> str | None:
        return self._user.id if self._user is not None else None

    def on_auth_change(self, callback: AuthListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def sign_in(self, user_id: str, token: str = "", metadata: dict[str, Any] | None = None) -> CurrentUser:
        user = CurrentUser(id=user_id, token=token, metadata=dict(metadata or {}))
        self._set(user)
        return user

    def sign_out(self) -> None:
        self._set(None)

    def _set(self, user: CurrentUser | None) -> None:
        previous = self.user_id
        self._user = user
        if previous == self.user_id:
            return
        logger.info("auth_changed", previous=previous, user_id=self.user_id)
        for callback in list(self._listeners):
            try:
                callback(user)
            except Exception:
                logger.exception("auth_listener_failed")
