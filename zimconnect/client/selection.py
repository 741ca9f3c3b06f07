"""
ZimConnect — Chat-match selection state machine

    NoMatchSelected ──select(m)──▶ MatchSelected(m)
          ▲                              │
          └── clear() / m left the match list / counterpart unliked

Listeners receive ``(previous, current)`` on every transition; the client
session uses this to move the open chat's message subscription.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

import structlog

logger = structlog.get_logger("zimconnect.client.selection")


@dataclass(frozen=True)
class NoMatchSelected:
    pass


@dataclass(frozen=True)
class MatchSelected:
    match_id: str
    other_user_id: str = ""


SelectionState = Union[NoMatchSelected, MatchSelected]
SelectionListener = Callable[[SelectionState, SelectionState], None]

NO_MATCH = NoMatchSelected()


class ChatSelection:

    def __init__(self) -> None:
        self.state: SelectionState = NO_MATCH
        self._listeners: list[SelectionListener] = []

    @property
    def match_id(self) -> Optional[str]:
        return self.state.match_id if isinstance(self.state, MatchSelected) else None

    @property
    def is_selected(self) -> bool:
        return isinstance(self.state, MatchSelected)

    def on_change(self, listener: SelectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def select(self, match_id: str, other_user_id: str = "") -> SelectionState:
        return self._transition(MatchSelected(match_id, other_user_id), "selected")

    def clear(self) -> SelectionState:
        return self._transition(NO_MATCH, "cleared")

    def reconcile(self, match_ids: Iterable[str]) -> SelectionState:
        """Drop the selection when its match is no longer in ``match_ids``."""
        if self.match_id is not None and self.match_id not in set(match_ids):
            return self._transition(NO_MATCH, "match_gone")
        return self.state

    def clear_if_involves(self, profile_id: str, match_id: str | None = None) -> SelectionState:
        """Drop the selection when it is the chat with ``profile_id`` (or ``match_id``)."""
        state = self.state
        if isinstance(state, MatchSelected) and (
            state.other_user_id == profile_id or (match_id is not None and state.match_id == match_id)
        ):
            return self._transition(NO_MATCH, "counterpart_removed")
        return state

    def _transition(self, new_state: SelectionState, reason: str) -> SelectionState:
        previous = self.state
        if previous == new_state:
            return previous
        self.state = new_state
        logger.info(
            "chat_selection_changed",
            reason=reason,
            previous=getattr(previous, "match_id", None),
            current=getattr(new_state, "match_id", None),
        )
        for listener in list(self._listeners):
            try:
                listener(previous, new_state)
            except Exception:
                logger.exception("chat_selection_listener_failed")
        return new_state
