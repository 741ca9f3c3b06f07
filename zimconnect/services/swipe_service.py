"""
ZimConnect — Swipe / Action Engine

Applies like, pass and unlike decisions for the current user.

like(candidate)
    The ledger insert is the single source-of-truth mutation and is never
    retried here.  Only after it succeeds is the candidate removed from the
    local Candidate Set (optimistically, without a refetch).  Any failure
    leaves the set untouched and surfaces as ``LikeFailed``.  Whether the
    like produced a Match is not reported: the reconciler picks that up
    from the change feed.

pass(candidate)
    Purely local removal.  Passes are not persisted, so a passed candidate
    may reappear after a refresh or a filter change.

unlike(profile)
    Composite match + messages deletion (when a match exists), then the
    like itself.  A failed composite call is logged and the like is still
    deleted, so no one-directional like is left blocking re-discovery.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.client import keys
from zimconnect.client.candidates import CandidateSet, without
from zimconnect.client.selection import ChatSelection
from zimconnect.errors import LikeFailed, NotAuthenticated, StaleReference, ValidationFailed, ZimConnectError
from zimconnect.models.match import Like
from zimconnect.realtime.cache import QueryCache
from zimconnect.services.ledger_service import LedgerService

logger = structlog.get_logger("zimconnect.swipe_service")


class SwipeService:
    """Like / pass / unlike over a Candidate Set and the query cache."""

    def __init__(
        self,
        candidates: CandidateSet,
        cache: QueryCache,
        selection: ChatSelection | None = None,
        ledger: LedgerService | None = None,
    ) -> None:
        self.candidates = candidates
        self.cache = cache
        self.selection = selection or ChatSelection()
        self.ledger = ledger or LedgerService()
        self._liking: set[str] = set()

    # ── Like ──────────────────────────────────────────────────────────────

    async def like(self, candidate_id: str, current_user_id: str | None, db_session: AsyncSession) -> Like:
        if not current_user_id:
            raise NotAuthenticated("No current user")
        log = logger.bind(user_id=current_user_id, candidate_id=candidate_id)

        if not self.candidates.contains(candidate_id):
            log.warning("like_stale_candidate")
            raise StaleReference("Candidate is no longer available.", candidate_id=candidate_id)
        if candidate_id in self._liking:
            raise LikeFailed(
                "A like for this candidate is already in progress.",
                cause=ValidationFailed("like in progress"),
                candidate_id=candidate_id,
            )

        self._liking.add(candidate_id)
        try:
            like = await self.ledger.insert_like(current_user_id, candidate_id, db_session)
        except ZimConnectError as exc:
            log.warning("like_failed", error=exc.code, detail=exc.message)
            raise LikeFailed(
                "Could not like this profile.", cause=exc, candidate_id=candidate_id
            ) from exc
        finally:
            self._liking.discard(candidate_id)

        self._remove_everywhere(candidate_id)
        self.cache.invalidate(keys.DISCOVER_PROFILES)
        self.cache.invalidate(keys.MATCHES)
        self.cache.invalidate(keys.LIKED_PROFILES)
        log.info("like_applied", remaining=len(self.candidates))
        return like

    # ── Pass ──────────────────────────────────────────────────────────────

    def pass_candidate(self, candidate_id: str) -> bool:
        """Drop ``candidate_id`` locally; returns False when it was already gone."""
        removed = self._remove_everywhere(candidate_id)
        logger.info("candidate_passed", candidate_id=candidate_id, removed=removed)
        return removed

    # ── Unlike ────────────────────────────────────────────────────────────

    async def unlike(self, profile_id: str, current_user_id: str | None, db_session: AsyncSession) -> bool:
        """Undo a like, tearing down the match and its messages if one exists.

        Returns False when there was no like to remove.
        """
        if not current_user_id:
            raise NotAuthenticated("No current user")
        log = logger.bind(user_id=current_user_id, profile_id=profile_id)

        match = await self.ledger.find_match(current_user_id, profile_id, db_session)
        match_id = match.id if match is not None else None
        if match_id is not None:
            try:
                await self.ledger.delete_match_and_messages(match_id, current_user_id, db_session)
            except ZimConnectError as exc:
                log.error("unlike_match_deletion_failed", match_id=match_id, error=exc.code)

        removed = await self.ledger.delete_like(current_user_id, profile_id, db_session)

        self.selection.clear_if_involves(profile_id, match_id)
        self.cache.invalidate(keys.LIKED_PROFILES)
        self.cache.invalidate(keys.MATCHES)
        self.cache.invalidate(keys.DISCOVER_PROFILES)
        log.info("unlike_applied", removed_like=removed, removed_match=match_id is not None)
        return removed

    def _remove_everywhere(self, candidate_id: str) -> bool:
        """Remove from the bound view and from every other cached discovery list."""
        removed = self.candidates.remove(candidate_id)
        self.cache.update_matching(
            (keys.DISCOVER_PROFILES,), lambda items: without(items, candidate_id)
        )
        return removed
