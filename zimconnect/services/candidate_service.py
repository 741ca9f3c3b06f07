"""
ZimConnect — Candidate Selector

Computes the ordered set of discoverable profiles for a user:

  1. E   = ids the user has already liked
  2. Q   = profiles where
             id ≠ me
             gender = preference          (clause skipped for "everyone")
             age ∈ [min, max]             (inclusive)
             state = state_filter         (when set)
             city  = city_filter          (when set)
             id ∉ E
  3. cap Q at DISCOVERY_RESULT_CAP, store order (newest first)
  4. decorate every profile with display fields and privacy masking

No scoring or ranking is applied.  An empty result is a normal outcome
("no candidates"), not an error.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.config import get_settings
from zimconnect.errors import NotAuthenticated
from zimconnect.models.profile import Profile
from zimconnect.schemas.profile import CandidateProfile
from zimconnect.schemas.settings import EVERYONE, FilterCriteria
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.profile_service import decorate_profile
from zimconnect.services.store import store_call

logger = structlog.get_logger("zimconnect.candidate_service")


def build_candidate_query(current_user_id: str, filters: FilterCriteria, excluded: set[str], limit: int):
    """Build the filtered, capped profile query for one discovery request."""
    low, high = filters.age_range
    stmt = (
        select(Profile)
        .where(Profile.id != current_user_id)
        .where(Profile.age >= low)
        .where(Profile.age <= high)
    )
    if filters.gender_preference and filters.gender_preference != EVERYONE:
        stmt = stmt.where(Profile.gender == filters.gender_preference)
    if filters.state_filter:
        stmt = stmt.where(Profile.state == filters.state_filter)
    if filters.city_filter:
        stmt = stmt.where(Profile.city == filters.city_filter)
    if excluded:
        stmt = stmt.where(Profile.id.not_in(excluded))
    # ``interests`` is carried on the criteria but never filtered on.
    return stmt.order_by(Profile.created_at.desc()).limit(limit)


class CandidateSelector:
    """Selects discovery candidates for the current user.

    The ledger is injected so the exclusion set can be read through the
    same service that writes likes.
    """

    def __init__(self, ledger: LedgerService | None = None) -> None:
        self.ledger = ledger or LedgerService()
        self.result_cap: int = get_settings().DISCOVERY_RESULT_CAP

    async def select_candidates(
        self,
        current_user_id: str | None,
        filters: FilterCriteria,
        db_session: AsyncSession,
    ) -> list[CandidateProfile]:
        """Return the decorated candidate list for ``current_user_id``.

        Parameters
        ----------
        current_user_id:
            The authenticated user; absence raises ``NotAuthenticated``.
        filters:
            Resolved discovery criteria (override > settings > defaults).
        db_session:
            Active async database session.

        Returns
        -------
        list[CandidateProfile]
            At most ``DISCOVERY_RESULT_CAP`` profiles, newest first.  Never
            contains the user or anyone the user has liked.

        Raises
        ------
        NotAuthenticated
            No current user.
        FetchFailed
            The store could not be read; the caller decides on retries.
        """
        if not current_user_id:
            raise NotAuthenticated("No current user")

        log = logger.bind(
            user_id=current_user_id,
            gender=filters.gender_preference,
            age_range=list(filters.age_range),
            state=filters.state_filter or None,
            city=filters.city_filter or None,
        )

        excluded = await self.ledger.liked_ids(current_user_id, db_session)
        stmt = build_candidate_query(current_user_id, filters, excluded, self.result_cap)

        async with store_call("select_candidates"):
            result = await db_session.execute(stmt)
            profiles = result.scalars().all()

        candidates = [
            decorate_profile(p)
            for p in profiles
            if p.id != current_user_id and p.id not in excluded
        ]
        log.info("candidates_selected", excluded=len(excluded), result_count=len(candidates))
        return candidates
