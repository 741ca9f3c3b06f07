"""
ZimConnect — Store-call error translation.

Wraps a block of SQLAlchemy work so that constraint violations surface as
``ValidationFailed`` and every other driver/ORM failure as ``FetchFailed``.
The session is rolled back before the translated error propagates.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.errors import FetchFailed, ValidationFailed

logger = structlog.get_logger("zimconnect.store")


@asynccontextmanager
async def store_call(action: str, db_session: AsyncSession | None = None) -> AsyncIterator[None]:
    try:
        yield
    except IntegrityError as exc:
        if db_session is not None:
            await db_session.rollback()
        logger.warning("store_constraint_violation", action=action, error=str(exc.orig))
        raise ValidationFailed(f"{action} violates a store constraint", action=action) from exc
    except SQLAlchemyError as exc:
        if db_session is not None:
            await db_session.rollback()
        logger.error("store_call_failed", action=action, error=str(exc))
        raise FetchFailed(f"{action} failed", action=action) from exc
