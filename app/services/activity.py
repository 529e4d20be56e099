"""
Quote activity log.
Every mutating staff operation appends one entry in the same transaction.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import ActivityAction
from app.models.tables import QuoteActivity

logger = structlog.get_logger(__name__)


def _jsonable(details: Optional[dict]) -> Optional[dict]:
    if not details:
        return None
    return {
        key: (str(value) if not isinstance(value, (str, int, float, bool, type(None), list, dict)) else value)
        for key, value in details.items()
    }


async def log_activity(
    session: AsyncSession,
    quote_id: uuid.UUID,
    action: ActivityAction,
    staff_id: Optional[uuid.UUID] = None,
    details: Optional[dict] = None,
) -> QuoteActivity:
    entry = QuoteActivity(
        quote_id=quote_id,
        staff_id=staff_id,
        action_type=action.value,
        details=_jsonable(details),
    )
    session.add(entry)
    await session.flush()

    logger.info(
        "quote_activity_logged",
        quote_id=str(quote_id),
        action=action.value,
        staff_id=str(staff_id) if staff_id else None,
    )
    return entry


async def list_activity(
    session: AsyncSession,
    quote_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[QuoteActivity]:
    """Most recent entries first."""
    result = await session.execute(
        select(QuoteActivity)
        .where(QuoteActivity.quote_id == quote_id)
        .order_by(QuoteActivity.created_at.desc(), QuoteActivity.id)
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())
