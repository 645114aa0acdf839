from datetime import datetime

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CANCELLED, Reservation, as_utc


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def overlap_clause(store_id: str, start: datetime, end: datetime, exclude_id: str | None = None):
    """
    SQL form of `overlaps` against the active reservations of a store.
    Touching intervals (existing.end == start) do not match.
    """
    clause = and_(
        Reservation.store_id == store_id,
        Reservation.status != CANCELLED,
        Reservation.start < end,
        Reservation.end > start,
    )
    if exclude_id:
        clause = and_(clause, Reservation.reservation_id != exclude_id)
    return clause


async def has_conflict(
    db: AsyncSession,
    store_id: str,
    start: datetime,
    end: datetime,
    exclude_id: str | None = None,
) -> bool:
    start = as_utc(start)
    end = as_utc(end)
    res = await db.execute(select(exists().where(overlap_clause(store_id, start, end, exclude_id))))
    return bool(res.scalar())
