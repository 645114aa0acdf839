import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import delete, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import fetch_store
from .config import BUSINESS_TIMEZONE, STRICT_STATUS_TRANSITIONS
from .conflicts import has_conflict
from .errors import (
    CatalogUnavailableError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingError,
    TransientStorageError,
    UnauthorizedError,
)
from .events import build_event, reservation_data, to_json
from .locks import store_locks
from .models import CANCELLED, COMPLETED, CONFIRMED, PENDING, Reservation
from .notifications import notify_status_change
from .rabbitmq import publisher
from .rbac import can_manage_store

logger = logging.getLogger(__name__)

# only consulted when STRICT_STATUS_TRANSITIONS is on
ALLOWED_TRANSITIONS = {
    PENDING: {CONFIRMED, COMPLETED, CANCELLED},
    CONFIRMED: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}

MY_RESERVATIONS_LIMIT = 50


def transition_allowed(current: str, target: str, strict: bool | None = None) -> bool:
    if strict is None:
        strict = STRICT_STATUS_TRANSITIONS
    if current == target or not strict:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())


def day_bounds(day: date) -> tuple[datetime, datetime]:
    tz = ZoneInfo(BUSINESS_TIMEZONE)
    first = datetime.combine(day, time.min, tzinfo=tz)
    nxt = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return first.astimezone(timezone.utc), nxt.astimezone(timezone.utc)


async def get_reservation(db: AsyncSession, reservation_id: str) -> Reservation | None:
    res = await db.execute(select(Reservation).where(Reservation.reservation_id == reservation_id))
    return res.scalar_one_or_none()


def authorize_store(principal: dict, store_id: str) -> None:
    if not can_manage_store(principal, store_id):
        logger.warning(
            "store access denied: sub=%s token_store=%s store=%s",
            principal.get("sub"), principal.get("store_id"), store_id,
        )
        raise UnauthorizedError()


async def _reload_for_update(db: AsyncSession, reservation_id: str) -> Reservation | None:
    # overwrite whatever this session loaded before the lock was taken
    res = await db.execute(
        select(Reservation)
        .where(Reservation.reservation_id == reservation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def change_status(db: AsyncSession, principal: dict, reservation_id: str, status: str) -> Reservation:
    """
    Move a reservation to `status`. Only the gate decides by default: any
    status may follow any other. Cancelling frees the slot, since the
    conflict check ignores cancelled rows; leaving `cancelled` takes the slot
    back and is refused if it was booked meanwhile.

    The current status is read again under the store lock, so concurrent
    changes apply one after the other and each sees the previous outcome.
    """
    reservation = await get_reservation(db, reservation_id)
    if reservation is None:
        raise NotFoundError("Reservation not found")

    store_id = reservation.store_id
    authorize_store(principal, store_id)

    async with store_locks.hold(store_id):
        try:
            reservation = await _reload_for_update(db, reservation_id)
            if reservation is None:
                raise NotFoundError("Reservation not found")

            previous = reservation.status
            if not transition_allowed(previous, status):
                raise InvalidTransitionError(f"Cannot change a {previous} reservation to {status}")

            if previous == CANCELLED and status != CANCELLED:
                if await has_conflict(
                    db, store_id, reservation.start, reservation.end,
                    exclude_id=reservation.reservation_id,
                ):
                    raise ConflictError("The slot of this reservation was booked meanwhile")

            reservation.status = status
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise ConflictError("The slot of this reservation was booked meanwhile") from e
        except DBAPIError as e:
            await db.rollback()
            logger.error("status update of %s failed: %s", reservation_id, e)
            raise TransientStorageError() from e
        except SchedulingError:
            await db.rollback()
            raise

    logger.info("reservation %s: %s -> %s by %s", reservation_id, previous, status, principal.get("sub"))

    try:
        event = build_event("reservation.status_changed", {**reservation_data(reservation), "previous_status": previous})
        await publisher.publish("reservation.status_changed", to_json(event))
        await notify_status_change(reservation, await fetch_store(reservation.store_id))
    except CatalogUnavailableError:
        logger.warning("owner not notified about %s: catalog unavailable", reservation_id)

    return reservation


async def list_store_reservations(
    db: AsyncSession,
    principal: dict,
    store_id: str,
    day: date | None = None,
    status: str | None = None,
) -> list[Reservation]:
    authorize_store(principal, store_id)

    query = select(Reservation).where(Reservation.store_id == store_id)
    if day is not None:
        first, nxt = day_bounds(day)
        query = query.where(Reservation.start >= first, Reservation.start < nxt)
    if status:
        query = query.where(Reservation.status == status)

    res = await db.execute(query.order_by(Reservation.start.asc()))
    return list(res.scalars().all())


async def list_customer_reservations(db: AsyncSession, email: str, store_id: str | None = None) -> list[Reservation]:
    query = select(Reservation).where(Reservation.customer_email == email)
    if store_id:
        query = query.where(Reservation.store_id == store_id)

    res = await db.execute(query.order_by(Reservation.start.desc()).limit(MY_RESERVATIONS_LIMIT))
    return list(res.scalars().all())


async def purge_store_reservations(db: AsyncSession, store_id: str) -> int:
    """
    Delete every reservation of a store. Callers deleting a store must run
    this first, so no reservation is left pointing at a missing store.
    Safe to repeat.
    """
    async with store_locks.hold(store_id):
        try:
            res = await db.execute(delete(Reservation).where(Reservation.store_id == store_id))
            await db.commit()
        except DBAPIError as e:
            await db.rollback()
            logger.error("purging reservations of store %s failed: %s", store_id, e)
            raise TransientStorageError(f"Could not delete reservations of store {store_id}") from e

    deleted = res.rowcount or 0
    logger.info("purged %d reservations of store %s", deleted, store_id)

    event = build_event("reservation.purged", {"store_id": store_id, "deleted": deleted})
    await publisher.publish("reservation.purged", to_json(event))
    return deleted
