import logging
import uuid
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import fetch_service, fetch_store
from .config import BOOKING_REQUIRES_APPROVAL, BUSINESS_TIMEZONE, FREE_PLAN_MONTHLY_LIMIT, LIMITED_PLANS
from .conflicts import has_conflict
from .errors import ConflictError, NotFoundError, PlanLimitError, TransientStorageError
from .events import build_event, reservation_data, to_json
from .locks import store_locks
from .models import CONFIRMED, PENDING, Reservation
from .notifications import notify_new_booking, send_confirmation
from .rabbitmq import publisher
from .slots import build_slot

logger = logging.getLogger(__name__)


def initial_status() -> str:
    # pending is only produced when stores approve bookings by hand
    return PENDING if BOOKING_REQUIRES_APPROVAL else CONFIRMED


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """First instant of the business-local month containing `moment`, and of the next one."""
    local = moment.astimezone(ZoneInfo(BUSINESS_TIMEZONE))
    first = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    nxt = first + relativedelta(months=1)
    return first.astimezone(timezone.utc), nxt.astimezone(timezone.utc)


async def check_plan_limit(db: AsyncSession, store, start: datetime) -> None:
    if (store.plan or "").lower() not in LIMITED_PLANS:
        return

    month_start, month_end = month_bounds(start)
    res = await db.execute(
        select(func.count())
        .select_from(Reservation)
        .where(
            Reservation.store_id == store.id,
            Reservation.start >= month_start,
            Reservation.start < month_end,
        )
    )
    if res.scalar_one() >= FREE_PLAN_MONTHLY_LIMIT:
        raise PlanLimitError(
            f"This store reached the limit of {FREE_PLAN_MONTHLY_LIMIT} appointments per month "
            "of its plan. Try another month or contact the store."
        )


async def create_reservation(
    db: AsyncSession,
    *,
    store_id: str,
    service_id: str,
    start: datetime,
    customer_name: str,
    customer_phone: str,
    customer_email: str | None = None,
    notes: str | None = None,
) -> Reservation:
    """
    Book `service_id` at `start` for a customer of `store_id`.

    The conflict check and the insert run under the store's lock, so two
    requests for overlapping slots cannot both pass the check. Nothing is
    written when the slot is taken. Errors are reported, never retried.
    """
    store = await fetch_store(store_id)
    if store is None:
        raise NotFoundError("Store not found")

    service = await fetch_service(service_id)
    if service is None or not service.is_active or (service.store_id and service.store_id != store_id):
        raise NotFoundError("Service not found")

    slot = build_slot(start, service.duration_minutes)

    async with store_locks.hold(store_id):
        try:
            await check_plan_limit(db, store, slot.start)

            if await has_conflict(db, store_id, slot.start, slot.end):
                await db.rollback()
                logger.info("slot %s-%s unavailable for store %s", slot.start, slot.end, store_id)
                raise ConflictError()

            reservation = Reservation(
                reservation_id=str(uuid.uuid4()),
                store_id=store_id,
                service_id=service_id,
                service_name=service.name,
                service_price=service.price,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                start=slot.start,
                end=slot.end,
                duration_minutes=service.duration_minutes,
                status=initial_status(),
                notes=notes,
                reminder_sent=False,
            )
            db.add(reservation)
            await db.commit()
        except IntegrityError as e:
            # exclusion constraint: a concurrent writer got there first
            await db.rollback()
            logger.info("slot %s-%s taken concurrently for store %s", slot.start, slot.end, store_id)
            raise ConflictError() from e
        except DBAPIError as e:
            await db.rollback()
            logger.error("storing reservation for store %s failed: %s", store_id, e)
            raise TransientStorageError() from e
        except PlanLimitError:
            await db.rollback()
            raise

    logger.info(
        "reservation %s booked: store=%s service=%s start=%s",
        reservation.reservation_id, store_id, service_id, reservation.start.isoformat(),
    )
    await _announce(reservation, store)
    return reservation


async def _announce(reservation: Reservation, store) -> None:
    try:
        event = build_event("reservation.created", reservation_data(reservation))
        await publisher.publish("reservation.created", to_json(event))
        await send_confirmation(reservation, store)
        await notify_new_booking(reservation, store)
    except Exception:
        # booking already committed; notifications are best effort
        logger.exception("announcing reservation %s failed", reservation.reservation_id)
