import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .catalog import fetch_store
from .config import REMINDER_BATCH_SIZE, REMINDER_INTERVAL_SECONDS, REMINDER_LOOKAHEAD_HOURS
from .db import SessionLocal
from .locks import sweep_locks
from .models import REMINDABLE_STATUSES, Reservation
from .notifications import send_reminder

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "reminders"


@dataclass
class SweepReport:
    selected: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


async def select_due(db: AsyncSession, now: datetime, limit: int | None = None) -> list[Reservation]:
    horizon = now + timedelta(hours=REMINDER_LOOKAHEAD_HOURS)
    res = await db.execute(
        select(Reservation)
        .where(
            Reservation.start >= now,
            Reservation.start <= horizon,
            Reservation.status.in_(REMINDABLE_STATUSES),
            Reservation.reminder_sent.is_(False),
            Reservation.customer_email.is_not(None),
            Reservation.customer_email != "",
        )
        .order_by(Reservation.start.asc())
        .limit(limit or REMINDER_BATCH_SIZE)
    )
    return list(res.scalars().all())


async def _mark_sent(db: AsyncSession, reservation: Reservation) -> None:
    await db.execute(
        update(Reservation)
        .where(Reservation.id == reservation.id, Reservation.reminder_sent.is_(False))
        .values(reminder_sent=True)
    )
    await db.commit()


async def sweep_once(session_factory: async_sessionmaker = SessionLocal, now: datetime | None = None) -> SweepReport:
    """
    One pass: remind every due reservation once.

    The flag is committed right after each confirmed send, so a crash halfway
    never re-sends the ones already done. A failed item keeps its flag down
    and is picked up again by the next pass.
    """
    now = now or datetime.now(timezone.utc)
    report = SweepReport()

    async with session_factory() as db:
        due = await select_due(db, now)
        # detached rows survive a rollback of a failed item
        db.expunge_all()
        report.selected = len(due)
        if not due:
            logger.info("no appointments to remind")
            return report

        logger.info("found %d appointments to remind", len(due))

        for reservation in due:
            try:
                store = await fetch_store(reservation.store_id)
                if store is None:
                    report.skipped += 1
                    logger.warning(
                        "skipping reminder for %s: store %s not found",
                        reservation.reservation_id, reservation.store_id,
                    )
                    continue

                await send_reminder(reservation, store)
                await _mark_sent(db, reservation)
                report.sent += 1
                logger.info("reminder sent to %s for %s", reservation.customer_email, reservation.reservation_id)
            except Exception as e:
                report.failed += 1
                await db.rollback()
                logger.error("reminder for %s failed, will retry next pass: %s", reservation.reservation_id, e)

    return report


class ReminderSweeper:
    """Recurring sweep owned by the app: start() on startup, stop() on shutdown."""

    def __init__(self, interval_seconds: float = REMINDER_INTERVAL_SECONDS, session_factory: async_sessionmaker = SessionLocal):
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime | None = None) -> SweepReport | None:
        """Returns None when another sweep holds the lock."""
        async with sweep_locks.try_hold(SWEEP_LOCK_KEY) as acquired:
            if not acquired:
                logger.info("previous sweep still running, skipping this one")
                return None
            return await sweep_once(self.session_factory, now)

    async def _loop(self):
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("reminder sweep failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("reminder sweep scheduled every %ss", self.interval_seconds)

    async def stop(self):
        self._stop_event.set()
        if self._task:
            try:
                await self._task
            finally:
                self._task = None


sweeper = ReminderSweeper()
