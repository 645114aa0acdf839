from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.types import TypeDecorator

from .db import Base

PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"

STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED)
REMINDABLE_STATUSES = (PENDING, CONFIRMED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # naive values are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, also on backends that store them naive (SQLite)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True)
    reservation_id = Column(String, unique=True, nullable=False, index=True)

    store_id = Column(String, nullable=False)
    service_id = Column(String, nullable=False)

    # copied from the catalog at booking time, never refreshed
    service_name = Column(String, nullable=False)
    service_price = Column(Numeric(10, 2), nullable=False)

    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    customer_email = Column(String, nullable=True, index=True)

    start = Column(UTCDateTime, nullable=False)
    end = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    status = Column(String, nullable=False, index=True)  # pending/confirmed/completed/cancelled
    notes = Column(Text, nullable=True)

    reminder_sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_reservations_store_id_start", "store_id", "start"),
    )

    def __repr__(self):
        return f"<Reservation(reservation_id={self.reservation_id}, store={self.store_id}, start={self.start})>"
