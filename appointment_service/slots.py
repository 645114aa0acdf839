from dataclasses import dataclass
from datetime import datetime, timedelta

from .errors import ValidationError
from .models import as_utc


@dataclass(frozen=True)
class Slot:
    """A half-open time interval [start, end) on a store's timeline."""

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def compute_end(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)


def is_well_formed(start, duration_minutes) -> bool:
    if not isinstance(start, datetime):
        return False
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        return False
    return duration_minutes > 0


def build_slot(start: datetime, duration_minutes: int) -> Slot:
    if not is_well_formed(start, duration_minutes):
        raise ValidationError("A slot needs a valid start and a positive duration")
    start = as_utc(start)
    return Slot(start=start, end=compute_end(start, duration_minutes))
