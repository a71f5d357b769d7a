from dataclasses import dataclass
from datetime import datetime, timedelta

from telehealth.core.errors import InvalidArgumentError
from telehealth.scheduling.intervals import Interval


@dataclass(frozen=True, order=True)
class Slot:
    """A bookable ``[start, end)`` range. Never persisted."""

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def as_interval(self) -> Interval:
        return Interval(self.start, self.end)


def generate_slots(
    free_intervals: list[Interval],
    duration_minutes: int,
    granularity_minutes: int | None = None,
) -> list[Slot]:
    if duration_minutes <= 0:
        raise InvalidArgumentError('Slot duration must be a positive number of minutes.')

    step_minutes = duration_minutes if granularity_minutes is None else granularity_minutes
    if step_minutes <= 0:
        raise InvalidArgumentError('Slot granularity must be a positive number of minutes.')

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    slots: list[Slot] = []
    for interval in free_intervals:
        current = interval.start
        while current + duration <= interval.end:
            slots.append(Slot(current, current + duration))
            current += step

    slots.sort()
    return slots
