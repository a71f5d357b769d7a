"""Half-open time ranges within a single calendar day.

Intervals use naive ``datetime`` bounds so that availability windows, blocked
intervals and appointments can be compared directly. An interval never spans
midnight: each day is resolved independently. The only exception is an
interval that ends exactly at the following midnight.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from telehealth.core.errors import DurationError, InvalidArgumentError


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise DurationError(f'Interval must have positive length: {self.start} -> {self.end}')

        next_midnight = datetime.combine(self.start.date() + timedelta(days=1), time.min)
        if self.end.date() != self.start.date() and self.end != next_midnight:
            raise InvalidArgumentError('Intervals cannot span midnight.')

    @classmethod
    def from_times(cls, day: date, start_time: time, end_time: time) -> 'Interval':
        return cls(datetime.combine(day, start_time), datetime.combine(day, end_time))

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> 'Interval':
        if minutes <= 0:
            raise DurationError(f'Duration must be positive, got {minutes} minutes.')
        return cls(start, start + timedelta(minutes=minutes))

    @property
    def day(self) -> date:
        return self.start.date()

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, other: 'Interval') -> bool:
        return self.start <= other.start and other.end <= self.end

    def contains_instant(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def intersect(a: Interval, b: Interval) -> Interval | None:
    if not overlaps(a, b):
        return None
    return Interval(max(a.start, b.start), min(a.end, b.end))


def subtract(a: Interval, b: Interval) -> list[Interval]:
    """Remove ``b`` from ``a``, returning the zero, one or two pieces left."""
    if not overlaps(a, b):
        return [a]

    remaining: list[Interval] = []
    if a.start < b.start:
        remaining.append(Interval(a.start, b.start))
    if b.end < a.end:
        remaining.append(Interval(b.end, a.end))
    return remaining


def subtract_all(intervals: list[Interval], removed: Interval) -> list[Interval]:
    result: list[Interval] = []
    for interval in intervals:
        result.extend(subtract(interval, removed))
    return result
