"""Admission rules applied before a booking touches the appointment store."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from telehealth.core import config
from telehealth.core.errors import DurationError, PolicyRejection, RejectionReason
from telehealth.scheduling.intervals import Interval


@dataclass(frozen=True)
class BookingPolicy:
    min_notice: timedelta = timedelta(hours=1)
    max_advance: timedelta = timedelta(days=90)

    @classmethod
    def from_config(cls) -> 'BookingPolicy':
        return cls(
            min_notice=timedelta(minutes=config.MIN_NOTICE_MINUTES),
            max_advance=timedelta(days=config.MAX_ADVANCE_DAYS),
        )


@dataclass(frozen=True)
class PolicyDecision:
    reason: RejectionReason | None = None

    @property
    def admitted(self) -> bool:
        return self.reason is None

    def raise_for_rejection(self) -> None:
        if self.reason is not None:
            raise PolicyRejection(self.reason)


ADMITTED = PolicyDecision()


def check_notice_window(now: datetime, candidate_start: datetime, policy: BookingPolicy) -> PolicyDecision:
    lead_time = candidate_start - now
    if lead_time < policy.min_notice:
        return PolicyDecision(RejectionReason.TOO_SOON)
    if lead_time > policy.max_advance:
        return PolicyDecision(RejectionReason.TOO_FAR)
    return ADMITTED


def admit(
    now: datetime,
    candidate_start: datetime,
    policy: BookingPolicy,
    free_intervals: list[Interval],
    duration_minutes: int | None = None,
) -> PolicyDecision:
    """Evaluate the notice windows, then availability, in that order.

    With a duration the whole candidate range must fit in one free interval;
    without one only the start instant is checked.
    """
    decision = check_notice_window(now, candidate_start, policy)
    if not decision.admitted:
        return decision

    if duration_minutes is None:
        inside = any(interval.contains_instant(candidate_start) for interval in free_intervals)
    else:
        if duration_minutes <= 0:
            raise DurationError(f'Duration must be positive, got {duration_minutes} minutes.')
        candidate_end = candidate_start + timedelta(minutes=duration_minutes)
        inside = any(
            interval.start <= candidate_start and candidate_end <= interval.end
            for interval in free_intervals
        )

    if not inside:
        return PolicyDecision(RejectionReason.OUTSIDE_AVAILABILITY)
    return ADMITTED
