from datetime import datetime, time, timedelta

import pytest

from telehealth.core.errors import InvalidArgumentError
from telehealth.scheduling.intervals import Interval
from telehealth.scheduling.slots import Slot, generate_slots

from conftest import MONDAY


def at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(MONDAY, time(hour, minute))


def test_generate_uses_duration_as_default_step() -> None:
    slots = generate_slots([Interval(at(9), at(11))], 30)

    assert [slot.start for slot in slots] == [at(9), at(9, 30), at(10), at(10, 30)]


def test_generate_with_finer_granularity() -> None:
    slots = generate_slots([Interval(at(9), at(10, 30))], 45, granularity_minutes=15)

    assert slots == [
        Slot(at(9), at(9, 45)),
        Slot(at(9, 15), at(10)),
        Slot(at(9, 30), at(10, 15)),
        Slot(at(9, 45), at(10, 30)),
    ]


def test_generate_never_merges_across_intervals() -> None:
    free = [Interval(at(9), at(9, 40)), Interval(at(9, 40), at(10, 20))]

    slots = generate_slots(free, 30, granularity_minutes=10)

    assert slots == [
        Slot(at(9), at(9, 30)),
        Slot(at(9, 10), at(9, 40)),
        Slot(at(9, 40), at(10, 10)),
        Slot(at(9, 50), at(10, 20)),
    ]


def test_generate_skips_intervals_shorter_than_duration() -> None:
    assert generate_slots([Interval(at(9), at(9, 20))], 30) == []


def test_generate_orders_slots_across_unsorted_intervals() -> None:
    free = [Interval(at(13), at(14)), Interval(at(9), at(10))]

    starts = [slot.start for slot in generate_slots(free, 60)]

    assert starts == [at(9), at(13)]


@pytest.mark.parametrize('duration', [0, -15])
def test_generate_rejects_non_positive_duration(duration: int) -> None:
    with pytest.raises(InvalidArgumentError):
        generate_slots([Interval(at(9), at(10))], duration)


def test_generate_rejects_non_positive_granularity() -> None:
    with pytest.raises(InvalidArgumentError):
        generate_slots([Interval(at(9), at(10))], 15, granularity_minutes=0)


def test_every_slot_has_exact_length_and_fits_its_interval() -> None:
    free = [Interval(at(9), at(12)), Interval(at(13), at(16, 50))]

    for duration in (10, 25, 45, 60):
        for granularity in (5, 15, None):
            for slot in generate_slots(free, duration, granularity):
                assert slot.end - slot.start == timedelta(minutes=duration)
                assert any(interval.contains(slot.as_interval()) for interval in free)
