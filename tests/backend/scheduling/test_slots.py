from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from backend.scheduling.slots import (
    booked_slot_keys,
    day_of_week,
    generate_slots,
    slot_times_between,
    wall_clock_minutes,
)

MONDAY = date(2026, 1, 5)


def _window(start_time: str, end_time: str) -> SimpleNamespace:
    return SimpleNamespace(start_time=start_time, end_time=end_time)


def test_day_of_week_counts_from_sunday() -> None:
    assert day_of_week(date(2026, 1, 4)) == 0
    assert day_of_week(MONDAY) == 1
    assert day_of_week(date(2026, 1, 10)) == 6


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        ('09:00', 540),
        ('9:30', 570),
        ('17:45:00', 1065),
        ('24:00', 1440),
        ('24:30', None),
        ('09:75', None),
        ('nine', None),
        ('', None),
        (None, None),
    ],
)
def test_wall_clock_minutes(value, expected) -> None:
    assert wall_clock_minutes(value) == expected


def test_slot_times_between_drops_partial_trailing_slot() -> None:
    assert slot_times_between('09:00', '10:15') == [time(9, 0), time(9, 30)]


def test_slot_times_between_window_narrower_than_a_slot_yields_nothing() -> None:
    assert slot_times_between('09:00', '09:20') == []


def test_slot_times_between_inverted_window_yields_nothing() -> None:
    assert slot_times_between('11:00', '10:00') == []


def test_booked_slot_keys_truncates_to_the_minute() -> None:
    keys = booked_slot_keys([datetime(2026, 1, 5, 9, 0, 42, 1200), None])

    assert keys == {datetime(2026, 1, 5, 9, 0)}


def test_generate_slots_one_hour_window_gives_two_half_hour_slots() -> None:
    slots = generate_slots(MONDAY, [_window('09:00', '10:00')], [], 7, 'dr_lee')

    assert [(slot.start, slot.end) for slot in slots] == [
        (datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 9, 30)),
        (datetime(2026, 1, 5, 9, 30), datetime(2026, 1, 5, 10, 0)),
    ]
    assert {slot.counselor_id for slot in slots} == {7}
    assert {slot.counselor_username for slot in slots} == {'dr_lee'}


def test_generate_slots_skips_booked_starts_ignoring_seconds() -> None:
    slots = generate_slots(
        MONDAY,
        [_window('09:00', '10:00')],
        [datetime(2026, 1, 5, 9, 0, 30)],
        7,
        'dr_lee',
    )

    assert [slot.start for slot in slots] == [datetime(2026, 1, 5, 9, 30)]


def test_generate_slots_keeps_duplicates_from_overlapping_windows() -> None:
    slots = generate_slots(
        MONDAY,
        [_window('09:00', '10:00'), _window('09:30', '10:30')],
        [],
        7,
        'dr_lee',
    )

    assert [slot.start.time() for slot in slots] == [time(9, 0), time(9, 30), time(9, 30), time(10, 0)]


def test_generate_slots_serializes_to_the_public_shape() -> None:
    slot = generate_slots(MONDAY, [_window('13:00', '13:30')], [], 3, 'counselor')[0]

    assert slot.model_dump(mode='json') == {
        'start': '2026-01-05T13:00:00',
        'end': '2026-01-05T13:30:00',
        'counselor_id': 3,
        'counselor_username': 'counselor',
    }


def test_generate_slots_drops_a_slot_ending_past_the_last_date() -> None:
    slots = generate_slots(date.max, [_window('23:00', '24:00')], [], 1, 'casey')

    assert [slot.start for slot in slots] == [datetime(9999, 12, 31, 23, 0)]
    assert slots[0].end == datetime(9999, 12, 31, 23, 30)
