from datetime import datetime, timedelta, timezone

import pytest

from hospital_booking.availability import (
    DAY_CLOSED,
    OUTSIDE_HOURS,
    PAST_DATE,
    SLOT_TAKEN,
    is_bookable,
    list_available_dates,
    normalize_slot,
)
from hospital_booking.schedule import Schedule

SCHEDULE = Schedule.from_dict({"weekdays": {"start": "09:00", "end": "17:00"}})
NOW = datetime(2030, 1, 1, 8, 0)
TUESDAY_10 = datetime(2030, 1, 8, 10, 0)


def test_saturday_is_closed():
    verdict = is_bookable(SCHEDULE, set(), datetime(2030, 1, 5, 10, 0), now=NOW)
    assert not verdict.ok
    assert verdict.reason == DAY_CLOSED


def test_before_opening_is_outside_hours():
    verdict = is_bookable(SCHEDULE, set(), datetime(2030, 1, 8, 8, 30), now=NOW)
    assert verdict.reason == OUTSIDE_HOURS


@pytest.mark.parametrize("hour,minute", [(8, 59), (17, 0), (17, 30), (23, 59), (0, 0)])
def test_window_is_half_open(hour, minute):
    verdict = is_bookable(SCHEDULE, set(), datetime(2030, 1, 8, hour, minute), now=NOW)
    assert not verdict.ok


def test_opening_minute_and_last_minute_are_bookable():
    assert is_bookable(SCHEDULE, set(), datetime(2030, 1, 8, 9, 0), now=NOW).ok
    assert is_bookable(SCHEDULE, set(), datetime(2030, 1, 8, 16, 59), now=NOW).ok


def test_past_date_rejected():
    verdict = is_bookable(SCHEDULE, set(), TUESDAY_10, now=TUESDAY_10 + timedelta(minutes=1))
    assert verdict.reason == PAST_DATE


def test_booked_slot_rejected():
    verdict = is_bookable(SCHEDULE, {TUESDAY_10}, TUESDAY_10, now=NOW)
    assert verdict.reason == SLOT_TAKEN


def test_free_slot_accepted():
    verdict = is_bookable(SCHEDULE, {TUESDAY_10 + timedelta(minutes=30)}, TUESDAY_10, now=NOW)
    assert verdict.ok
    assert verdict.reason is None


def test_seconds_do_not_make_a_new_slot():
    verdict = is_bookable(SCHEDULE, {TUESDAY_10}, TUESDAY_10.replace(second=42), now=NOW)
    assert verdict.reason == SLOT_TAKEN


def test_normalize_slot_converts_aware_to_local_naive():
    aware = datetime(2030, 1, 8, 10, 0, 30, tzinfo=timezone.utc)
    slot = normalize_slot(aware)
    assert slot.tzinfo is None
    assert slot.second == 0
    assert slot == aware.astimezone().replace(tzinfo=None, second=0)


def test_list_available_dates_walks_open_days_only():
    start = datetime(2030, 1, 4)   # Friday
    end = datetime(2030, 1, 8)     # Tuesday, exclusive
    slots = list(list_available_dates(SCHEDULE, set(), start, end, timedelta(hours=1)))

    days = sorted({s.date().isoformat() for s in slots})
    assert days == ["2030-01-04", "2030-01-07"]
    assert slots[0] == datetime(2030, 1, 4, 9, 0)
    assert slots[-1] == datetime(2030, 1, 7, 16, 0)
    assert len(slots) == 16
    assert slots == sorted(slots)


def test_list_available_dates_excludes_booked():
    booked = {datetime(2030, 1, 7, 9, 0), datetime(2030, 1, 7, 13, 0)}
    slots = list(list_available_dates(SCHEDULE, booked, datetime(2030, 1, 7), datetime(2030, 1, 8), timedelta(hours=1)))
    assert not booked & set(slots)
    assert len(slots) == 6


def test_list_available_dates_respects_now():
    now = datetime(2030, 1, 7, 12, 15)
    slots = list(
        list_available_dates(SCHEDULE, set(), datetime(2030, 1, 7), datetime(2030, 1, 8), timedelta(hours=1), now=now)
    )
    assert slots[0] == datetime(2030, 1, 7, 13, 0)


def test_list_available_dates_is_restartable():
    seq = list_available_dates(SCHEDULE, set(), datetime(2030, 1, 7), datetime(2030, 1, 9), timedelta(minutes=30))
    first = list(seq)
    second = list(seq)
    assert first == second
    assert len(first) == 32


def test_list_available_dates_range_is_half_open_inside_a_day():
    slots = list(
        list_available_dates(
            SCHEDULE, set(), datetime(2030, 1, 7, 10, 0), datetime(2030, 1, 7, 12, 0), timedelta(minutes=30)
        )
    )
    assert slots == [
        datetime(2030, 1, 7, 10, 0),
        datetime(2030, 1, 7, 10, 30),
        datetime(2030, 1, 7, 11, 0),
        datetime(2030, 1, 7, 11, 30),
    ]


def test_every_listed_slot_is_bookable():
    booked = {datetime(2030, 1, 8, 9, 30)}
    for slot in list_available_dates(SCHEDULE, booked, datetime(2030, 1, 5), datetime(2030, 1, 12), timedelta(minutes=45)):
        assert is_bookable(SCHEDULE, booked, slot, now=NOW).ok


def test_step_must_be_positive():
    with pytest.raises(ValueError):
        list_available_dates(SCHEDULE, set(), datetime(2030, 1, 7), datetime(2030, 1, 8), timedelta(0))
