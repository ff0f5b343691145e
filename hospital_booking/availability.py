"""
Availability resolution for a single service.

- `is_bookable`: validates one candidate slot against the schedule and the
  dates already booked for the service.
- `list_available_dates`: walks a date range and yields every free slot on
  the configured grid.

Neither function touches the database: the caller passes in the schedule and
the booked dates, and is responsible for the atomic check-then-insert
(see `store.AppointmentStore.create`).
"""
from __future__ import annotations

from collections.abc import Collection, Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from .schedule import Schedule, resolve_day_window

DAY_CLOSED = "day closed"
OUTSIDE_HOURS = "outside hours"
PAST_DATE = "past date"
SLOT_TAKEN = "slot taken"


@dataclass(frozen=True)
class Verdict:
    ok: bool
    reason: str | None = None

    @classmethod
    def accept(cls) -> Verdict:
        return cls(True)

    @classmethod
    def reject(cls, reason: str) -> Verdict:
        return cls(False, reason)


def normalize_slot(moment: datetime) -> datetime:
    """
    Slots are compared at minute granularity on naive local time.
    Aware datetimes are converted to the server's local time first.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return moment.replace(second=0, microsecond=0)


def is_bookable(
    schedule: Schedule,
    booked_dates: Collection[datetime],
    candidate: datetime,
    now: datetime | None = None,
) -> Verdict:
    candidate = normalize_slot(candidate)

    window = resolve_day_window(schedule, candidate.date())
    if window is None:
        return Verdict.reject(DAY_CLOSED)

    if not window.contains(candidate.time()):
        return Verdict.reject(OUTSIDE_HOURS)

    if now is not None and candidate < now:
        return Verdict.reject(PAST_DATE)

    if candidate in booked_dates:
        return Verdict.reject(SLOT_TAKEN)

    return Verdict.accept()


class AvailableDates:
    """
    Ordered, finite sequence of free slots in [range_start, range_end).

    Iteration is lazy and every `iter()` starts over, so the same object can
    be walked more than once (e.g. counted, then serialized).
    """

    def __init__(
        self,
        schedule: Schedule,
        booked_dates: Collection[datetime],
        range_start: datetime,
        range_end: datetime,
        step: timedelta,
        now: datetime | None = None,
    ) -> None:
        if step <= timedelta(0):
            raise ValueError("step must be positive")
        self.schedule = schedule
        self.booked = frozenset(normalize_slot(d) for d in booked_dates)
        self.range_start = normalize_slot(range_start)
        self.range_end = normalize_slot(range_end)
        self.step = step
        self.now = now

    def __iter__(self) -> Iterator[datetime]:
        day: date = self.range_start.date()
        while datetime.combine(day, time.min) < self.range_end:
            yield from self._slots_for_day(day)
            day += timedelta(days=1)

    def _slots_for_day(self, day: date) -> Iterator[datetime]:
        window = resolve_day_window(self.schedule, day)
        if window is None:
            return

        slot = datetime.combine(day, window.start)
        close = datetime.combine(day, window.end)
        while slot < close:
            if slot >= self.range_end:
                return
            if (
                slot >= self.range_start
                and slot not in self.booked
                and (self.now is None or slot >= self.now)
            ):
                yield slot
            slot += self.step


def list_available_dates(
    schedule: Schedule,
    booked_dates: Collection[datetime],
    range_start: datetime,
    range_end: datetime,
    step: timedelta = timedelta(minutes=30),
    now: datetime | None = None,
) -> AvailableDates:
    return AvailableDates(schedule, booked_dates, range_start, range_end, step, now)
