"""
Working calendar of a hospital or of one of its service categories.

A schedule is a weekday window (Mon-Fri), optional Saturday/Sunday windows
and dated exceptions (closures or special hours). Pure data, no I/O: the
catalogue stores it as JSON and rebuilds it with `Schedule.from_dict`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Mapping

SATURDAY = 5
SUNDAY = 6


class ScheduleError(ValueError):
    """Invalid schedule configuration (bad time, empty or inverted window)."""


def parse_time(value: Any) -> time:
    """Accept `time`, `datetime` or an "HH:MM" / "HH:MM:SS" string."""
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip()).replace(second=0, microsecond=0)
        except ValueError:
            raise ScheduleError(f"Invalid time: {value!r}") from None
    raise ScheduleError(f"Invalid time: {value!r}")


@dataclass(frozen=True)
class Interval:
    """Half-open daily window [start, end)."""
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ScheduleError(
                f"Start must be before end ({self.start:%H:%M} - {self.end:%H:%M})"
            )

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Interval:
        if not isinstance(data, Mapping):
            raise ScheduleError(f"An interval must be an object, got {data!r}")
        if "start" not in data or "end" not in data:
            raise ScheduleError("An interval needs both start and end")
        return cls(parse_time(data["start"]), parse_time(data["end"]))

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}


def _optional_interval(data: Mapping[str, Any] | None) -> Interval | None:
    if not data:
        return None
    return Interval.from_dict(data)


@dataclass(frozen=True)
class Schedule:
    weekdays: Interval
    saturday: Interval | None = None
    sunday: Interval | None = None
    # date -> special window, None meaning closed for the whole day
    exceptions: Mapping[date, Interval | None] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Schedule:
        """
        Build a schedule from its JSON form.

        Both the full form ({"weekdays": {...}, "saturday": ..., "sunday": ...,
        "exceptions": [...]}) and the flat hospital form ({"start", "end"})
        are accepted.
        """
        if not isinstance(data, Mapping):
            raise ScheduleError("Schedule must be an object")

        if "weekdays" in data:
            weekdays = Interval.from_dict(data["weekdays"] or {})
        else:
            weekdays = Interval.from_dict(data)

        raw_exceptions = data.get("exceptions") or []
        if not isinstance(raw_exceptions, list):
            raise ScheduleError("Exceptions must be a list")

        exceptions: dict[date, Interval | None] = {}
        for raw in raw_exceptions:
            if not isinstance(raw, Mapping):
                raise ScheduleError(f"Invalid exception: {raw!r}")
            try:
                day = date.fromisoformat(str(raw["date"]))
            except (KeyError, ValueError):
                raise ScheduleError(f"Invalid exception date: {raw!r}") from None
            if raw.get("start") is None and raw.get("end") is None:
                exceptions[day] = None
            else:
                exceptions[day] = Interval.from_dict(raw)

        return cls(
            weekdays=weekdays,
            saturday=_optional_interval(data.get("saturday")),
            sunday=_optional_interval(data.get("sunday")),
            exceptions=exceptions,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "weekdays": self.weekdays.to_dict(),
            "saturday": self.saturday.to_dict() if self.saturday else None,
            "sunday": self.sunday.to_dict() if self.sunday else None,
            "exceptions": [
                {"date": day.isoformat(), **(window.to_dict() if window else {"start": None, "end": None})}
                for day, window in sorted(self.exceptions.items())
            ],
        }


def resolve_day_window(schedule: Schedule, day: date) -> Interval | None:
    """
    Opening window for `day`, or None when the day is closed.

    Dated exceptions win; then Mon-Fri use the weekday window and the weekend
    uses its own override, if any.
    """
    if isinstance(day, datetime):
        day = day.date()

    if day in schedule.exceptions:
        return schedule.exceptions[day]

    weekday = day.weekday()
    if weekday == SATURDAY:
        return schedule.saturday
    if weekday == SUNDAY:
        return schedule.sunday
    return schedule.weekdays


def effective_schedule(hospital_schedule: Schedule, category_schedule: Schedule | None) -> Schedule:
    """A category schedule replaces the hospital one entirely; there is no merging."""
    return category_schedule if category_schedule is not None else hospital_schedule
