"""
Pure schedule-window evaluation.

Contract:
    ``normalize_window()``, ``window_start_date()``, ``is_within_window()``
    and ``is_eligible()`` are PURE -- no I/O, no side effects.  ``now`` is
    always supplied by the caller as a naive wall-clock datetime in the
    scheduler's time zone.

Semantics:
    A window row ``(day, month, start_time, duration_hours)`` names a start
    date in the current year.  From that date on, the window is open every
    day during ``[anchor, anchor + duration_hours)``, where ``anchor`` is
    ``start_time`` on today's or yesterday's date (yesterday covers windows
    that cross midnight) and the anchor must not precede the start date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from vitalcheck_batch.domain.types import ScheduleWindow


@dataclass(frozen=True)
class TimeOfDay:
    hour: int
    minute: int
    second: int = 0

    def as_time(self) -> time:
        return time(self.hour, self.minute, self.second)


@dataclass(frozen=True)
class NormalizedWindow:
    """A schedule row that passed normalization."""

    day: int
    month: int
    duration_hours: int
    start: TimeOfDay
    raw_time: str
    window_id: int | None = None

    @property
    def sort_key(self) -> tuple[int, int, int, int, int]:
        return (self.month, self.day, self.start.hour, self.start.minute, self.start.second)

    @property
    def key(self) -> str:
        """Per-window dedupe key: ``{day}-{month}-{h}:{m}:{s}-{duration}``."""
        s = self.start
        return f"{self.day}-{self.month}-{s.hour}:{s.minute}:{s.second}-{self.duration_hours}"

    @property
    def label(self) -> str:
        return f"{self.day:02d}/{self.month:02d} at {self.raw_time} for {self.duration_hours}h"


def parse_time_of_day(raw: str | None) -> TimeOfDay | None:
    """Parse ``H:MM``, ``HH:MM`` or ``HH:MM:SS`` (a leading ``:`` is tolerated)."""
    text = str(raw if raw is not None else "").strip()
    if text.startswith(":"):
        text = text[1:]
    parts = text.split(":")
    if not text or len(parts) < 2 or len(parts) > 3:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
        second = int(parts[2]) if len(parts) == 3 else 0
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
        return None
    return TimeOfDay(hour, minute, second)


def normalize_window(row: ScheduleWindow) -> NormalizedWindow | None:
    """Validate a stored row; None means "skip this row at tick time"."""
    if not 1 <= row.day <= 31 or not 1 <= row.month <= 12:
        return None
    if row.duration_hours is None or row.duration_hours <= 0:
        return None
    start = parse_time_of_day(row.start_time)
    if start is None:
        return None
    return NormalizedWindow(
        day=row.day,
        month=row.month,
        duration_hours=row.duration_hours,
        start=start,
        raw_time=str(row.start_time).strip(),
        window_id=row.id,
    )


def normalize_windows(rows: Iterable[ScheduleWindow]) -> list[NormalizedWindow]:
    """Normalize, drop invalid rows and sort by (month, day, h, m, s)."""
    windows = [w for w in (normalize_window(r) for r in rows) if w is not None]
    return sorted(windows, key=lambda w: w.sort_key)


def window_start_date(window: NormalizedWindow, now: datetime) -> date | None:
    """The window's nominal start date in ``now``'s year (None if not a date)."""
    try:
        return date(now.year, window.month, window.day)
    except ValueError:
        return None


def _anchor(day: date, window: NormalizedWindow) -> datetime:
    return datetime.combine(day, window.start.as_time())


def is_within_window(now: datetime, start_date: date, window: NormalizedWindow) -> bool:
    """Is ``now`` inside ``[anchor, anchor + duration)`` for today or yesterday?"""
    duration = timedelta(hours=window.duration_hours)
    earliest = datetime.combine(start_date, time())
    today = now.date()
    for day in (today, today - timedelta(days=1)):
        anchor = _anchor(day, window)
        if anchor >= earliest and anchor <= now < anchor + duration:
            return True
    return False


def is_start_day(window: NormalizedWindow, now: datetime) -> bool:
    return window_start_date(window, now) == now.date()


def is_eligible(window: NormalizedWindow, now: datetime) -> bool:
    """Full tick-time eligibility: valid start date, reached, and inside the window."""
    start_date = window_start_date(window, now)
    if start_date is None:
        return False
    if now < datetime.combine(start_date, time()):
        return False
    return is_within_window(now, start_date, window)


def date_key(now: datetime) -> str:
    return now.strftime("%Y-%m-%d")
