"""
Registry status codes and Buddhist-era dates.

Both registries answer with the same numeric person-status codes.  The
mapping below is a fixed external contract; confirm it against the
registries before changing it.
"""

from __future__ import annotations

import re
from datetime import date

from vitalcheck_batch.domain.types import SubjectStatus

BUDDHIST_ERA_OFFSET = 543

_STATUS_BY_CODE: dict[str, SubjectStatus] = {
    "0": SubjectStatus.ALIVE,
    "1": SubjectStatus.DEATH,
    "2": SubjectStatus.LOST,
}

_THAI_DOB_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def status_from_code(code: str | int | None) -> SubjectStatus:
    """Map a registry status code to a SubjectStatus.

    Anything unrecognized (including ``"x"`` for invalid input) stays PENDING.
    """
    if code is None:
        return SubjectStatus.PENDING
    return _STATUS_BY_CODE.get(str(code).strip(), SubjectStatus.PENDING)


def to_buddhist_dob(value: date) -> str:
    """Render a Gregorian date as ``YYYYMMDD`` with the Buddhist-era year."""
    return f"{value.year + BUDDHIST_ERA_OFFSET:04d}{value.month:02d}{value.day:02d}"


def from_buddhist_dob(raw: str | int | None) -> date | None:
    """Parse a Buddhist-era ``YYYYMMDD`` string into a Gregorian date.

    Returns None when the value is not eight digits or is not a real date
    (registries use ``00`` for unknown month or day).
    """
    match = _THAI_DOB_RE.match(str(raw if raw is not None else "").strip())
    if match is None:
        return None
    year, month, day = (int(g) for g in match.groups())
    try:
        return date(year - BUDDHIST_ERA_OFFSET, month, day)
    except ValueError:
        return None
