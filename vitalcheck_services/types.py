"""
Tagged result types returned by the external collaborators.

Every registry call returns exactly one of ``Resolved``, ``TransportFailure``
or ``Cancelled``; callers branch on the variant instead of null-checking
response fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Generic, TypeVar, Union

T = TypeVar("T")

# Width of the subject status columns that store raw registry codes.
STATUS_CODE_MAX_LENGTH = 20


@dataclass(frozen=True)
class CensusRecord:
    """One subject as read from the census source."""

    member_code: str | None
    cid: str
    birth_date: date | None


@dataclass(frozen=True)
class PopulationCheck:
    """Population-registry answer: ``code`` is "0" alive, "1" dead, "x" invalid."""

    code: str
    description: str | None = None


@dataclass(frozen=True)
class CivilRegistryRecord:
    """Civil-registry (serviceID 1) answer."""

    date_of_birth: str | None  # Buddhist-era YYYYMMDD
    status_code: str | None


@dataclass(frozen=True)
class Resolved(Generic[T]):
    payload: T


@dataclass(frozen=True)
class TransportFailure:
    reason: str
    status_code: int | None = None


@dataclass(frozen=True)
class Cancelled:
    where: str = ""


AdapterResult = Union[Resolved[T], TransportFailure, Cancelled]
