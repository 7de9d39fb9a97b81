"""
ORM model for configured schedule windows.

Invariants enforced:
    - ``schedule_windows`` is replaced wholesale on configuration update.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vitalcheck_kernel.db.base import Base

if TYPE_CHECKING:
    from vitalcheck_batch.domain.types import ScheduleWindow


class ScheduleWindowModel(Base):
    """Configured annual trigger window."""

    __tablename__ = "schedule_windows"

    day: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)

    def to_dto(self) -> ScheduleWindow:
        from vitalcheck_batch.domain.types import ScheduleWindow

        return ScheduleWindow(
            id=self.id,
            day=self.day,
            month=self.month,
            start_time=self.start_time,
            duration_hours=self.duration_hours,
        )
