"""
ORM model for census subjects.

Architecture: vitalcheck_batch/models. Imports from vitalcheck_kernel.db.base only.

Invariants enforced:
    - ``subjects`` is replaced wholesale at the start of every attempt.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from vitalcheck_kernel.db.base import Base

if TYPE_CHECKING:
    from vitalcheck_batch.domain.types import SubjectRow


class SubjectModel(Base):
    """One census subject and the state of its two registry checks."""

    __tablename__ = "subjects"

    __table_args__ = (
        Index("ix_subjects_status_checkpop", "status", "status_checkpop"),
        Index("ix_subjects_status_lk", "status", "status_lk"),
    )

    cid: Mapped[str] = mapped_column(String(32), nullable=False)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    member_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    # Raw registry codes land here; the clients reject codes longer than
    # STATUS_CODE_MAX_LENGTH in vitalcheck_services.types.
    status_checkpop: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING",
    )
    status_lk: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")

    def to_dto(self) -> SubjectRow:
        from vitalcheck_batch.domain.types import SubjectRow, SubjectStatus

        return SubjectRow(
            id=self.id,
            cid=self.cid,
            birth_date=self.birth_date,
            member_code=self.member_code,
            status=SubjectStatus(self.status),
            status_checkpop=self.status_checkpop,
            status_lk=self.status_lk,
        )
