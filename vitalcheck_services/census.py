"""
Census source reader.

Contract:
    ``CensusSource.fetch()`` returns every active member of the census table
    (``RECORD_STATUS = 'N'``, ``MEMBER_STATUS <> 99``) whose identifier has
    exactly ``cid_length`` characters.  The length filter runs in Python so
    the query stays dialect independent.

Failure modes:
    - Any SQLAlchemy error is raised as ``CensusSourceError``.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import column, select, table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from vitalcheck_kernel.exceptions import CensusSourceError
from vitalcheck_kernel.logging_config import get_logger

from vitalcheck_services.types import CensusRecord

logger = get_logger("services.census")


class CensusSource:
    def __init__(
        self,
        engine: Engine,
        table_name: str = "MAS_MEMBERS",
        schema: str | None = "dbo",
        cid_length: int = 13,
    ):
        self._engine = engine
        self._cid_length = cid_length
        self._members = table(
            table_name,
            column("MEMBER_CODE"),
            column("ID_CARD"),
            column("BIRTH_DATE"),
            column("RECORD_STATUS"),
            column("MEMBER_STATUS"),
            schema=schema or None,
        )
        self._source_name = f"{schema}.{table_name}" if schema else table_name

    def build_query(self):
        m = self._members.c
        return (
            select(m.MEMBER_CODE, m.ID_CARD, m.BIRTH_DATE)
            .select_from(self._members)
            .where(m.RECORD_STATUS == "N")
            .where(m.MEMBER_STATUS != 99)
        )

    def fetch(self) -> list[CensusRecord]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(self.build_query()).all()
        except SQLAlchemyError as exc:
            raise CensusSourceError(self._source_name, str(exc)) from exc

        records: list[CensusRecord] = []
        for member_code, id_card, birth_date in rows:
            cid = str(id_card).strip() if id_card is not None else ""
            if len(cid) != self._cid_length:
                continue
            records.append(
                CensusRecord(
                    member_code=None if member_code is None else str(member_code).strip(),
                    cid=cid,
                    birth_date=_to_date(birth_date),
                )
            )

        logger.info(
            "census_fetched",
            extra={"source": self._source_name, "rows": len(rows), "eligible": len(records)},
        )
        return records


def _to_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text[:19].replace(" ", "T")).date()
    except ValueError:
        return None
