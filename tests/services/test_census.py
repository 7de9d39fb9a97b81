"""
Tests for vitalcheck_services.census -- the census source reader.

The census table is created in an in-memory SQLite database with the same
column names the production source uses.
"""

from datetime import date, datetime

import pytest
from sqlalchemy import Column, Date, Integer, MetaData, String, Table, insert

from vitalcheck_kernel.db.engine import build_engine
from vitalcheck_kernel.exceptions import CensusSourceError

from vitalcheck_services.census import CensusSource, _to_date
from vitalcheck_services.types import CensusRecord


@pytest.fixture
def census_engine():
    engine = build_engine("sqlite://")
    metadata = MetaData()
    members = Table(
        "MAS_MEMBERS",
        metadata,
        Column("MEMBER_CODE", String),
        Column("ID_CARD", String),
        Column("BIRTH_DATE", Date),
        Column("RECORD_STATUS", String),
        Column("MEMBER_STATUS", Integer),
    )
    metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(insert(members), [
            {"MEMBER_CODE": "M001 ", "ID_CARD": "1100000000001", "BIRTH_DATE": date(1950, 3, 1),
             "RECORD_STATUS": "N", "MEMBER_STATUS": 1},
            {"MEMBER_CODE": "M002", "ID_CARD": " 1100000000002 ", "BIRTH_DATE": None,
             "RECORD_STATUS": "N", "MEMBER_STATUS": 2},
            {"MEMBER_CODE": "M003", "ID_CARD": "1100000000003", "BIRTH_DATE": date(1960, 1, 1),
             "RECORD_STATUS": "D", "MEMBER_STATUS": 1},
            {"MEMBER_CODE": "M004", "ID_CARD": "1100000000004", "BIRTH_DATE": date(1960, 1, 1),
             "RECORD_STATUS": "N", "MEMBER_STATUS": 99},
            {"MEMBER_CODE": "M005", "ID_CARD": "110000000", "BIRTH_DATE": date(1960, 1, 1),
             "RECORD_STATUS": "N", "MEMBER_STATUS": 1},
            {"MEMBER_CODE": "M006", "ID_CARD": None, "BIRTH_DATE": date(1960, 1, 1),
             "RECORD_STATUS": "N", "MEMBER_STATUS": 1},
        ])
    yield engine
    engine.dispose()


class TestCensusSource:
    def test_fetch_filters_active_members(self, census_engine):
        source = CensusSource(census_engine, schema=None)
        assert source.fetch() == [
            CensusRecord(member_code="M001", cid="1100000000001", birth_date=date(1950, 3, 1)),
            CensusRecord(member_code="M002", cid="1100000000002", birth_date=None),
        ]

    def test_cid_length_is_configurable(self, census_engine):
        source = CensusSource(census_engine, schema=None, cid_length=9)
        assert [r.member_code for r in source.fetch()] == ["M005"]

    def test_missing_table_raises(self, census_engine):
        source = CensusSource(census_engine, table_name="NOPE", schema=None)
        with pytest.raises(CensusSourceError) as exc_info:
            source.fetch()
        assert exc_info.value.source == "NOPE"

    def test_schema_qualified_name(self, census_engine):
        source = CensusSource(census_engine, schema="dbo")
        assert "dbo" in str(source.build_query())


class TestToDate:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, None),
            (date(2000, 1, 2), date(2000, 1, 2)),
            (datetime(2000, 1, 2, 10, 30), date(2000, 1, 2)),
            ("2000-01-02", date(2000, 1, 2)),
            ("2000-01-02 10:30:00.000", date(2000, 1, 2)),
            ("", None),
            ("garbage", None),
        ],
    )
    def test_coercion(self, raw, expected):
        assert _to_date(raw) == expected
