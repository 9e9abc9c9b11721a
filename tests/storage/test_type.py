"""Tests for gradepush.storage.type module."""

from __future__ import annotations

import datetime

import pytest
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Dialect

from gradepush.model import OverrideRecordID
from gradepush.storage.type import PrefixedIDType, UTCDateTime

utc = datetime.timezone.utc
london = datetime.timezone(datetime.timedelta(hours=1))


class TestUTCDateTime(object):
    def test_postgresql_keeps_timezone(self) -> None:
        """psycopg binds aware values, normalized to UTC."""
        bound = UTCDateTime().process_bind_param(
            datetime.datetime(2025, 6, 1, 13, 30, tzinfo=london), postgresql.psycopg.dialect()
        )

        assert bound == datetime.datetime(2025, 6, 1, 12, 30, tzinfo=utc)
        assert bound is not None and bound.tzinfo == utc

    def test_sqlite_binds_naive_utc(self) -> None:
        """SQLite gets the UTC wall time without a timezone."""
        bound = UTCDateTime().process_bind_param(
            datetime.datetime(2025, 6, 1, 13, 30, tzinfo=london), sqlite.pysqlite.dialect()
        )

        assert bound == datetime.datetime(2025, 6, 1, 12, 30)
        assert bound is not None and bound.tzinfo is None

    @pytest.mark.parametrize("dialect", [postgresql.psycopg.dialect(), sqlite.pysqlite.dialect()])
    def test_naive_rejected(self, dialect: Dialect) -> None:
        """Datetimes without a timezone are refused on every backend."""
        with pytest.raises(ValueError):
            UTCDateTime().process_bind_param(datetime.datetime(2025, 6, 1, 12), dialect)

    @pytest.mark.parametrize("dialect", [postgresql.psycopg.dialect(), sqlite.pysqlite.dialect()])
    def test_none_passes_through(self, dialect: Dialect) -> None:
        """NULL is left alone both ways."""
        assert UTCDateTime().process_bind_param(None, dialect) is None
        assert UTCDateTime().process_result_value(None, dialect) is None

    def test_result_naive_read_as_utc(self) -> None:
        """SQLite hands back naive values; they were stored as UTC."""
        loaded = UTCDateTime().process_result_value(datetime.datetime(2025, 6, 1, 12), sqlite.pysqlite.dialect())
        assert loaded == datetime.datetime(2025, 6, 1, 12, tzinfo=utc)

    def test_result_aware_converted(self) -> None:
        """Aware values from the database are converted to UTC."""
        loaded = UTCDateTime().process_result_value(
            datetime.datetime(2025, 6, 1, 13, tzinfo=london), postgresql.psycopg.dialect()
        )
        assert loaded is not None and loaded.tzinfo == utc
        assert loaded.hour == 12


class TestPrefixedIDType(object):
    def test_stores_key(self) -> None:
        """Only the shortuuid part goes to the column, and the prefix comes back on load."""
        record_id = OverrideRecordID()
        column = PrefixedIDType(OverrideRecordID)
        dialect = postgresql.psycopg.dialect()

        stored = column.process_bind_param(record_id, dialect)

        assert stored == record_id.key
        assert column.process_result_value(stored, dialect) == record_id
