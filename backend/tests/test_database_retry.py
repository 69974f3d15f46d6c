"""Tests for the unit-of-work runner and conflict classification."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from cryptofolio.core.database import is_transient_conflict, run_in_transaction, upsert
from cryptofolio.core.exceptions import PersistenceConflictError, TransientConflictError
from cryptofolio.core.metrics import metrics
from cryptofolio.models.chart_point import ChartPoint


class PgError(Exception):
    def __init__(self, message, sqlstate):
        super().__init__(message)
        self.sqlstate = sqlstate


class TestIsTransientConflict:
    """Tests for deciding which errors are retried."""

    def test_serialization_failure(self):
        exc = OperationalError("UPDATE", {}, PgError("could not serialize", "40001"))
        assert is_transient_conflict(exc)

    def test_postgres_unique_violation(self):
        exc = IntegrityError("INSERT", {}, PgError("duplicate key", "23505"))
        assert is_transient_conflict(exc)

    def test_sqlite_lock_contention(self):
        exc = OperationalError("INSERT", {}, Exception("database is locked"))
        assert is_transient_conflict(exc)

    def test_not_null_violation_is_not_transient(self):
        exc = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: allocations.name"))
        assert not is_transient_conflict(exc)

    def test_plain_errors_are_not_transient(self):
        assert not is_transient_conflict(ValueError("bad"))
        assert is_transient_conflict(TransientConflictError("retry me"))


class TestRunInTransaction:
    """Tests for retrying a whole unit of work."""

    async def test_retries_then_commits(self, session_factory):
        calls = []

        async def work(session):
            calls.append(1)
            session.add(ChartPoint(datetime=datetime(2025, 6, 1), nav=1.0))
            if len(calls) < 3:
                raise TransientConflictError("conflict")
            return "done"

        result = await run_in_transaction(
            work, session_factory, max_attempts=3, backoff_sec=0, label="chart"
        )

        assert result == "done"
        assert len(calls) == 3
        assert metrics.get_summary()["persistence_retries"] == 2

        # Rolled-back attempts leave nothing behind
        async with session_factory() as session:
            rows = (await session.execute(select(ChartPoint))).scalars().all()
        assert len(rows) == 1

    async def test_exhaustion_raises_persistence_conflict(self, session_factory):
        async def work(session):
            raise TransientConflictError("conflict")

        with pytest.raises(PersistenceConflictError) as exc_info:
            await run_in_transaction(work, session_factory, max_attempts=2, backoff_sec=0)
        assert exc_info.value.attempts == 2

    async def test_genuine_error_is_not_retried(self, session_factory):
        calls = []

        async def work(session):
            calls.append(1)
            raise ValueError("genuine")

        with pytest.raises(ValueError):
            await run_in_transaction(work, session_factory, max_attempts=3, backoff_sec=0)
        assert len(calls) == 1
        assert metrics.get_summary()["persistence_retries"] == 0


class TestUpsert:
    async def test_sqlite_insert(self, session_factory):
        async with session_factory() as session:
            stmt = upsert(session, ChartPoint)
        assert hasattr(stmt, "on_conflict_do_update")

    def test_unsupported_dialect(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "mysql"
        with pytest.raises(ValueError):
            upsert(session, ChartPoint)
