"""Tests for the bank value tracker service.

Verifies the capture/dedup policy, empty-account handling, error wrapping
and ordering of concurrent captures.
"""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from data.repositories import Repository
from services import BankHistoryService, RecordResult
from utils import InvalidSnapshotError, StoreIOError, TrackerConfig, TrackerError


@pytest.fixture
def service(repository: Repository, clock) -> BankHistoryService:
    return BankHistoryService(
        repository, TrackerConfig(dedup_interval_seconds=300), clock=clock
    )


class TestRecordSnapshot:
    @pytest.mark.asyncio
    async def test_dedup_window_scenario(self, service: BankHistoryService, clock):
        """Captures 600s apart are kept; one 10s later is suppressed."""
        t0 = clock()
        assert await service.record_snapshot("alice", 1000) is RecordResult.RECORDED
        t600 = clock.advance(600)
        assert await service.record_snapshot("alice", 1200) is RecordResult.RECORDED

        series = await service.get_series_for("alice")
        assert series.points() == [(t0, 1000), (t600, 1200)]

        clock.advance(10)
        assert (
            await service.record_snapshot("alice", 1300) is RecordResult.DEDUPLICATED
        )
        series = await service.get_series_for("alice")
        assert len(series) == 2
        assert series.latest is not None and series.latest.total_value == 1200

    @pytest.mark.asyncio
    async def test_captures_beyond_interval_are_all_kept(
        self, service: BankHistoryService, clock
    ):
        values = [10, 20, 15, 40, 0]
        for value in values:
            await service.record_snapshot("alice", value)
            clock.advance(301)

        series = await service.get_series_for("alice")
        assert [s.total_value for s in series] == values

    @pytest.mark.asyncio
    async def test_capture_exactly_at_interval_is_kept(
        self, service: BankHistoryService, clock
    ):
        await service.record_snapshot("alice", 1)
        clock.advance(300)
        assert await service.record_snapshot("alice", 2) is RecordResult.RECORDED

    @pytest.mark.asyncio
    async def test_dedup_is_per_account(self, service: BankHistoryService):
        assert await service.record_snapshot("alice", 1) is RecordResult.RECORDED
        assert await service.record_snapshot("bob", 2) is RecordResult.RECORDED
        assert await service.get_available_users() == {"alice", "bob"}

    @pytest.mark.asyncio
    async def test_zero_interval_disables_dedup(self, repository: Repository, clock):
        service = BankHistoryService(
            repository, TrackerConfig(dedup_interval_seconds=0), clock=clock
        )
        await service.record_snapshot("alice", 1)
        await service.record_snapshot("alice", 2)
        assert len(await service.get_series_for("alice")) == 2

    @pytest.mark.asyncio
    async def test_negative_value_rejected(self, service: BankHistoryService):
        with pytest.raises(TrackerError) as exc_info:
            await service.record_snapshot("alice", -1)

        assert isinstance(exc_info.value.cause, InvalidSnapshotError)
        assert (await service.get_series_for("alice")).is_empty
        assert await service.get_available_users() == set()

    @pytest.mark.asyncio
    async def test_empty_account_is_never_written(self, service: BankHistoryService):
        result = await service.record_snapshot("", 500)

        assert result is RecordResult.SKIPPED_NO_ACCOUNT
        assert await service.get_available_users() == set()
        assert not await service.has_account_data()

    @pytest.mark.asyncio
    async def test_breakdown_is_stored_when_enabled(self, service: BankHistoryService):
        await service.record_snapshot("alice", 30, breakdown={"995": 10, "4151": 20})

        series = await service.get_series_for("alice")
        assert series[0].breakdown == {"995": 10, "4151": 20}

    @pytest.mark.asyncio
    async def test_breakdown_dropped_when_disabled(self, repository: Repository, clock):
        service = BankHistoryService(
            repository, TrackerConfig(store_breakdown=False), clock=clock
        )
        await service.record_snapshot("alice", 30, breakdown={"995": 30})

        series = await service.get_series_for("alice")
        assert series[0].breakdown is None

    @pytest.mark.asyncio
    async def test_breakdown_with_integer_item_ids(self, service: BankHistoryService):
        result = await service.record_snapshot("alice", 100, breakdown={995: 100})

        assert result is RecordResult.RECORDED
        series = await service.get_series_for("alice")
        assert series[0].breakdown == {"995": 100}

    @pytest.mark.asyncio
    async def test_negative_value_rejected_without_account(
        self, service: BankHistoryService
    ):
        with pytest.raises(TrackerError) as exc_info:
            await service.record_snapshot("", -5)

        assert isinstance(exc_info.value.cause, InvalidSnapshotError)

    @pytest.mark.asyncio
    async def test_damaged_latest_snapshot_does_not_block_recording(
        self, service: BankHistoryService, repository: Repository, clock
    ):
        await service.record_snapshot("alice", 1000)

        def _damage_breakdown(conn: sqlite3.Connection) -> None:
            conn.execute(
                "UPDATE bank_value_snapshots SET breakdown = '{bad' WHERE account = ?",
                ("alice",),
            )

        await repository.run_in_transaction(_damage_breakdown)

        for value in (1100, 1200, 1300):
            clock.advance(3600)
            assert await service.record_snapshot("alice", value) is RecordResult.RECORDED

        series = await service.get_series_for("alice")
        assert [s.total_value for s in series] == [1100, 1200, 1300]

    @pytest.mark.asyncio
    async def test_damaged_latest_snapshot_still_deduplicates(
        self, service: BankHistoryService, repository: Repository, clock
    ):
        await service.record_snapshot("alice", 1000)
        clock.advance(600)
        await service.record_snapshot("alice", 1100)

        def _damage_newest(conn: sqlite3.Connection) -> None:
            conn.execute(
                "UPDATE bank_value_snapshots SET breakdown = '{bad'"
                " WHERE snapshot_id = (SELECT MAX(snapshot_id) FROM bank_value_snapshots)"
            )

        await repository.run_in_transaction(_damage_newest)

        # Newest readable snapshot is the one at t0, 610s before this capture
        clock.advance(10)
        assert await service.record_snapshot("alice", 1200) is RecordResult.RECORDED
        # The next capture falls inside the window of the snapshot just stored
        clock.advance(10)
        assert (
            await service.record_snapshot("alice", 1300) is RecordResult.DEDUPLICATED
        )

    @pytest.mark.asyncio
    async def test_store_failure_wrapped_in_tracker_error(
        self, service: BankHistoryService, repository: Repository
    ):
        with patch.object(
            repository,
            "run_in_transaction",
            AsyncMock(side_effect=sqlite3.OperationalError("disk full")),
        ):
            with pytest.raises(TrackerError) as exc_info:
                await service.record_snapshot("alice", 100)

        assert isinstance(exc_info.value.cause, StoreIOError)
        assert isinstance(exc_info.value.__cause__, StoreIOError)
        assert (await service.get_series_for("alice")).is_empty

    @pytest.mark.asyncio
    async def test_failed_write_is_not_retried(
        self, service: BankHistoryService, repository: Repository
    ):
        failing = AsyncMock(side_effect=sqlite3.OperationalError("disk full"))
        with patch.object(repository, "run_in_transaction", failing):
            with pytest.raises(TrackerError):
                await service.record_snapshot("alice", 100)

        assert failing.await_count == 1


class TestQueries:
    @pytest.mark.asyncio
    async def test_unknown_or_missing_account_gives_empty_series(
        self, service: BankHistoryService
    ):
        for account in ("nobody", "", None):
            series = await service.get_series_for(account)
            assert series.is_empty

    @pytest.mark.asyncio
    async def test_remove_account(self, service: BankHistoryService, clock):
        await service.record_snapshot("alice", 1)
        await service.record_snapshot("bob", 2)

        await service.remove_account("alice")
        await service.remove_account("alice")

        assert await service.get_available_users() == {"bob"}
        assert (await service.get_series_for("alice")).is_empty

        # History starts over after removal
        assert await service.record_snapshot("alice", 3) is RecordResult.RECORDED

    @pytest.mark.asyncio
    async def test_export_import_round_trip(
        self, service: BankHistoryService, temp_dir, clock
    ):
        await service.record_snapshot("alice", 1)
        clock.advance(timedelta(hours=1).total_seconds())
        await service.record_snapshot("alice", 2)

        payload = await service.export_history()

        other_repo = Repository(temp_dir / "other.db")
        await other_repo.initialize()
        try:
            other = BankHistoryService(other_repo)
            assert await other.import_history(payload) == 2
            assert (await other.get_series_for("alice")).points() == (
                await service.get_series_for("alice")
            ).points()
        finally:
            await other_repo.close()

    @pytest.mark.asyncio
    async def test_bad_import_raises_tracker_error(self, service: BankHistoryService):
        with pytest.raises(TrackerError):
            await service.import_history({"format_version": 0})


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_captures_for_one_account_keep_arrival_order(
        self, repository: Repository, clock
    ):
        def ticking_clock():
            return clock.advance(1)

        service = BankHistoryService(
            repository, TrackerConfig(dedup_interval_seconds=0), clock=ticking_clock
        )

        await asyncio.gather(*(service.record_snapshot("alice", v) for v in range(10)))

        series = await service.get_series_for("alice")
        assert [s.total_value for s in series] == list(range(10))

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_collapse_to_one(
        self, service: BankHistoryService
    ):
        results = await asyncio.gather(
            *(service.record_snapshot("alice", 100) for _ in range(5))
        )

        assert results.count(RecordResult.RECORDED) == 1
        assert results.count(RecordResult.DEDUPLICATED) == 4
        assert len(await service.get_series_for("alice")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_captures_for_different_accounts(
        self, service: BankHistoryService
    ):
        accounts = [f"user{i}" for i in range(8)]
        results = await asyncio.gather(
            *(service.record_snapshot(a, 1000) for a in accounts)
        )

        assert all(r is RecordResult.RECORDED for r in results)
        assert await service.get_available_users() == set(accounts)
