"""
Unit tests for JobScheduler.

Run: pytest tests/unit/test_scheduler_service.py -v
"""

import asyncio
import pytest

from services.scheduler_service import JobScheduler
from exceptions import NotFoundError


# ===================
# REGISTRATION TESTS
# ===================

class TestAddJob:
    """Tests for job registration."""

    def test_rejects_non_positive_interval(self):
        """Should refuse an interval of zero."""
        scheduler = JobScheduler()

        with pytest.raises(ValueError):
            scheduler.add_job("stock_sync", 0, lambda: None)

    def test_status_lists_jobs(self):
        """Should report every registered job as idle."""
        scheduler = JobScheduler()

        async def noop():
            return None

        scheduler.add_job("stock_sync", 600, noop)
        scheduler.add_job("order_poll", 300, noop)

        statuses = scheduler.get_status()
        assert [s.name for s in statuses] == ["stock_sync", "order_poll"]
        assert all(s.running is False and s.runs == 0 for s in statuses)
        assert scheduler.is_running is False


# ===================
# FIRING TESTS
# ===================

class TestOverlap:
    """Tests for the no-overlap guard."""

    @pytest.mark.asyncio
    async def test_second_tick_skipped_while_running(self):
        """Should run once and count one skip when a tick overlaps a slow run."""
        scheduler = JobScheduler()
        release = asyncio.Event()
        calls = []

        async def slow_job():
            calls.append(1)
            await release.wait()

        scheduler.add_job("stock_sync", 600, slow_job)

        assert scheduler.tick("stock_sync") is True
        await asyncio.sleep(0)
        assert scheduler.tick("stock_sync") is False

        release.set()
        await scheduler.wait_idle()

        status = scheduler.get_status()[0]
        assert len(calls) == 1
        assert status.runs == 1
        assert status.skipped == 1
        assert status.running is False

    @pytest.mark.asyncio
    async def test_manual_trigger_respects_guard(self):
        """Should refuse a manual run while a scheduled run is in progress."""
        scheduler = JobScheduler()
        release = asyncio.Event()

        async def slow_job():
            await release.wait()

        scheduler.add_job("order_poll", 300, slow_job)
        scheduler.tick("order_poll")
        await asyncio.sleep(0)

        assert await scheduler.trigger("order_poll") is False

        release.set()
        await scheduler.wait_idle()


class TestTrigger:
    """Tests for manual triggers and failure containment."""

    @pytest.mark.asyncio
    async def test_trigger_runs_and_waits(self):
        """Should run the job to completion before returning."""
        scheduler = JobScheduler()
        calls = []

        async def job():
            calls.append(1)

        scheduler.add_job("shipment_poll", 300, job)

        assert await scheduler.trigger("shipment_poll") is True
        assert calls == [1]
        assert scheduler.get_status()[0].runs == 1

    @pytest.mark.asyncio
    async def test_failure_is_contained(self):
        """Should record the failure and allow the next run."""
        scheduler = JobScheduler()
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("upstream down")

        scheduler.add_job("stock_sync", 600, flaky)

        assert await scheduler.trigger("stock_sync") is True
        status = scheduler.get_status()[0]
        assert status.failures == 1
        assert status.last_error == "upstream down"
        assert status.running is False

        assert await scheduler.trigger("stock_sync") is True
        status = scheduler.get_status()[0]
        assert status.runs == 2
        assert status.last_error is None

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        """Should raise NotFoundError for an unknown name."""
        scheduler = JobScheduler()

        with pytest.raises(NotFoundError):
            await scheduler.trigger("missing")


class TestLifecycle:
    """Tests for start() and stop_all()."""

    @pytest.mark.asyncio
    async def test_loop_fires_on_interval(self):
        """Should fire the job from its trigger loop."""
        scheduler = JobScheduler()
        fired = asyncio.Event()

        async def job():
            fired.set()

        scheduler.add_job("stock_sync", 0.01, job)
        scheduler.start()
        assert scheduler.is_running is True

        await asyncio.wait_for(fired.wait(), timeout=1)
        await scheduler.stop_all()
        await scheduler.wait_idle()

        assert scheduler.is_running is False
        assert scheduler.get_status()[0].runs >= 1
