"""Tests for the in-memory scan manager."""

import asyncio

import pytest

from portsweep.core.errors import ScanConflictError, ScanNotFoundError, ScanValidationError
from portsweep.core.models import ScanState
from portsweep.core.scan_engine import ScanEngine
from portsweep.core.scan_manager import ScanManager, get_scan_manager, set_scan_manager
from portsweep.schemas.scan import ScanOptions

OPTIONS = ScanOptions(ports=[22, 80], ping_first=False, max_host_concurrency=2)


@pytest.fixture
def manager(fake_liveness, fake_ports):
    fake_ports.open_ports = {22}

    def factory(**callbacks):
        return ScanEngine(liveness_prober=fake_liveness, port_prober=fake_ports, **callbacks)

    return ScanManager(max_scans=3, engine_factory=factory)


class TestScanManager:
    @pytest.mark.asyncio
    async def test_start_and_finish(self, manager):
        job = manager.start("10.0.0.1-4", OPTIONS)
        assert manager.get(job.id) is job
        await job.task

        assert job.is_finished
        assert job.state == ScanState.COMPLETED
        assert len(job.results) == 4
        assert job.summary.open_port_count == 4
        assert job.progress.percent == 100.0

    @pytest.mark.asyncio
    async def test_blank_target_rejected(self, manager):
        with pytest.raises(ScanValidationError):
            manager.start("", OPTIONS)
        assert manager.list_jobs() == []

    @pytest.mark.asyncio
    async def test_unknown_scan(self, manager):
        with pytest.raises(ScanNotFoundError):
            manager.get("nope")

    @pytest.mark.asyncio
    async def test_cancel_running_scan(self, manager, fake_ports):
        fake_ports.delay = 5
        job = manager.start("10.0.0.0/24", OPTIONS)
        await asyncio.sleep(0.05)
        manager.cancel(job.id)
        await asyncio.wait_for(job.task, timeout=2)
        assert job.state == ScanState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_finished_scan_conflicts(self, manager):
        job = manager.start("10.0.0.1", OPTIONS)
        await job.task
        with pytest.raises(ScanConflictError):
            manager.cancel(job.id)

    @pytest.mark.asyncio
    async def test_subscriber_receives_events(self, manager):
        job = manager.start("10.0.0.1-2", OPTIONS)
        queue = manager.subscribe(job.id)
        messages = []
        while (message := await asyncio.wait_for(queue.get(), timeout=2)) is not None:
            messages.append(message)

        types = [m["type"] for m in messages]
        assert types.count("progress") == 2
        assert types.count("host") == 2
        assert types[-1] == "summary"
        assert messages[-1]["state"] == "completed"
        manager.unsubscribe(job.id, queue)

    @pytest.mark.asyncio
    async def test_subscribe_to_finished_scan(self, manager):
        job = manager.start("10.0.0.1", OPTIONS)
        await job.task
        queue = manager.subscribe(job.id)
        assert queue.get_nowait() is None

    @pytest.mark.asyncio
    async def test_finished_scans_evicted(self, manager):
        jobs = []
        for i in range(5):
            job = manager.start(f"10.0.0.{i + 1}", OPTIONS)
            await job.task
            jobs.append(job)
        tracked = {j.id for j in manager.list_jobs()}
        assert len(tracked) == 3
        assert jobs[0].id not in tracked
        assert jobs[-1].id in tracked

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running(self, manager, fake_ports):
        fake_ports.delay = 5
        job = manager.start("10.0.0.1-10", OPTIONS)
        await asyncio.sleep(0.05)
        await asyncio.wait_for(manager.shutdown(), timeout=2)
        assert job.state == ScanState.CANCELLED


class TestLazyInit:
    def test_get_scan_manager_returns_same_instance(self):
        set_scan_manager(None)
        assert get_scan_manager() is get_scan_manager()
        set_scan_manager(None)

    def test_set_scan_manager_overrides(self):
        custom = ScanManager(max_scans=1)
        set_scan_manager(custom)
        assert get_scan_manager() is custom
        set_scan_manager(None)
