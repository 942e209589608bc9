"""In-memory tracking of scans started through the API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from portsweep.config import settings
from portsweep.core.errors import ScanConflictError, ScanNotFoundError, ScanValidationError
from portsweep.core.models import ScanProgress, ScanResult, ScanState, ScanSummary
from portsweep.core.scan_engine import ScanEngine
from portsweep.schemas.scan import ScanOptions

logger = logging.getLogger(__name__)


@dataclass
class ScanJob:
    """A scan owned by the manager, with its live results and subscribers."""

    target: str
    options: ScanOptions
    engine: ScanEngine | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    results: list[ScanResult] = field(default_factory=list)
    summary: ScanSummary | None = None
    task: asyncio.Task | None = None
    subscribers: list[asyncio.Queue] = field(default_factory=list)

    @property
    def state(self) -> ScanState:
        if self.summary is not None:
            return self.summary.state
        return self.engine.state

    @property
    def is_finished(self) -> bool:
        return self.summary is not None

    @property
    def progress(self) -> ScanProgress:
        return self.engine.progress

    def publish(self, message: dict[str, Any] | None) -> None:
        for queue in self.subscribers:
            queue.put_nowait(message)


class ScanManager:
    """Starts scans in the background and keeps a bounded registry of them.

    Every scan gets its own ScanEngine. Finished scans are evicted oldest
    first once more than ``max_scans`` are tracked.
    """

    def __init__(self, max_scans: int = settings.max_tracked_scans, engine_factory=ScanEngine):
        self._max_scans = max_scans
        self._engine_factory = engine_factory
        self._jobs: dict[str, ScanJob] = {}

    def start(self, target: str, options: ScanOptions | None = None) -> ScanJob:
        if not target or not target.strip():
            raise ScanValidationError("Target must not be empty")
        options = options or ScanOptions()

        job = ScanJob(target=target.strip(), options=options)

        def on_progress(progress: ScanProgress) -> None:
            job.publish({"type": "progress", **_progress_dict(progress)})

        def on_host(host: str, result: ScanResult) -> None:
            job.results.append(result)
            job.publish({"type": "host", "host": host, "is_online": result.is_online,
                         "open_ports": [p.port for p in result.open_ports]})

        job.engine = self._engine_factory(progress_callback=on_progress, host_callback=on_host)

        job.task = asyncio.create_task(self._run(job))
        self._jobs[job.id] = job
        self._evict()
        logger.info("Started scan %s for %s", job.id, job.target)
        return job

    async def _run(self, job: ScanJob) -> None:
        try:
            job.summary = await job.engine.scan(job.target, job.options)
        except asyncio.CancelledError:
            job.summary = ScanSummary(
                target=job.target, options=job.options, state=ScanState.CANCELLED,
                results=list(job.results),
            )
            raise
        except Exception as e:
            logger.error("Scan %s failed: %s", job.id, e)
            job.summary = ScanSummary(
                target=job.target, options=job.options, state=ScanState.FAILED,
                results=list(job.results), error_message=str(e),
            )
        finally:
            job.publish({
                "type": "summary",
                "state": job.state.value,
                "hosts_scanned": len(job.results),
                "total_hosts": job.progress.total_hosts,
            })
            job.publish(None)

    def get(self, scan_id: str) -> ScanJob:
        try:
            return self._jobs[scan_id]
        except KeyError:
            raise ScanNotFoundError(scan_id) from None

    def list_jobs(self) -> list[ScanJob]:
        return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)

    def cancel(self, scan_id: str) -> ScanJob:
        job = self.get(scan_id)
        if job.is_finished:
            raise ScanConflictError(f"Scan {scan_id} is already {job.state.value}")
        job.engine.cancel()
        logger.info("Cancellation requested for scan %s", scan_id)
        return job

    def subscribe(self, scan_id: str) -> asyncio.Queue:
        """Queue receiving event dicts for a scan, terminated by ``None``."""
        job = self.get(scan_id)
        queue: asyncio.Queue = asyncio.Queue()
        if job.is_finished:
            queue.put_nowait(None)
        else:
            job.subscribers.append(queue)
        return queue

    def unsubscribe(self, scan_id: str, queue: asyncio.Queue) -> None:
        job = self._jobs.get(scan_id)
        if job and queue in job.subscribers:
            job.subscribers.remove(queue)

    def _evict(self) -> None:
        # Insertion order is start order
        for job in list(self._jobs.values()):
            if len(self._jobs) <= self._max_scans:
                break
            if job.is_finished:
                del self._jobs[job.id]

    async def shutdown(self) -> None:
        """Cancel every running scan and wait for them to settle."""
        tasks = []
        for job in self._jobs.values():
            if job.task and not job.task.done():
                job.engine.cancel()
                tasks.append(job.task)
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task


def _progress_dict(progress: ScanProgress) -> dict[str, Any]:
    return {
        "scanned_hosts": progress.scanned_hosts,
        "total_hosts": progress.total_hosts,
        "current_host": progress.current_host,
        "percent": round(progress.percent, 2),
    }


# Lazy manager singleton
_manager: ScanManager | None = None


def get_scan_manager() -> ScanManager:
    """Get or create the global scan manager."""
    global _manager
    if _manager is None:
        _manager = ScanManager()
    return _manager


def set_scan_manager(manager: ScanManager | None) -> None:
    """Set the global scan manager (for testing)."""
    global _manager
    _manager = manager
