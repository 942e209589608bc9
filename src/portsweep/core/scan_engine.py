"""Concurrent host/port scan orchestration."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import Any, TypeVar

from portsweep.core.errors import ScanConflictError, ScanValidationError
from portsweep.core.liveness import LivenessProber
from portsweep.core.models import (
    ScanEvent,
    ScanProgress,
    ScanResult,
    ScanState,
    ScanSummary,
)
from portsweep.core.port_prober import PortProber
from portsweep.core.targets import resolve_targets
from portsweep.schemas.scan import ScanOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[ScanProgress], Any]
HostCallback = Callable[[str, ScanResult], Any]


async def run_bounded(
    items: Iterable[T], limit: int, func: Callable[[T], Awaitable[None]]
) -> None:
    """Run ``func`` over ``items`` with at most ``limit`` calls in flight.

    A fixed set of workers pulls from one shared iterator, so the number of
    live tasks never exceeds ``limit`` however many items there are.
    """
    items = list(items)
    if not items:
        return
    iterator = iter(items)

    async def worker() -> None:
        for item in iterator:
            await func(item)

    workers = [asyncio.create_task(worker()) for _ in range(min(limit, len(items)))]
    try:
        await asyncio.gather(*workers)
    finally:
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning("Scan callback %r failed: %s", callback, e)


class ScanEngine:
    """Two-level bounded fan-out scanner: a host pool containing port pools.

    Callbacks may be plain functions or coroutine functions. They are invoked
    from whichever worker finished a host, once per host, progress first.
    One scan runs per engine at a time.
    """

    def __init__(
        self,
        liveness_prober: LivenessProber | None = None,
        port_prober: PortProber | None = None,
        progress_callback: ProgressCallback | None = None,
        host_callback: HostCallback | None = None,
    ):
        self._liveness_prober = liveness_prober or LivenessProber()
        self._port_prober = port_prober
        self._progress_callback = progress_callback
        self._host_callback = host_callback
        self._sinks: list[tuple[ProgressCallback, HostCallback]] = []
        self._cancel_event: asyncio.Event | None = None
        self._lock: asyncio.Lock | None = None
        self.state = ScanState.IDLE
        self.progress = ScanProgress()

    @property
    def is_running(self) -> bool:
        return self.state in (ScanState.RESOLVING, ScanState.SCANNING)

    def cancel(self) -> None:
        """Cancel the running scan. Results collected so far are kept."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def scan(
        self,
        target: str,
        options: ScanOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ScanSummary:
        """Scan every host of ``target`` and return the summary.

        Setting ``cancel_event`` (or calling ``cancel()``) stops the scan
        promptly; the summary is then CANCELLED and holds partial results.
        """
        if self.is_running:
            raise ScanConflictError("A scan is already running on this engine")
        if not target or not target.strip():
            raise ScanValidationError("Target must not be empty")
        options = options or ScanOptions()
        if not options.ports:
            raise ScanValidationError("At least one port is required")

        summary = ScanSummary(
            target=target.strip(),
            options=options,
            started_at=datetime.now(timezone.utc),
        )
        self._cancel_event = cancel_event or asyncio.Event()
        self._lock = asyncio.Lock()

        self.state = ScanState.RESOLVING
        hosts = resolve_targets(summary.target)
        summary.total_hosts = len(hosts)
        self.progress = ScanProgress(total_hosts=len(hosts))
        logger.info(
            "Scanning %s: %d hosts x %d ports", summary.target, len(hosts), len(options.ports)
        )

        if not hosts:
            return self._finish(summary, ScanState.COMPLETED)

        self.state = ScanState.SCANNING
        port_prober = self._port_prober or PortProber()

        async def scan_one(host: str) -> None:
            await self._scan_host(host, options, port_prober, summary)

        task = asyncio.create_task(
            run_bounded(hosts, options.max_host_concurrency, scan_one)
        )
        watcher = asyncio.create_task(self._cancel_event.wait())
        try:
            await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if task.done():
                task.result()
                state = ScanState.COMPLETED
            else:
                logger.info("Scan of %s cancelled", summary.target)
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                state = ScanState.CANCELLED
        except asyncio.CancelledError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self._finish(summary, ScanState.CANCELLED)
            raise
        except Exception as e:
            logger.exception("Scan of %s failed", summary.target)
            summary.error_message = str(e)
            state = ScanState.FAILED
        finally:
            watcher.cancel()

        return self._finish(summary, state)

    async def stream(
        self,
        target: str,
        options: ScanOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[ScanEvent]:
        """Yield progress, host and summary events as the scan runs.

        Closing the iterator early cancels the scan.
        """
        if self.is_running:
            raise ScanConflictError("A scan is already running on this engine")
        queue: asyncio.Queue[ScanEvent] = asyncio.Queue()

        def on_progress(progress: ScanProgress) -> None:
            queue.put_nowait(ScanEvent(kind="progress", progress=progress))

        def on_host(host: str, result: ScanResult) -> None:
            queue.put_nowait(ScanEvent(kind="host", host=host, result=result))

        sink = (on_progress, on_host)
        self._sinks.append(sink)
        scan_task = asyncio.create_task(self.scan(target, options, cancel_event))
        scan_task.add_done_callback(lambda _: queue.put_nowait(ScanEvent(kind="done")))
        try:
            while True:
                event = await queue.get()
                if event.kind == "done":
                    break
                yield event
            yield ScanEvent(kind="summary", summary=scan_task.result())
        finally:
            self._sinks.remove(sink)
            if not scan_task.done():
                self.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await scan_task

    async def _scan_host(
        self,
        host: str,
        options: ScanOptions,
        port_prober: PortProber,
        summary: ScanSummary,
    ) -> None:
        result = ScanResult(host=host, is_online=True)

        if options.ping_first:
            try:
                liveness = await self._liveness_prober.probe(host, options.ping_timeout_ms)
                result.is_online = liveness.online
                result.latency_ms = liveness.latency_ms
            except Exception as e:
                logger.debug("Liveness probe failed for %s: %s", host, e)
                result.is_online = False

        if result.is_online or not options.skip_offline_hosts:
            open_ports = []

            async def probe_port(port: int) -> None:
                try:
                    port_result = await port_prober.probe(
                        host, port, options.port_timeout_ms, options.grab_banners
                    )
                except Exception as e:
                    logger.debug("Probe of %s:%d failed: %s", host, port, e)
                    return
                if port_result.is_open:
                    open_ports.append(port_result)

            await run_bounded(options.ports, options.max_port_concurrency, probe_port)
            result.open_ports = sorted(open_ports, key=lambda p: p.port)

        await self._record(host, result, summary)

    async def _record(self, host: str, result: ScanResult, summary: ScanSummary) -> None:
        # Insertion, counter increment and notification happen under one lock
        # so snapshots are emitted in counter order.
        async with self._lock:
            summary.results.append(result)
            self.progress.scanned_hosts += 1
            self.progress.current_host = host
            total = self.progress.total_hosts
            self.progress.percent = self.progress.scanned_hosts / total * 100
            snapshot = ScanProgress(
                scanned_hosts=self.progress.scanned_hosts,
                total_hosts=total,
                current_host=host,
                percent=self.progress.percent,
            )

            await _invoke(self._progress_callback, snapshot)
            for on_progress, _ in list(self._sinks):
                await _invoke(on_progress, snapshot)
            await _invoke(self._host_callback, host, result)
            for _, on_host in list(self._sinks):
                await _invoke(on_host, host, result)

    def _finish(self, summary: ScanSummary, state: ScanState) -> ScanSummary:
        summary.state = state
        summary.finished_at = datetime.now(timezone.utc)
        self.state = state
        logger.info(
            "Scan of %s %s: %d/%d hosts, %d online, %d open ports in %.1fs",
            summary.target,
            state.value,
            len(summary.results),
            summary.total_hosts,
            summary.online_count,
            summary.open_port_count,
            summary.elapsed,
        )
        return summary
