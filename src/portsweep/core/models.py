"""Result records produced by the scan engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from portsweep.schemas.scan import ScanOptions


class ScanState(str, enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    SCANNING = "scanning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class PortResult:
    """Outcome of probing one port on one host."""

    port: int
    is_open: bool = False
    service: str = ""
    banner: str = ""


@dataclass
class LivenessResult:
    """Outcome of a reachability probe."""

    online: bool
    latency_ms: float | None = None


@dataclass
class ScanResult:
    """Outcome for one host.

    ``open_ports`` only ever holds ports classified open, sorted ascending.
    """

    host: str
    is_online: bool = False
    latency_ms: float | None = None
    open_ports: list[PortResult] = field(default_factory=list)


@dataclass
class ScanProgress:
    """Point-in-time progress snapshot, emitted after each host completes."""

    scanned_hosts: int = 0
    total_hosts: int = 0
    current_host: str = ""
    percent: float = 0.0


@dataclass
class ScanSummary:
    """Final outcome of a scan, including partial results when cancelled."""

    target: str
    options: ScanOptions
    state: ScanState = ScanState.IDLE
    results: list[ScanResult] = field(default_factory=list)
    total_hosts: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None

    @property
    def cancelled(self) -> bool:
        return self.state == ScanState.CANCELLED

    @property
    def elapsed(self) -> float:
        if not self.started_at or not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def online_count(self) -> int:
        return sum(1 for r in self.results if r.is_online)

    @property
    def open_port_count(self) -> int:
        return sum(len(r.open_ports) for r in self.results)


@dataclass
class ScanEvent:
    """An item of the pull-based scan stream.

    ``kind`` is one of ``progress``, ``host`` or ``summary``; ``done`` is
    used internally to mark the end of the stream.
    """

    kind: str
    progress: ScanProgress | None = None
    host: str | None = None
    result: ScanResult | None = None
    summary: ScanSummary | None = None
