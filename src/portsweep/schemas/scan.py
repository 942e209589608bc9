"""Scan schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from portsweep.config import settings
from portsweep.core.errors import ScanValidationError


class ScanOptions(BaseModel):
    """Immutable per-scan configuration. Defaults come from ``settings``."""

    model_config = ConfigDict(frozen=True)

    ports: tuple[int, ...] = Field(
        default_factory=lambda: tuple(settings.default_ports), validate_default=True
    )
    port_timeout_ms: int = Field(default_factory=lambda: settings.port_timeout_ms, ge=1)
    ping_timeout_ms: int = Field(default_factory=lambda: settings.ping_timeout_ms, ge=1)
    max_host_concurrency: int = Field(default_factory=lambda: settings.max_host_concurrency, ge=1)
    max_port_concurrency: int = Field(default_factory=lambda: settings.max_port_concurrency, ge=1)
    ping_first: bool = Field(default_factory=lambda: settings.ping_first)
    skip_offline_hosts: bool = Field(default_factory=lambda: settings.skip_offline_hosts)
    grab_banners: bool = Field(default_factory=lambda: settings.grab_banners)

    @field_validator("ports")
    @classmethod
    def normalize_ports(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        bad = [p for p in v if not 1 <= p <= 65535]
        if bad:
            raise ValueError(f"ports out of range 1-65535: {bad[:5]}")
        ports = tuple(sorted(set(v)))
        if not ports:
            raise ValueError("at least one port is required")
        return ports


def build_options(**overrides: Any) -> ScanOptions:
    """Build ScanOptions, dropping ``None`` overrides so settings defaults apply.

    Raises ScanValidationError instead of pydantic's ValidationError.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return ScanOptions(**values)
    except ValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
            for err in e.errors()
        )
        raise ScanValidationError(messages) from e


class PortResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    port: int
    is_open: bool
    service: str
    banner: str


class ScanResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    host: str
    is_online: bool
    latency_ms: float | None
    open_ports: list[PortResultResponse]


class ScanProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    scanned_hosts: int
    total_hosts: int
    current_host: str
    percent: float


class ScanCreate(BaseModel):
    target: str
    ports: str | list[int] | None = None
    port_timeout_ms: int | None = None
    ping_timeout_ms: int | None = None
    max_host_concurrency: int | None = None
    max_port_concurrency: int | None = None
    ping_first: bool | None = None
    skip_offline_hosts: bool | None = None
    grab_banners: bool | None = None


class ScanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    target: str
    state: str
    options: ScanOptions
    progress: ScanProgressResponse
    total_hosts: int
    online_count: int
    open_port_count: int
    error_message: str | None
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None
    results: list[ScanResultResponse] = []


class ScanListResponse(BaseModel):
    items: list[ScanResponse]
    total: int
