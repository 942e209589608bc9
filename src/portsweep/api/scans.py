"""Scan API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from portsweep.core.errors import ScanConflictError, ScanNotFoundError, ScanValidationError
from portsweep.core.scan_manager import ScanJob
from portsweep.core.targets import parse_ports
from portsweep.dependencies import Manager
from portsweep.schemas.scan import (
    ScanCreate,
    ScanListResponse,
    ScanProgressResponse,
    ScanResponse,
    ScanResultResponse,
    build_options,
)

router = APIRouter()


def _to_response(job: ScanJob, include_results: bool = True) -> ScanResponse:
    summary = job.summary
    results = summary.results if summary else list(job.results)
    return ScanResponse(
        id=job.id,
        target=job.target,
        state=job.state.value,
        options=job.options,
        progress=ScanProgressResponse.model_validate(job.progress),
        total_hosts=job.progress.total_hosts,
        online_count=sum(1 for r in results if r.is_online),
        open_port_count=sum(len(r.open_ports) for r in results),
        error_message=summary.error_message if summary else None,
        created_at=job.created_at,
        started_at=summary.started_at if summary else None,
        finished_at=summary.finished_at if summary else None,
        results=[ScanResultResponse.model_validate(r) for r in results] if include_results else [],
    )


@router.post("", response_model=ScanResponse, status_code=201)
async def create_scan(request: ScanCreate, manager: Manager):
    ports = request.ports
    if isinstance(ports, str):
        ports = parse_ports(ports)
        if not ports:
            raise HTTPException(status_code=422, detail="No valid ports in port expression")

    try:
        options = build_options(
            ports=ports,
            port_timeout_ms=request.port_timeout_ms,
            ping_timeout_ms=request.ping_timeout_ms,
            max_host_concurrency=request.max_host_concurrency,
            max_port_concurrency=request.max_port_concurrency,
            ping_first=request.ping_first,
            skip_offline_hosts=request.skip_offline_hosts,
            grab_banners=request.grab_banners,
        )
        job = manager.start(request.target, options)
    except ScanValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return _to_response(job)


@router.get("", response_model=ScanListResponse)
async def list_scans(manager: Manager):
    jobs = manager.list_jobs()
    items = [_to_response(job, include_results=False) for job in jobs]
    return ScanListResponse(items=items, total=len(items))


@router.get("/{scan_id}", response_model=ScanResponse)
async def get_scan(scan_id: str, manager: Manager):
    try:
        job = manager.get(scan_id)
    except ScanNotFoundError:
        raise HTTPException(status_code=404, detail="Scan not found")
    return _to_response(job)


@router.post("/{scan_id}/cancel")
async def cancel_scan(scan_id: str, manager: Manager):
    try:
        manager.cancel(scan_id)
    except ScanNotFoundError:
        raise HTTPException(status_code=404, detail="Scan not found")
    except ScanConflictError:
        raise HTTPException(status_code=400, detail="Scan cannot be cancelled")
    return {"message": "Scan cancellation requested"}
