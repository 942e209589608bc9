"""FastAPI dependency injection."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from portsweep.core.scan_manager import ScanManager, get_scan_manager


def get_manager() -> ScanManager:
    """Get the scan manager."""
    return get_scan_manager()


Manager = Annotated[ScanManager, Depends(get_manager)]
