"""WebSocket endpoints for real-time streaming."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from portsweep.core.errors import ScanNotFoundError
from portsweep.dependencies import Manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/scans/{scan_id}")
async def scan_events(ws: WebSocket, scan_id: str, manager: Manager):
    """Stream progress, host and summary events for a scan until it finishes."""
    await ws.accept()
    try:
        queue = manager.subscribe(scan_id)
    except ScanNotFoundError:
        await ws.send_json({"error": "Scan not found"})
        await ws.close()
        return

    try:
        while True:
            try:
                message = await asyncio.wait_for(queue.get(), timeout=30)
            except asyncio.TimeoutError:
                await ws.send_json({"type": "keepalive"})
                continue
            if message is None:
                break
            await ws.send_json(message)

        job = manager.get(scan_id)
        await ws.send_json({"type": "end", "state": job.state.value})
        await ws.close()
    except WebSocketDisconnect:
        pass
    finally:
        manager.unsubscribe(scan_id, queue)
