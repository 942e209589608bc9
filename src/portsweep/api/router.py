"""Main router aggregation."""

from fastapi import APIRouter

from portsweep.api.scans import router as scans_router
from portsweep.api.ws import router as ws_router

api_router = APIRouter()

api_router.include_router(scans_router, prefix="/scans", tags=["scans"])
api_router.include_router(ws_router, prefix="/ws", tags=["websocket"])
