"""Best-effort banner capture from freshly opened TCP connections."""

from __future__ import annotations

import asyncio
import logging

from portsweep.config import settings

logger = logging.getLogger(__name__)

WEB_PORTS = frozenset({80, 8080, 8000, 443, 8443})
HTTP_PROBE = b"HEAD / HTTP/1.0\r\nHost: x\r\n\r\n"

READ_SIZE = 512
KEEP_BYTES = 200
MAX_BANNER_CHARS = 150
# Post-grace read only collects data that has already arrived
AVAILABLE_POLL = 0.01


def sanitize_banner(data: bytes | str) -> str:
    """Keep printable ASCII (32-126) only, truncated to 150 characters."""
    if isinstance(data, bytes):
        data = data[:KEEP_BYTES].decode("utf-8", errors="ignore")
    return "".join(c for c in data if 32 <= ord(c) <= 126)[:MAX_BANNER_CHARS]


class BannerGrabber:
    """Reads whatever a service has said once a short grace delay has passed.

    Web ports are sent a minimal HEAD request first since HTTP servers do
    not speak first; ``io_timeout_ms`` bounds that write. Data arriving
    after the grace delay is not waited for. Any failure yields an empty
    banner.
    """

    def __init__(
        self,
        io_timeout_ms: int = settings.banner_io_timeout_ms,
        grace_ms: int = settings.banner_grace_ms,
    ):
        self._io_timeout = io_timeout_ms / 1000
        self._grace = grace_ms / 1000

    async def grab(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        port: int,
    ) -> str:
        try:
            if port in WEB_PORTS:
                writer.write(HTTP_PROBE)
                await asyncio.wait_for(writer.drain(), timeout=self._io_timeout)

            await asyncio.sleep(self._grace)

            data = await asyncio.wait_for(
                reader.read(READ_SIZE), timeout=min(self._io_timeout, AVAILABLE_POLL)
            )
        except (asyncio.TimeoutError, ConnectionError, OSError) as e:
            logger.debug("No banner on port %d: %s", port, e)
            return ""
        except Exception as e:
            logger.debug("Banner read failed on port %d: %s", port, e)
            return ""

        if not data:
            return ""
        return sanitize_banner(data)
