"""TCP connect probing and service labelling."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import errno
import ipaddress
import logging
import socket

from portsweep.core.banner import BannerGrabber
from portsweep.core.models import PortResult

logger = logging.getLogger(__name__)

SERVICE_NAMES: dict[int, str] = {
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    80: "HTTP",
    110: "POP3",
    143: "IMAP",
    443: "HTTPS",
    445: "SMB",
    993: "IMAPS",
    995: "POP3S",
    1433: "MSSQL",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    5900: "VNC",
    6379: "Redis",
    8080: "HTTP-Proxy",
    8443: "HTTPS-Alt",
    27017: "MongoDB",
}

_UNREACHABLE_ERRNOS = {errno.ENETUNREACH, errno.EHOSTUNREACH, errno.ETIMEDOUT}


def service_name(port: int) -> str:
    """Well-known service label for a port, or "" when unknown."""
    return SERVICE_NAMES.get(port, "")


class ConnectOutcome(str, enum.Enum):
    """How a connect attempt ended. Only OPEN counts as open in results."""

    OPEN = "open"
    REFUSED = "refused"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    ERROR = "error"


class PortProber:
    """Connect-based TCP port prober.

    Instances cache the address family chosen per host, so one prober should
    be used per scan.
    """

    def __init__(self, banner_grabber: BannerGrabber | None = None):
        self._banner_grabber = banner_grabber or BannerGrabber()
        self._families: dict[str, socket.AddressFamily] = {}

    async def resolve_family(self, host: str, timeout: float) -> socket.AddressFamily:
        """Pick the socket family: literal IP family, else first resolved address, else IPv4."""
        if host in self._families:
            return self._families[host]

        try:
            family = (
                socket.AF_INET6
                if ipaddress.ip_address(host).version == 6
                else socket.AF_INET
            )
        except ValueError:
            family = socket.AF_INET
            try:
                loop = asyncio.get_running_loop()
                infos = await asyncio.wait_for(
                    loop.getaddrinfo(host, None, type=socket.SOCK_STREAM),
                    timeout=timeout,
                )
                if infos:
                    family = infos[0][0]
            except (asyncio.TimeoutError, OSError) as e:
                logger.debug("Could not resolve %s, defaulting to IPv4: %s", host, e)

        self._families[host] = family
        return family

    async def connect(
        self, host: str, port: int, timeout_ms: int
    ) -> tuple[ConnectOutcome, asyncio.StreamReader | None, asyncio.StreamWriter | None]:
        """Attempt a connect with a hard deadline; never raises except on cancellation."""
        timeout = timeout_ms / 1000
        family = await self.resolve_family(host, timeout)
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, family=family),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return ConnectOutcome.TIMEOUT, None, None
        except ConnectionRefusedError:
            return ConnectOutcome.REFUSED, None, None
        except OSError as e:
            if e.errno in _UNREACHABLE_ERRNOS:
                return ConnectOutcome.UNREACHABLE, None, None
            logger.debug("Connect to %s:%d failed: %s", host, port, e)
            return ConnectOutcome.ERROR, None, None
        return ConnectOutcome.OPEN, reader, writer

    async def probe(
        self, host: str, port: int, timeout_ms: int, grab_banner: bool = False
    ) -> PortResult:
        """Probe one host:port and return its classification."""
        result = PortResult(port=port)
        outcome, reader, writer = await self.connect(host, port, timeout_ms)
        if outcome is not ConnectOutcome.OPEN:
            logger.debug("%s:%d %s", host, port, outcome.value)
            return result

        try:
            result.is_open = True
            result.service = service_name(port)
            if grab_banner:
                result.banner = await self._banner_grabber.grab(reader, writer, port)
        finally:
            await _close_writer(writer)

        logger.debug("%s:%d open %s", host, port, result.service)
        return result


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(Exception):
        await asyncio.wait_for(writer.wait_closed(), timeout=1)
