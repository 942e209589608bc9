"""Test fixtures and configuration."""

from __future__ import annotations

import asyncio
import socket

import pytest
import pytest_asyncio

from portsweep.core.models import LivenessResult, PortResult
from portsweep.core.port_prober import service_name


class FakeLivenessProber:
    """Liveness prober answering from a fixed set of online hosts."""

    def __init__(self, online: set[str] | None = None, latency_ms: float = 1.5):
        self.online = online or set()
        self.latency_ms = latency_ms
        self.calls: list[str] = []

    async def probe(self, host: str, timeout_ms: int) -> LivenessResult:
        self.calls.append(host)
        if host in self.online:
            return LivenessResult(online=True, latency_ms=self.latency_ms)
        return LivenessResult(online=False)


class FakePortProber:
    """Port prober answering from a fixed set of open ports.

    Tracks the peak number of concurrent probes overall and per host.
    """

    def __init__(self, open_ports: set[int] | None = None, delay: float = 0.0):
        self.open_ports = open_ports or set()
        self.delay = delay
        self.calls: list[tuple[str, int]] = []
        self.in_flight = 0
        self.peak = 0
        self._per_host: dict[str, int] = {}
        self.peak_per_host = 0

    async def probe(self, host: str, port: int, timeout_ms: int, grab_banner: bool = False) -> PortResult:
        self.calls.append((host, port))
        self.in_flight += 1
        self._per_host[host] = self._per_host.get(host, 0) + 1
        self.peak = max(self.peak, self.in_flight)
        self.peak_per_host = max(self.peak_per_host, self._per_host[host])
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
            self._per_host[host] -= 1
        if port in self.open_ports:
            return PortResult(
                port=port,
                is_open=True,
                service=service_name(port),
                banner="fake-banner" if grab_banner else "",
            )
        return PortResult(port=port)


@pytest.fixture
def fake_liveness():
    return FakeLivenessProber()


@pytest.fixture
def fake_ports():
    return FakePortProber()


@pytest_asyncio.fixture
async def banner_server():
    """Loopback TCP server that greets every client with an SSH-style banner."""

    async def handle(reader, writer):
        writer.write(b"SSH-2.0-OpenSSH_9.6\r\n\x00\x07")
        await writer.drain()
        try:
            await asyncio.wait_for(reader.read(100), timeout=2)
        except asyncio.TimeoutError:
            pass
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    server.close()
    await server.wait_closed()


@pytest_asyncio.fixture
async def http_server():
    """Loopback TCP server that only answers after receiving a request line."""

    async def handle(reader, writer):
        try:
            request = await asyncio.wait_for(reader.readline(), timeout=2)
        except asyncio.TimeoutError:
            writer.close()
            return
        if request.startswith(b"HEAD"):
            writer.write(b"HTTP/1.0 200 OK\r\nServer: test-httpd\r\n\r\n")
            await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    server.close()
    await server.wait_closed()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
