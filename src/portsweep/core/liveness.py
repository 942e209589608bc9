"""Host liveness probing via the system ping utility."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import platform
import re
import shlex
import shutil
import time

from portsweep.config import settings
from portsweep.core.models import LivenessResult

logger = logging.getLogger(__name__)

_LATENCY_RE = re.compile(r"time[=<]\s*([0-9]+(?:\.[0-9]+)?)\s*([a-z]+)")
_RECEIVED_RE = re.compile(r"(\d+)\s+(?:packets\s+)?received")
_SUCCESS_MARKERS = ("ttl=", "time=", "time<", "bytes from", "reply from")


def build_ping_command(timeout_ms: int, system_name: str | None = None) -> list[str] | None:
    """Return the argv prefix for a single echo request, or None if ping is missing."""
    if settings.ping_command:
        return shlex.split(settings.ping_command)

    ping_path = shutil.which("ping")
    if not ping_path:
        return None

    system_name = (system_name or platform.system()).lower()
    if system_name == "windows":
        return [ping_path, "-n", "1", "-w", str(timeout_ms)]
    if system_name == "darwin":
        return [ping_path, "-n", "-c", "1", "-W", str(timeout_ms)]
    # iputils and busybox take whole seconds
    return [ping_path, "-n", "-c", "1", "-W", str(max(1, math.ceil(timeout_ms / 1000)))]


def parse_ping_output(output: str) -> LivenessResult:
    """Classify ping output; latency is taken from the reply line when present."""
    text = output.lower()

    received = _RECEIVED_RE.search(text)
    if received and int(received.group(1)) == 0:
        return LivenessResult(online=False)
    if "destination host unreachable" in text or "100% packet loss" in text:
        return LivenessResult(online=False)
    if not any(marker in text for marker in _SUCCESS_MARKERS):
        return LivenessResult(online=False)

    latency = None
    match = _LATENCY_RE.search(text)
    if match:
        value = float(match.group(1))
        unit = match.group(2)
        if unit == "s":
            value *= 1000.0
        elif unit == "us":
            value /= 1000.0
        latency = value
    return LivenessResult(online=True, latency_ms=latency)


class LivenessProber:
    """Sends one ICMP echo per host and reports online/offline with latency.

    Every failure, including a missing ping binary, is reported as offline.
    Only task cancellation propagates.
    """

    async def probe(self, host: str, timeout_ms: int) -> LivenessResult:
        command = build_ping_command(timeout_ms)
        if command is None:
            logger.debug("No ping utility available; treating %s as offline", host)
            return LivenessResult(online=False)

        start = time.perf_counter()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                host,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("Could not start ping for %s: %s", host, e)
            return LivenessResult(online=False)

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            logger.debug("Ping to %s timed out after %d ms", host, timeout_ms)
            return LivenessResult(online=False)
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                with contextlib.suppress(Exception):
                    await asyncio.shield(process.wait())

        if process.returncode != 0:
            return LivenessResult(online=False)

        output = (stdout or b"") + (stderr or b"")
        result = parse_ping_output(output.decode("utf-8", errors="ignore"))
        if result.online and result.latency_ms is None:
            result.latency_ms = round((time.perf_counter() - start) * 1000, 3)
        return result
