"""Target and port expression parsing."""

from __future__ import annotations

import ipaddress
import logging
import re

from portsweep.config import settings

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^(\d+\.\d+\.\d+)\.(\d+)-(\d+)$")


def resolve_targets(target: str, max_hosts: int | None = None) -> list[str]:
    """Expand a target expression into the ordered list of hosts to probe.

    Accepted forms:
    - CIDR block: "192.168.1.0/24" (IPv4 only)
    - Dash range on the last octet: "10.0.0.1-254"
    - Anything else is a single literal host (IP or hostname), left unresolved

    Never raises; malformed CIDR or range expressions produce no hosts.
    """
    if not target or not target.strip():
        return []
    target = target.strip()
    cap = max_hosts if max_hosts is not None else settings.max_cidr_hosts

    hosts: list[str] = []
    try:
        if "/" in target:
            hosts = _expand_cidr(target, cap)
        elif _RANGE_RE.match(target):
            hosts = _expand_range(target)
        else:
            hosts = [target]
    except Exception as e:
        logger.debug("Could not parse target %r: %s", target, e)
        if not hosts:
            hosts = [target]

    return hosts


def _expand_cidr(target: str, cap: int) -> list[str]:
    base, _, prefix_text = target.partition("/")
    try:
        base_ip = ipaddress.ip_address(base)
        prefix = int(prefix_text)
    except ValueError:
        return []
    if base_ip.version != 4 or not 0 <= prefix <= 32:
        return []

    host_bits = 32 - prefix
    count = 1 << host_bits
    network = int(base_ip) & ((0xFFFFFFFF << host_bits) & 0xFFFFFFFF)

    # Network and broadcast addresses are skipped except on /31 and /32
    if prefix < 31:
        start, end = 1, count - 1
    else:
        start, end = 0, count

    end = min(end, start + cap)
    return [str(ipaddress.IPv4Address(network + i)) for i in range(start, end)]


def _expand_range(target: str) -> list[str]:
    match = _RANGE_RE.match(target)
    if not match:
        return []
    prefix = match.group(1)
    start = max(0, int(match.group(2)))
    end = min(255, int(match.group(3)))
    return [f"{prefix}.{i}" for i in range(start, end + 1)]


def parse_ports(text: str) -> list[int]:
    """Parse a port expression such as "22,80,8000-8100".

    Invalid tokens are ignored, ranges are clamped into 1-65535. Returns a
    deduplicated ascending list, which may be empty.
    """
    ports: set[int] = set()
    for part in (text or "").split(","):
        token = part.strip()
        if not token:
            continue
        if "-" in token:
            lo_text, _, hi_text = token.partition("-")
            try:
                lo, hi = int(lo_text), int(hi_text)
            except ValueError:
                continue
            ports.update(range(max(1, lo), min(65535, hi) + 1))
        else:
            try:
                port = int(token)
            except ValueError:
                continue
            if 1 <= port <= 65535:
                ports.add(port)
    return sorted(ports)
