"""Probe library — TCP, HTTP, DNS, database and runtime checks.

Each factory returns a zero-argument coroutine function suitable for
``Probe.run``. A check passes by returning and fails by raising; the
aggregator turns the exception message into the failure reason.
"""

from __future__ import annotations

import asyncio
import gc
import logging
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

CheckFunc = Callable[[], Awaitable[None]]

# Same depth as the runtime's recent-pause ring buffer.
_GC_PAUSE_HISTORY = 256


class ProbeError(Exception):
    """Raised by built-in probes with a human-readable failure reason."""


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Address must be host:port, got {address!r}")
    return host.strip("[]"), int(port)


# ── Network ──────────────────────────────────────────────────────────────────


def tcp_dial_check(address: str, timeout: float) -> CheckFunc:
    """Fails unless a TCP connection to ``host:port`` can be opened."""
    host, port = _split_address(address)

    async def check() -> None:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        writer.close()
        await writer.wait_closed()

    return check


def http_get_check(url: str, timeout: float) -> CheckFunc:
    """GET ``url``; fails on transport errors or any status other than 200.

    Redirects are never followed.
    """

    async def check() -> None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=False) as client:
            resp = await client.get(url)
        if resp.status_code != 200:
            raise ProbeError(f"returned status {resp.status_code}")

    return check


def dns_resolve_check(host: str, timeout: float) -> CheckFunc:
    """Fails unless ``host`` resolves to at least one address."""

    async def check() -> None:
        loop = asyncio.get_running_loop()
        addrs = await asyncio.wait_for(loop.getaddrinfo(host, None), timeout=timeout)
        if not addrs:
            raise ProbeError("could not resolve host")

    return check


# ── Database ─────────────────────────────────────────────────────────────────


def _ping(connection: Any) -> None:
    cursor = connection.cursor()
    try:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    finally:
        cursor.close()


def database_ping_check(connection: Any, timeout: float) -> CheckFunc:
    """Runs ``SELECT 1`` on a DB-API connection in the default executor."""

    async def check() -> None:
        if connection is None:
            raise ProbeError("database is not configured")
        loop = asyncio.get_running_loop()
        await asyncio.wait_for(loop.run_in_executor(None, _ping, connection), timeout=timeout)

    return check


# ── Runtime ──────────────────────────────────────────────────────────────────


def task_count_check(threshold: int) -> CheckFunc:
    """Fails if too many asyncio tasks are alive (likely a leak)."""

    async def check() -> None:
        count = len(asyncio.all_tasks())
        if count > threshold:
            raise ProbeError(f"too many tasks ({count} > {threshold})")

    return check


def thread_count_check(threshold: int) -> CheckFunc:
    """Fails if too many threads are alive."""

    async def check() -> None:
        count = threading.active_count()
        if count > threshold:
            raise ProbeError(f"too many threads ({count} > {threshold})")

    return check


class GCPauseTracker:
    """Records recent garbage collector pause durations via ``gc.callbacks``."""

    def __init__(self, history: int = _GC_PAUSE_HISTORY) -> None:
        self.pauses_ms: deque[float] = deque(maxlen=history)
        self._started: float | None = None
        self._installed = False

    def _callback(self, phase: str, info: dict[str, Any]) -> None:
        if phase == "start":
            self._started = time.perf_counter()
        elif phase == "stop" and self._started is not None:
            self.pauses_ms.append((time.perf_counter() - self._started) * 1000)
            self._started = None

    def install(self) -> None:
        if not self._installed:
            gc.callbacks.append(self._callback)
            self._installed = True
            logger.debug("GC pause tracker installed")

    def uninstall(self) -> None:
        if self._installed:
            gc.callbacks.remove(self._callback)
            self._installed = False
            logger.debug("GC pause tracker removed")

    def max_pause_ms(self) -> float:
        return max(self.pauses_ms, default=0.0)


def gc_max_pause_check(threshold_ms: float, tracker: GCPauseTracker) -> CheckFunc:
    """Fails if any recent collection paused longer than ``threshold_ms``."""

    async def check() -> None:
        worst = tracker.max_pause_ms()
        if worst > threshold_ms:
            raise ProbeError(
                f"recent GC cycle took {worst:.1f}ms > {threshold_ms:.1f}ms"
            )

    return check
