"""Health check engine — probe models and the concurrent aggregator.

Every probe runs in its own asyncio task, bounded by its own timeout and by
whatever is left of the global budget. Any fault inside a probe becomes a
failed CheckResult for that probe only; evaluation as a whole never raises.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"


class ConfigurationError(ValueError):
    """Raised at setup when the probe set or checker options are invalid."""


# ── Models ───────────────────────────────────────────────────────────────────


class Status(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


@dataclass(frozen=True)
class Outcome:
    """Either success, or failure with a human-readable reason."""

    ok: bool
    reason: str = ""

    @classmethod
    def success(cls) -> Outcome:
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> Outcome:
        return cls(ok=False, reason=reason)


@dataclass(frozen=True)
class Probe:
    """A named, timeout-bounded check.

    ``run`` takes no arguments. Coroutine functions are awaited and cancelled
    on timeout; plain functions are run in the default executor. Returning
    ``None`` or ``True`` means success; raising, returning ``False`` or
    returning anything else that is not an Outcome means failure.
    """

    name: str
    timeout: float  # seconds
    run: Callable[[], Any]


@dataclass(frozen=True)
class CheckResult:
    """Result of a single probe execution."""

    name: str
    outcome: Outcome
    duration_ms: float

    @property
    def status(self) -> Status:
        return Status.UP if self.outcome.ok else Status.DOWN


@dataclass(frozen=True)
class AggregateState:
    """Overall verdict plus every probe's result, in configuration order."""

    status: Status
    results: Mapping[str, CheckResult]
    computed_at: datetime

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results.values() if not r.outcome.ok]

    def to_dict(self) -> dict[str, Any]:
        checks = []
        for r in self.results.values():
            entry: dict[str, Any] = {
                "name": r.name,
                "status": r.status.value,
                "duration_ms": r.duration_ms,
            }
            if not r.outcome.ok:
                entry["error"] = r.outcome.reason
            checks.append(entry)
        return {
            "status": self.status.value,
            "checked_at": self.computed_at.isoformat(),
            "checks": checks,
        }


def overall_status(results: Iterable[CheckResult]) -> Status:
    """DOWN if any result failed, UP otherwise."""
    return Status.DOWN if any(not r.outcome.ok for r in results) else Status.UP


def validate_probes(probes: Iterable[Probe]) -> tuple[Probe, ...]:
    """Check names and timeouts. Raises ConfigurationError."""
    probes = tuple(probes)
    if not probes:
        raise ConfigurationError("At least one probe is required")

    seen: set[str] = set()
    for probe in probes:
        if not probe.name:
            raise ConfigurationError("Probe name must not be empty")
        if probe.name in seen:
            raise ConfigurationError(f"Duplicate probe name: {probe.name}")
        if probe.timeout <= 0:
            raise ConfigurationError(
                f"Probe '{probe.name}' timeout must be positive, got {probe.timeout}"
            )
        seen.add(probe.name)
    return probes


# ── Aggregator ───────────────────────────────────────────────────────────────


class Aggregator:
    """Runs a fixed probe set concurrently and folds the results into one state.

    Holds no state between evaluations beyond its immutable configuration.
    """

    def __init__(self, probes: Iterable[Probe], global_timeout: float) -> None:
        if global_timeout <= 0:
            raise ConfigurationError(
                f"Global timeout must be positive, got {global_timeout}"
            )
        self.probes = validate_probes(probes)
        self.global_timeout = global_timeout

    async def evaluate(self) -> AggregateState:
        """Run every probe and return the aggregate state. Never raises for probe faults."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.global_timeout
        t0 = time.perf_counter()

        tasks = {
            probe.name: asyncio.create_task(
                self._run_probe(probe, deadline), name=f"probe-{probe.name}",
            )
            for probe in self.probes
        }
        _, pending = await asyncio.wait(tasks.values(), timeout=self.global_timeout)

        if pending:
            for task in pending:
                task.cancel()
            # Probes that ignore cancellation can hold us here past the deadline.
            await asyncio.gather(*pending, return_exceptions=True)

        elapsed_ms = round((time.perf_counter() - t0) * 1000, 1)
        results: dict[str, CheckResult] = {}
        for name, task in tasks.items():
            if task in pending or task.cancelled():
                logger.warning("Probe %s exceeded global timeout (%ss)", name, self.global_timeout)
                results[name] = CheckResult(
                    name=name, outcome=Outcome.failure(TIMEOUT_REASON), duration_ms=elapsed_ms,
                )
            else:
                results[name] = task.result()

        return AggregateState(
            status=overall_status(results.values()),
            results=results,
            computed_at=datetime.now(timezone.utc),
        )

    async def _run_probe(self, probe: Probe, deadline: float) -> CheckResult:
        """Run one probe inside its failure boundary."""
        loop = asyncio.get_running_loop()
        budget = min(probe.timeout, deadline - loop.time())
        t0 = time.perf_counter()

        try:
            if budget <= 0:
                raise asyncio.TimeoutError
            outcome = await asyncio.wait_for(_invoke(probe.run), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning("Probe %s timed out after %.3fs", probe.name, budget)
            outcome = Outcome.failure(TIMEOUT_REASON)
        except Exception as e:
            outcome = Outcome.failure(str(e) or type(e).__name__)

        latency = round((time.perf_counter() - t0) * 1000, 1)
        if not outcome.ok and outcome.reason != TIMEOUT_REASON:
            logger.warning("Probe %s failed: %s", probe.name, outcome.reason)
        logger.debug("Probe %s finished in %.1fms (ok=%s)", probe.name, latency, outcome.ok)
        return CheckResult(name=probe.name, outcome=outcome, duration_ms=latency)


def _is_async(run: Callable[[], Any]) -> bool:
    return inspect.iscoroutinefunction(run) or inspect.iscoroutinefunction(
        getattr(run, "__call__", None)
    )


def _to_outcome(returned: Any) -> Outcome:
    if isinstance(returned, Outcome):
        return returned
    if returned is None or returned is True:
        return Outcome.success()
    if returned is False:
        return Outcome.failure("check returned False")
    return Outcome.failure(f"unexpected return value {type(returned).__name__}")


async def _invoke(run: Callable[[], Any]) -> Outcome:
    # Runs inside the task wait_for awaits; SystemExit must not leave it or
    # asyncio re-raises it out of the event loop.
    try:
        if _is_async(run):
            returned = await run()
        else:
            loop = asyncio.get_running_loop()
            returned = await loop.run_in_executor(None, run)
            if inspect.isawaitable(returned):
                returned = await returned
    except SystemExit as e:
        return Outcome.failure(f"exited: {e}" if str(e) else "SystemExit")
    return _to_outcome(returned)
