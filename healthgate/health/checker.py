"""Checker — explicit configuration, cached evaluation and status listeners."""

from __future__ import annotations

import dataclasses
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .cache import ResultCache
from .engine import AggregateState, Aggregator, ConfigurationError, Probe, Status
from .probes import (
    GCPauseTracker,
    database_ping_check,
    gc_max_pause_check,
    task_count_check,
    thread_count_check,
)

if TYPE_CHECKING:
    from healthgate.config import Settings

logger = logging.getLogger(__name__)

# listener(previous_status_or_None, new_state); may be sync or async
StatusListener = Callable[[Status | None, AggregateState], Any]


def log_status_change(previous: Status | None, state: AggregateState) -> None:
    """Default listener: one log line per transition."""
    logger.info("Health status changed to %s", state.status.value)


async def _call_listener(listener: StatusListener, previous: Status | None, state: AggregateState) -> None:
    try:
        result = listener(previous, state)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Status listener error")


def compose_listeners(*listeners: StatusListener) -> StatusListener:
    """Fan one transition out to several listeners, isolating each."""

    async def composed(previous: Status | None, state: AggregateState) -> None:
        for listener in listeners:
            await _call_listener(listener, previous, state)

    return composed


# ── Configuration ────────────────────────────────────────────────────────────


@dataclass
class CheckerConfig:
    """Everything a Checker needs. Frozen once a Checker is built from it."""

    cache_ttl: float = 1.0
    global_timeout: float = 10.0
    probes: list[Probe] = field(default_factory=list)
    probe_timeouts: dict[str, float] = field(default_factory=dict)  # name -> seconds
    listener: StatusListener | None = None
    _frozen: bool = field(default=False, init=False, repr=False)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def add_probe(self, probe: Probe) -> None:
        if self._frozen:
            raise ConfigurationError(
                f"Cannot add probe '{probe.name}': checker is already serving"
            )
        self.probes.append(probe)

    def add_database_probe(
        self, connection: Any, timeout: float = 2.0, ping_timeout: float = 1.0,
    ) -> None:
        """Add a ``database`` probe that pings ``connection`` (DB-API)."""
        logger.info("Database health probe enabled")
        self.add_probe(Probe(
            name="database",
            timeout=timeout,
            run=database_ping_check(connection, ping_timeout),
        ))

    def resolved_probes(self) -> list[Probe]:
        """Probes with ``probe_timeouts`` overrides applied."""
        names = {p.name for p in self.probes}
        unknown = sorted(set(self.probe_timeouts) - names)
        if unknown:
            raise ConfigurationError(f"Timeout override for unknown probe(s): {', '.join(unknown)}")
        return [
            dataclasses.replace(p, timeout=self.probe_timeouts[p.name])
            if p.name in self.probe_timeouts else p
            for p in self.probes
        ]


def init_checker_config(
    settings: Settings, gc_tracker: GCPauseTracker | None = None,
) -> CheckerConfig:
    """Default config: TTL + global timeout from settings, runtime probes, log listener."""
    config = CheckerConfig(
        cache_ttl=settings.cache_ttl,
        global_timeout=settings.global_timeout,
        listener=log_status_change,
    )
    config.add_probe(Probe(
        name="task-threshold",
        timeout=settings.task_probe_timeout,
        run=task_count_check(settings.task_threshold),
    ))
    if settings.thread_threshold > 0:
        config.add_probe(Probe(
            name="thread-threshold",
            timeout=settings.task_probe_timeout,
            run=thread_count_check(settings.thread_threshold),
        ))
    if settings.gc_pause_threshold_ms > 0 and gc_tracker is not None:
        config.add_probe(Probe(
            name="gc-max-pause",
            timeout=settings.task_probe_timeout,
            run=gc_max_pause_check(settings.gc_pause_threshold_ms, gc_tracker),
        ))
    return config


# ── Checker ──────────────────────────────────────────────────────────────────


class Checker:
    """Serves the cached aggregate state and reports status transitions."""

    def __init__(self, config: CheckerConfig) -> None:
        self._aggregator = Aggregator(config.resolved_probes(), config.global_timeout)
        self._cache = ResultCache(config.cache_ttl, on_refresh=self._on_refresh)
        self._listener = config.listener
        self._last_status: Status | None = None
        config.freeze()
        logger.info(
            "Health checker ready: %d probes (ttl=%ss, timeout=%ss)",
            len(self._aggregator.probes), config.cache_ttl, config.global_timeout,
        )

    @property
    def probes(self) -> tuple[Probe, ...]:
        return self._aggregator.probes

    @property
    def last_status(self) -> Status | None:
        return self._last_status

    async def check(self) -> AggregateState:
        """Cached aggregate state; re-evaluates at most once per TTL window."""
        return await self._cache.get_or_compute(self._aggregator.evaluate)

    async def _on_refresh(self, state: AggregateState) -> None:
        previous = self._last_status
        self._last_status = state.status
        if previous == state.status:
            return
        if previous is not None:
            logger.warning("Health status transition %s -> %s", previous.value, state.status.value)
        if self._listener is not None:
            await _call_listener(self._listener, previous, state)
