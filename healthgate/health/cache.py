"""TTL cache for aggregate health state with single-flight refresh."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .engine import AggregateState, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    state: AggregateState
    expires_at: float  # clock() seconds


class ResultCache:
    """Holds the most recent AggregateState until it expires.

    Fresh reads take no lock. On a miss, exactly one refresh runs; concurrent
    callers await the same in-flight future. ``ttl=0`` disables caching.
    """

    def __init__(
        self,
        ttl: float,
        on_refresh: Callable[[AggregateState], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl < 0:
            raise ConfigurationError(f"Cache TTL must not be negative, got {ttl}")
        self.ttl = ttl
        self._on_refresh = on_refresh
        self._clock = clock
        self._entry: CacheEntry | None = None
        self._inflight: asyncio.Future[AggregateState] | None = None

    def peek(self) -> AggregateState | None:
        """Return the cached state if still fresh, without computing."""
        entry = self._entry
        if entry is not None and self._clock() < entry.expires_at:
            return entry.state
        return None

    async def get_or_compute(
        self,
        compute: Callable[[], Awaitable[AggregateState]],
        ttl: float | None = None,
    ) -> AggregateState:
        """Return the fresh cached state, or join or start a refresh.

        ``ttl`` overrides the lifetime of the entry this call stores, so it only
        applies when this call starts the refresh. A caller that joins a refresh
        already in flight gets that refresh's state and lifetime; its own
        ``ttl`` is ignored.
        """
        cached = self.peek()
        if cached is not None:
            return cached

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(
                self._refresh(compute, self.ttl if ttl is None else ttl)
            )
        else:
            logger.debug("Joining in-flight health evaluation")
        # A disconnecting caller must not cancel the refresh other callers wait on.
        return await asyncio.shield(self._inflight)

    def invalidate(self) -> None:
        """Drop the cached entry so the next call recomputes."""
        self._entry = None

    async def _refresh(
        self,
        compute: Callable[[], Awaitable[AggregateState]],
        ttl: float,
    ) -> AggregateState:
        try:
            state = await compute()
            self._entry = CacheEntry(state=state, expires_at=self._clock() + ttl)
            if self._on_refresh is not None:
                await self._on_refresh(state)
            return state
        finally:
            self._inflight = None
