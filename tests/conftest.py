"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from healthgate.health.engine import Probe


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def passing(delay: float = 0.0) -> Callable[[], Any]:
    async def run() -> None:
        if delay:
            await asyncio.sleep(delay)

    return run


def failing(reason: str, delay: float = 0.0) -> Callable[[], Any]:
    async def run() -> None:
        if delay:
            await asyncio.sleep(delay)
        raise ConnectionError(reason)

    return run


class Switch:
    """Probe body whose result can be flipped between evaluations."""

    def __init__(self) -> None:
        self.healthy = True
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1
        if not self.healthy:
            raise RuntimeError("switched off")


@pytest.fixture
def ok_probe() -> Probe:
    return Probe(name="ok", timeout=1.0, run=passing())


@pytest.fixture
def bad_probe() -> Probe:
    return Probe(name="bad", timeout=1.0, run=failing("connection refused"))


@pytest.fixture
def switch() -> Switch:
    return Switch()
