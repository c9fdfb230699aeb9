"""Health subsystem — probes, aggregator, cache, checker."""

from .cache import CacheEntry, ResultCache
from .checker import Checker, CheckerConfig, StatusListener, compose_listeners, init_checker_config
from .engine import (
    AggregateState,
    Aggregator,
    CheckResult,
    ConfigurationError,
    Outcome,
    Probe,
    Status,
)
from .registry import ProbeDef, ProbeRegistry
