"""Probe registry — loads declarative probes from probes.yaml.

Example::

    probes:
      - name: upstream-api
        type: http
        url: https://api.example.com/health
        timeout_ms: 2000
      - name: postgres-port
        type: tcp
        address: db.internal:5432
      - name: resolver
        type: dns
        hostname: example.com
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .engine import ConfigurationError, Probe
from .probes import dns_resolve_check, http_get_check, tcp_dial_check

logger = logging.getLogger(__name__)

REGISTRY_PATH = Path("probes.yaml")


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass
class ProbeDef:
    """Definition of a single probe from the registry."""

    name: str
    type: str  # http | tcp | dns
    url: str = ""
    address: str = ""  # host:port, for tcp
    hostname: str = ""
    timeout_ms: int = 2_000

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000


def _build_http(d: ProbeDef) -> Probe:
    if not d.url:
        raise ConfigurationError(f"Probe '{d.name}': http probe needs 'url'")
    return Probe(name=d.name, timeout=d.timeout, run=http_get_check(d.url, d.timeout))


def _build_tcp(d: ProbeDef) -> Probe:
    if not d.address:
        raise ConfigurationError(f"Probe '{d.name}': tcp probe needs 'address'")
    try:
        run = tcp_dial_check(d.address, d.timeout)
    except ValueError as e:
        raise ConfigurationError(f"Probe '{d.name}': {e}") from e
    return Probe(name=d.name, timeout=d.timeout, run=run)


def _build_dns(d: ProbeDef) -> Probe:
    if not d.hostname:
        raise ConfigurationError(f"Probe '{d.name}': dns probe needs 'hostname'")
    return Probe(name=d.name, timeout=d.timeout, run=dns_resolve_check(d.hostname, d.timeout))


# Dispatcher
PROBE_BUILDERS = {
    "http": _build_http,
    "tcp": _build_tcp,
    "dns": _build_dns,
}


# ── Registry ─────────────────────────────────────────────────────────────────


class ProbeRegistry:
    """Loads and caches probe definitions from a YAML file."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or REGISTRY_PATH
        self._defs: list[ProbeDef] = []
        self._loaded = False

    def load(self, force: bool = False) -> list[ProbeDef]:
        """Parse the registry file. A missing file yields no probes."""
        if self._loaded and not force:
            return self._defs

        self._defs = []
        if not self._path.exists():
            logger.warning("Probe registry not found: %s", self._path)
            self._loaded = True
            return self._defs

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {self._path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{self._path}: top level must be a mapping")

        for entry in raw.get("probes") or []:
            self._defs.append(_parse_probe_def(entry))

        self._loaded = True
        logger.info("Loaded %d probes from %s", len(self._defs), self._path)
        return self._defs

    @property
    def definitions(self) -> list[ProbeDef]:
        return self.load()

    def build_probes(self) -> list[Probe]:
        """Turn every definition into a runnable Probe."""
        probes = []
        for d in self.definitions:
            builder = PROBE_BUILDERS.get(d.type)
            if builder is None:
                raise ConfigurationError(f"Probe '{d.name}': unknown probe type '{d.type}'")
            probes.append(builder(d))
        return probes


# ── Parsers ──────────────────────────────────────────────────────────────────


def _parse_probe_def(raw: Any) -> ProbeDef:
    if not isinstance(raw, dict) or not raw.get("name"):
        raise ConfigurationError(f"Malformed probe entry (needs 'name'): {raw!r}")
    timeout_ms = raw.get("timeout_ms", 2_000)
    if not isinstance(timeout_ms, int) or timeout_ms <= 0:
        raise ConfigurationError(f"Probe '{raw['name']}': timeout_ms must be a positive integer")
    return ProbeDef(
        name=str(raw["name"]),
        type=raw.get("type", "http"),
        url=raw.get("url", ""),
        address=raw.get("address", ""),
        hostname=raw.get("hostname", ""),
        timeout_ms=timeout_ms,
    )
