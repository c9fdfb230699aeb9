"""Webhook notifier — posts health status transitions to an HTTP endpoint.

Works with Slack-style incoming webhooks (``text`` field) as well as any
receiver that reads the structured fields.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from healthgate.health.engine import AggregateState, Status

logger = logging.getLogger(__name__)

_EMOJI = {
    Status.UP: "✅",
    Status.DOWN: "🔴",
}


class StatusWebhookNotifier:
    """Async status listener: one POST per transition. Never raises."""

    def __init__(self, webhook_url: str = "", timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self._client = httpx.AsyncClient(timeout=timeout)
        self._enabled = bool(self.webhook_url)

        if self._enabled:
            logger.info("Status webhook notifier enabled")
        else:
            logger.info("Status webhook notifier disabled (no webhook_url)")

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def __call__(self, previous: Status | None, state: AggregateState) -> None:
        await self.notify(previous, state)

    async def notify(self, previous: Status | None, state: AggregateState) -> bool:
        """Send the transition; returns True when the receiver accepted it."""
        if not self._enabled:
            logger.debug("Webhook: skipping send (not configured)")
            return False

        try:
            resp = await self._client.post(self.webhook_url, json=build_payload(previous, state))
            if resp.status_code in (200, 201, 202, 204):
                logger.debug("Webhook: transition sent")
                return True
            logger.warning("Webhook send failed: %d %s", resp.status_code, resp.text[:200])
            return False
        except Exception:
            logger.exception("Webhook send error")
            return False

    async def close(self) -> None:
        await self._client.aclose()


def build_payload(previous: Status | None, state: AggregateState) -> dict[str, Any]:
    before = previous.value if previous else "none"
    text = f"{_EMOJI[state.status]} *Health status* {before} → *{state.status.value}*"
    failures = state.failures
    if failures:
        text += "\n" + "\n".join(f"`{r.name}`: {r.outcome.reason[:200]}" for r in failures)
    return {
        "text": text,
        "status": state.status.value,
        "previous": previous.value if previous else None,
        "checks": state.to_dict()["checks"],
    }
