"""Health endpoint — serves the checker's cached aggregate state.

  GET {path}  — 200 when UP, 503 when DOWN; same body shape either way:
                {"status", "checked_at", "checks": [{"name", "status", "duration_ms", "error"?}]}
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from healthgate.health.engine import AggregateState, Status

logger = logging.getLogger(__name__)

STATUS_CODES = {
    Status.UP: 200,
    Status.DOWN: 503,
}


def state_response(state: AggregateState) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_CODES[state.status],
        content=state.to_dict(),
        headers={"Cache-Control": "no-cache"},
    )


def create_health_router(path: str = "/health") -> APIRouter:
    """Router exposing the health check at ``path``."""
    health_router = APIRouter()

    @health_router.get(path, name="health")
    async def health(request: Request) -> JSONResponse:
        checker = request.app.state.checker
        state = await checker.check()
        if state.status is Status.DOWN:
            logger.debug("Health query answered DOWN: %s", [r.name for r in state.failures])
        return state_response(state)

    return health_router
