"""Health endpoint for DupGate.

    GET /health — 503 before ``app.state.ready`` is set, 200 afterwards.

The federation document is NOT fetched here: it is read per upload and a
missing document is a valid (fail-open) state, not an unhealthy one.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from dupgate import __version__
from dupgate.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok",
          "version": "1.0.0",
          "store_backend": "platform" | "file",
          "config_key": "worker-config/blocker-config.json",
          "max_concurrency": 8,
          "result_limit": 1
        }
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "DupGate is starting up.",
            },
        )

    config: Config = request.app.state.config
    return {
        "status": "ok",
        "version": __version__,
        "store_backend": config.store.backend,
        "config_key": config.store.key,
        "max_concurrency": config.search.max_concurrency,
        "result_limit": config.search.result_limit,
    }
