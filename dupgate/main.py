"""DupGate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health router — delegated to dupgate/health.py
  - /        route  — service discovery root
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()            → app.state.config
  2. create_http_client()     → app.state.http_client (shared, pooled)
  3. build_config_store()     → app.state.config_store
  4. FederatedSearcher(...)   → app.state.searcher (AQL backends over the shared client)
  5. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close HTTP client
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter

from dupgate import __version__
from dupgate.config import Config, load_config
from dupgate.federation.client import create_http_client, make_backend_factory
from dupgate.federation.searcher import FederatedSearcher
from dupgate.federation.store import ConfigStore, FileConfigStore, PlatformConfigStore
from dupgate.gate.router import router as gate_router
from dupgate.health import router as health_router
from dupgate.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


root_router = APIRouter(tags=["root"])


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "DupGate is starting up.",
            },
        )


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "DupGate",
        "tagline": "Federated duplicate-upload gate",
        "gate": "/v1/before-upload",
        "health": "/health",
    }


def build_config_store(config: Config, http_client: httpx.AsyncClient) -> ConfigStore:
    """Return the ConfigStore selected by ``config.store.backend``."""
    if config.store.backend == "file":
        return FileConfigStore(config.store.directory)
    return PlatformConfigStore(
        http_client,
        base_url=config.store.base_url,
        token=config.platform_token,
    )


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("DupGate starting up...")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    # load_config() raises SystemExit on an invalid file, before ready=True.
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Shared HTTP client ────────────────────────────────────────────
    http_client: httpx.AsyncClient = create_http_client(config.search.timeout_s)
    app.state.http_client = http_client

    # ── Step 3: Configuration store ──────────────────────────────────────────
    app.state.config_store = build_config_store(config, http_client)

    # ── Step 4: Federated searcher ───────────────────────────────────────────
    app.state.searcher = FederatedSearcher(
        make_backend_factory(
            http_client,
            token=config.platform_token,
            scheme=config.search.scheme,
        ),
        result_limit=config.search.result_limit,
        max_concurrency=config.search.max_concurrency,
    )
    logger.info(
        "Gate pipeline wired",
        store_backend=config.store.backend,
        config_key=config.store.key,
        max_concurrency=config.search.max_concurrency,
        has_token=config.platform_token is not None,
    )

    # ── Step 5: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info("DupGate ready")

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("DupGate shutting down...")
    app.state.ready = False

    try:
        await http_client.aclose()
        logger.info("HTTP client closed")
    except Exception as exc:  # noqa: BLE001
        logger.warning("HTTP client close error (non-fatal)", error=str(exc))

    logger.info("DupGate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the DupGate FastAPI application.

    Call this function directly in tests to get an isolated app instance.
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="DupGate",
        description="Federated duplicate-upload gate",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health returns 503 for anything arriving before startup completes.
    application.state.ready = False

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(gate_router, dependencies=[Depends(require_ready)])

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


app = create_app()
