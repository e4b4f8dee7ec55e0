"""FastAPI application wiring for the reference code services.

The lexical index, resolver, location inferencer and importer are built once
in the lifespan hook (see ``app.api.bootstrap``) and shared by every request.
"""

# ruff: noqa: E402

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse


def _truthy_env(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


# Prefer explicitly-exported environment variables over values in `.env`.
# Tests can opt out by setting `REFCODE_SKIP_DOTENV=1`.
if not _truthy_env("REFCODE_SKIP_DOTENV"):
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[2] / ".env", override=False)

from app.api.bootstrap import StartupBootstrap
from app.api.routes.codes import router as codes_router
from app.api.routes.datasets import router as datasets_router
from app.api.routes.location import router as location_router
from app.api.routes.metrics import router as metrics_router
from app.codes.master import MasterCodeLoader
from app.domain.reference_store.repository import ReferenceStore
from observability.logging_config import configure_logging


def create_app(
    store: ReferenceStore | None = None,
    loader: MasterCodeLoader | None = None,
) -> FastAPI:
    """Build the API. ``store``/``loader`` replace the environment-selected ones."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Startup builds and initializes the lookup services; shutdown drops the index."""
        bootstrap = StartupBootstrap(app, store=store, loader=loader)
        await bootstrap.startup()
        try:
            yield
        finally:
            await bootstrap.shutdown()

    application = FastAPI(
        title="Reference Code API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS (dev-friendly defaults)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(codes_router, prefix="/api/v1", tags=["codes"])
    application.include_router(location_router, prefix="/api/v1", tags=["location"])
    application.include_router(datasets_router, prefix="/api/v1", tags=["datasets"])
    application.include_router(metrics_router, tags=["metrics"])

    @application.get("/health")
    async def health(request: Request) -> dict[str, bool]:
        # Liveness probe: keep payload stable and minimal.
        # Readiness is exposed via `/ready`.
        return {"ok": True}

    @application.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        if bool(getattr(request.app.state, "index_ready", False)):
            index = request.app.state.lexical_index
            return JSONResponse(
                status_code=200,
                content={"status": "ok", "ready": True, "index_entries": len(index)},
            )

        index_error = getattr(request.app.state, "index_error", None)
        content: dict[str, Any] = {"status": "warming", "ready": False}
        if index_error:
            content["status"] = "error"
            content["error"] = str(index_error)
            return JSONResponse(status_code=503, content=content)

        return JSONResponse(status_code=503, content=content, headers={"Retry-After": "10"})

    return application


configure_logging()
app = create_app()
