"""
rankedle.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn rankedle.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from rankedle.api.deps import get_service  # noqa: E402
from rankedle.api.routes.admin import router as admin_router  # noqa: E402
from rankedle.api.routes.rankedle import router as rankedle_router  # noqa: E402
from rankedle.errors import (  # noqa: E402
    ForbiddenError,
    NoActivePuzzleError,
    NotFoundError,
    RankedleError,
)

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — build the game service."""
    service = get_service()
    logger.info(
        "Rankedle API started — engine ready (%s), assets in %s",
        service.engine.url.database, service.assets_dir,
    )
    yield
    logger.info("Rankedle API shutting down")


app = FastAPI(
    title="Rankedle API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------
@app.exception_handler(NoActivePuzzleError)
@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: RankedleError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ForbiddenError)
async def _forbidden(request: Request, exc: ForbiddenError):
    return JSONResponse(status_code=403, content={"detail": "Action impossible"})


# Mount routers
app.include_router(rankedle_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
