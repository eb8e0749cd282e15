"""FastAPI application: health, metrics, CORS and the CDN admin API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from starlette.responses import PlainTextResponse, Response

from cdnmirror import __version__
from cdnmirror.api.cdn import router as cdn_router
from cdnmirror.config import settings
from cdnmirror.logging_config import setup_logging
from cdnmirror.observability import setup_opentelemetry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: setup / teardown."""
    setup_logging()
    setup_opentelemetry(app)
    logger.info(
        "CDN mirror API starting",
        extra={"env": settings.APP_ENV, "enabled": settings.CDN_ENABLED},
    )
    yield
    logger.info("CDN mirror API shutting down")


app = FastAPI(
    title="CDN Mirror",
    version=__version__,
    description="Discovers storefront assets, mirrors them to GitHub and serves them via jsDelivr",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cdn_router)


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": "cdn-mirror"}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    try:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        data = generate_latest(registry)
    except ValueError:
        # Not running in multiprocess mode
        data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)
