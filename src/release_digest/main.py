"""FastAPI application for release-digest.

Endpoints:
- GET  /health                      - Health check for load balancers
- GET  /api/releases?repo=          - Merged release list (35 newest)
- POST /api/weekly-summary          - Run the weekly recap once
- GET  /api/weekly-summary/{key}    - A stored recap, e.g. weekly-summary-2024-19
- POST /api/weekly-linear-summary   - Run the Linear team recap once

The aggregator, key-value store and summarizer are created once in the
lifespan and kept on app.state. Errors map to JSON bodies:
ConfigError -> 500 configuration_error, UpstreamError -> 502
upstream_unavailable.

To run locally:
    uvicorn release_digest.main:app --reload --port 8000
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from release_digest import __version__
from release_digest.aggregator import ReleaseAggregator
from release_digest.config import Settings, load_sources_config
from release_digest.errors import ConfigError, UpstreamError
from release_digest.kv import KVStore, create_kv_store
from release_digest.linear_summary import LinearSummarizer, build_linear_summarizer
from release_digest.logging_config import get_logger, setup_logging
from release_digest.schemas import LinearSummaryResult, Release, WeeklySummaryResult
from release_digest.summary import WeeklySummarizer, build_summarizer

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Application Lifespan (startup/shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load configuration and build the long-lived collaborators once."""
    settings = Settings.from_env()
    setup_logging(settings.environment, settings.log_level)

    sources = load_sources_config(settings.sources_config)
    aggregator = ReleaseAggregator(sources)
    kv = create_kv_store(settings.kv_path)

    app.state.settings = settings
    app.state.aggregator = aggregator
    app.state.kv = kv
    app.state.summarizer = build_summarizer(settings, aggregator, kv)
    app.state.linear_summarizer = build_linear_summarizer(settings, kv)
    logger.info(
        "app_started",
        environment=settings.environment,
        groups=len(sources.groups),
        kv="file" if settings.kv_path else "memory",
    )
    yield


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Release Digest",
    description="Aggregated release notes and a weekly recap",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.time()
        response = await call_next(request)
        duration = time.time() - start
        response.headers["X-Process-Time"] = f"{duration:.2f}s"
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=int(duration * 1000),
        )
        return response


app.add_middleware(LoggingMiddleware)

# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("configuration_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": "configuration_error", "detail": str(exc)},
    )


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("upstream_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=502,
        content={"error": "upstream_unavailable", "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/api/releases", response_model=list[Release])
async def list_releases(
    request: Request,
    repo: str | None = Query(None, description="Substring of repo, or kind:substring"),
) -> list[Release]:
    """The merged release list, newest first."""
    aggregator: ReleaseAggregator = request.app.state.aggregator
    return await aggregator.list_releases(repo_filter=repo or None)


@app.post("/api/weekly-summary", response_model=WeeklySummaryResult)
async def run_weekly_summary(request: Request) -> WeeklySummaryResult:
    """Generate, store and post this week's recap."""
    summarizer: WeeklySummarizer = request.app.state.summarizer
    return await summarizer.run()


@app.get("/api/weekly-summary/{key}")
async def get_weekly_summary(key: str, request: Request) -> Any:
    """Return a stored recap; raw strings that are not JSON come back as {"text": ...}."""
    kv: KVStore = request.app.state.kv
    stored = await kv.get(key)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"No summary stored under {key}")
    if isinstance(stored, str):
        try:
            return json.loads(stored)
        except json.JSONDecodeError:
            return {"text": stored}
    return stored


@app.post("/api/weekly-linear-summary", response_model=LinearSummaryResult)
async def run_linear_summary(request: Request) -> LinearSummaryResult:
    """Generate, store and post this week's Linear team recap."""
    summarizer: LinearSummarizer = request.app.state.linear_summarizer
    return await summarizer.run()
