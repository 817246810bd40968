"""Main FastAPI application for the Canton Analytics API."""

import math
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from canton_analytics import __version__
from canton_analytics.api.routers import finops, network, reports
from canton_analytics.api.schemas import ErrorDetail, ErrorResponse
from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.scan_client import (
    RateLimitedError,
    ScanApiClient,
    ScanApiError,
    UpstreamRejectedError,
)
from canton_analytics.models.config import AnalyticsConfig
from canton_analytics.utils.time import get_current_utc

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


def _error_response(status_code: int, code: str, message: str,
                    upstream_status: Optional[int] = None,
                    retry_after: Optional[int] = None,
                    headers: Optional[dict] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(
        code=code,
        message=message,
        status=upstream_status,
        retry_after=retry_after,
        timestamp=get_current_utc(),
    ))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def create_app(config: Optional[AnalyticsConfig] = None,
               client: Optional[ScanApiClient] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The app owns one ScanApiClient for its lifetime. When ``client`` is
    passed in, the caller keeps ownership and must close it.
    """
    config = config or (client.config if client else AnalyticsConfig())
    owns_client = client is None
    client = client or ScanApiClient(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Canton Analytics API", nodes=len(config.nodes))
        yield
        logger.info("Shutting down Canton Analytics API")
        if owns_client:
            await client.aclose()

    app = FastAPI(
        title="Canton Analytics API",
        description="Read-only validator, governance and FinOps analytics for the Canton Network",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.client = client
    app.state.service = ScanDataService(client, config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Request logging middleware."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info("Request completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    process_time=process_time)
        response.headers["X-Process-Time"] = str(process_time)
        return response

    app.include_router(network.router, prefix=API_PREFIX, tags=["network"])
    app.include_router(finops.router, prefix=API_PREFIX, tags=["finops"])
    app.include_router(reports.router, prefix=API_PREFIX, tags=["reports"])

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        retry_after = exc.retry_after if exc.retry_after is not None else 60
        logger.warning("Upstream rate limited", path=request.url.path, retry_after=retry_after)
        return _error_response(
            429, exc.code, exc.message,
            upstream_status=exc.status,
            retry_after=retry_after,
            headers={"Retry-After": str(int(math.ceil(retry_after)))},
        )

    @app.exception_handler(UpstreamRejectedError)
    async def rejected_handler(request: Request, exc: UpstreamRejectedError):
        logger.warning("Upstream rejected request", path=request.url.path, status=exc.status)
        status_code = exc.status if exc.status and 400 <= exc.status < 500 else 502
        return _error_response(status_code, exc.code, exc.message, upstream_status=exc.status)

    @app.exception_handler(ScanApiError)
    async def upstream_error_handler(request: Request, exc: ScanApiError):
        logger.error("Upstream unavailable", path=request.url.path, error=exc.message, status=exc.status)
        return _error_response(502, exc.code, exc.message, upstream_status=exc.status)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions."""
        logger.warning("HTTP exception",
                       status_code=exc.status_code,
                       detail=exc.detail,
                       path=request.url.path)
        return _error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail),
                               headers=getattr(exc, "headers", None))

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Canton Analytics API",
            "version": __version__,
            "status": "operational",
            "endpoints": {
                "health": f"{API_PREFIX}/health",
                "nodes": f"{API_PREFIX}/nodes",
                "validators": f"{API_PREFIX}/validators",
                "finops": f"{API_PREFIX}/validators/{{validator_id}}/finops",
                "votes": f"{API_PREFIX}/governance/votes",
                "updates": f"{API_PREFIX}/updates",
                "activity": f"{API_PREFIX}/activity",
                "report": f"{API_PREFIX}/reports/featured-app",
            },
        }

    return app
