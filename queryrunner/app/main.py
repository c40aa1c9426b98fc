"""
queryrunner HTTP service.

FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from queryrunner import __version__
from queryrunner.app.api import queries_router
from queryrunner.app.dependencies import get_app_settings, get_resolution, load_resolution
from queryrunner.config.settings import AppSettings, get_settings
from queryrunner.errors import (
    BackendError,
    QueryNotFoundError,
    QueryTimeoutError,
    QueryValidationError,
)
from queryrunner.logging_config import setup_logging
from queryrunner.resolver import Resolution

logger = logging.getLogger(__name__)


def _diagnostics_payload(error: QueryValidationError) -> list[dict[str, Any]]:
    return [
        {
            "severity": d.severity.value,
            "summary": d.summary,
            "detail": d.detail,
            "subject": str(d.subject) if d.subject else None,
        }
        for d in error.diagnostics
    ]


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(QueryNotFoundError)
    async def query_not_found(request: Request, exc: QueryNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(QueryValidationError)
    async def query_invalid(request: Request, exc: QueryValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": str(exc), "diagnostics": _diagnostics_payload(exc)},
        )

    @app.exception_handler(BackendError)
    async def backend_failed(request: Request, exc: BackendError) -> JSONResponse:
        if isinstance(exc, QueryTimeoutError):
            logger.warning(f"Query timed out: {exc}")
            return JSONResponse(status_code=504, content={"error": str(exc)})
        logger.error(f"Backend error: {exc}")
        return JSONResponse(status_code=502, content={"error": str(exc)})


def create_app(
    resolution: Resolution | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        resolution: Pre-resolved configuration; loaded at startup when omitted
        settings: Settings (defaults to get_settings())
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Loads the configuration on startup unless one was injected.
        """
        logger.info("Starting query-runner service...")
        if app.state.resolution is None:
            try:
                app.state.resolution = load_resolution(settings)
            except Exception as e:
                logger.error(f"Failed to load configuration: {e}", exc_info=True)
                raise
        logger.info(f"query-runner ready with {len(app.state.resolution.queries)} query(s)")

        yield

        logger.info("Shutting down query-runner service...")

    app = FastAPI(
        title="query-runner",
        description="Run declared queries against AWS data services",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.resolution = resolution
    app.state.settings = settings

    _register_exception_handlers(app)
    app.include_router(queries_router, prefix="/api/v1")

    @app.get("/", tags=["root"])
    async def root(settings: AppSettings = Depends(get_app_settings)) -> dict[str, str]:
        """Root endpoint with service info."""
        return {
            "service": settings.service_name,
            "version": __version__,
            "status": "running",
        }

    @app.get("/health", tags=["health"])
    async def health_check(resolution: Resolution = Depends(get_resolution)) -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "runners": len(resolution.runners),
            "queries": len(resolution.queries),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        "queryrunner.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
