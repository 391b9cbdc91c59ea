"""
FastAPI server for contribution review.

create_app() builds the ASGI app: routers under /api, /health, request
logging, and one exception handler that maps ContributionReviewError
subclasses to {"detail", "code"} JSON with the error's HTTP status.
Config via env (see contribution_review.config).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from contribution_review import __version__
from contribution_review.api_server.coins import router as coins_router
from contribution_review.api_server.contributions import router as contributions_router
from contribution_review.api_server.dependencies import ServiceContainer, get_services
from contribution_review.api_server.middleware import install_request_logging
from contribution_review.api_server.users import router as users_router
from contribution_review.core.exceptions import (
    ContributionReviewError,
    RateLimitedError,
    StorageError,
)
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

GENERIC_STORAGE_MESSAGE = "Internal storage error, please retry later"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("api_starting", version=__version__)
    yield
    logger.info("api_stopped")


def _error_response(request: Request, exc: ContributionReviewError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.exception(
            "storage_error",
            path=request.url.path,
            method=request.method,
            error=exc.message,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": GENERIC_STORAGE_MESSAGE, "code": exc.code},
        )

    content: dict[str, Any] = {"detail": exc.message, "code": exc.code}
    headers: dict[str, str] | None = None
    if isinstance(exc, RateLimitedError):
        content["retryAfter"] = exc.retry_after_sec
        headers = {"Retry-After": str(exc.retry_after_sec)}
    current_status = getattr(exc, "current_status", None)
    if current_status is not None:
        content["currentStatus"] = current_status
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Build the app. Pass `services` to use pre-wired collaborators (tests)."""
    app = FastAPI(
        title="Contribution Review API",
        description="Contribution proof submission, review workflow and point crediting.",
        version=__version__,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.include_router(contributions_router, prefix="/api")
    app.include_router(coins_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    install_request_logging(app)

    @app.exception_handler(ContributionReviewError)
    def service_error_handler(request: Request, exc: ContributionReviewError) -> JSONResponse:
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed request bodies or query params are 400 like every other validation failure."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        detail = f"{field}: {first.get('msg', 'invalid request')}" if field else "invalid request"
        logger.info("request_rejected", path=request.url.path, code="validation_error", error=detail)
        return JSONResponse(status_code=400, content={"detail": detail, "code": "validation_error"})

    @app.get("/health")
    def health(request: Request) -> dict[str, str]:
        """Liveness probe: API is up and the services are wired."""
        get_services(request)
        return {"status": "ok"}

    return app


app = create_app()
