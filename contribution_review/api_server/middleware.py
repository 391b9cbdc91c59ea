"""
HTTP middleware: request/response logging, correlation IDs, timing.

Authentication and admission control are route dependencies
(see dependencies.current_principal), not middleware.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request

from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def install_request_logging(app: FastAPI) -> None:
    """Bind a request_id to every log line of a request and log one http_request event per response."""

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response
