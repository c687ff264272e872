"""Access logging and request correlation for the MentorLink API."""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .request_id import accept_request_id, set_request_id
from .logging_config import get_logger

logger = get_logger(__name__)

# Probes and scrapes would drown out real traffic
QUIET_PATHS = frozenset({"/health", "/ready", "/metrics"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID, echo it back and log the outcome.

    For the realtime stream the "completed" line is written when the
    response headers go out, not when the client disconnects.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = accept_request_id(request.headers.get("X-Request-ID"))
        set_request_id(request_id)
        path = request.url.path
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {path} raised {type(e).__name__}",
                extra={
                    "method": request.method,
                    "path": path,
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
                exc_info=True,
            )
            raise

        response.headers["X-Request-ID"] = request_id
        if path not in QUIET_PATHS:
            logger.info(
                f"{request.method} {path} -> {response.status_code}",
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
        return response
