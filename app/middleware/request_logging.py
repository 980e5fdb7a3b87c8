"""Per-request access logging middleware."""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and latency for every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                f"HTTP {request.method} {request.url.path} raised after {elapsed_ms:.1f} ms"
            )
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        # Skip health check
        level = logging.DEBUG if request.url.path == "/health" else logging.INFO
        logger.log(
            level,
            f"HTTP {request.method} {request.url.path} responded {response.status_code} "
            f"in {elapsed_ms:.1f} ms",
        )
        return response
