"""HTTP middleware for request/response logging."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status and duration.

    5xx at ERROR, 4xx and slow requests at WARNING, the rest at INFO.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        method, path, status = request.method, request.url.path, response.status_code
        if status >= 500:
            logger.error("%s %s -> %d (%.1fms)", method, path, status, duration_ms)
        elif status >= 400 or duration_ms > SLOW_REQUEST_THRESHOLD_MS:
            logger.warning("%s %s -> %d (%.1fms)", method, path, status, duration_ms)
        else:
            logger.info("%s %s -> %d (%.1fms)", method, path, status, duration_ms)
        return response
