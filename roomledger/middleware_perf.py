from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("http")

SLOW_REQUEST_MS = 500


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            level = logging.WARNING if duration_ms >= SLOW_REQUEST_MS else logging.DEBUG
            logger.log(
                level,
                "%s %s -> %s in %sms",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
            )
