"""
Request context middleware.

Every response carries ``X-Request-ID`` (an incoming value is reused so a
partner's gateway can correlate calls) and ``X-API-Latency-ms``. Handlers and
exception handlers read the id from ``request.state.request_id``.
"""

import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Health checks hit these every few seconds
UNLOGGED_PATHS = {"/health", "/"}


class RequestContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        latency_ms = int((time.perf_counter() - started) * 1000)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-API-Latency-ms"] = str(latency_ms)

        if request.url.path not in UNLOGGED_PATHS:
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                f"[{request_id}] {request.method} {request.url.path} "
                f"-> {response.status_code} ({latency_ms}ms)"
            )
        return response
