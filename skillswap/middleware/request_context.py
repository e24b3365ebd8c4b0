"""Per-request correlation id and access log line.

The id comes from the caller's X-Request-ID header when present,
otherwise a fresh UUID.  It is kept in ``request_id_var`` so that service
code several awaits deep, the error handlers in main.py and the log
handler filter all see the id of the request they are running for.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from skillswap.core.logging import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

__all__ = ["REQUEST_ID_HEADER", "RequestContextMiddleware", "request_id_var"]


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request_id_var.set(request_id)
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": elapsed_ms,
        }
        logger.info(
            "%(method)s %(path)s -> %(status_code)d (%(duration_ms).1fms)",
            context,
            extra=context,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
