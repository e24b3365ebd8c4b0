"""HTTP request metrics.

Requests are labelled by the route template that matched
(``/v1/courses/{course_id}``), never by the concrete URL, so the number
of series stays bounded by the number of routes.  Requests no route
matched are labelled ``unmatched``.  Prometheus scrapes are skipped.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from skillswap.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

SCRAPE_PATH = "/metrics"
UNMATCHED = "unmatched"


def route_template(request: Request) -> str:
    return getattr(request.scope.get("route"), "path", None) or UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path == SCRAPE_PATH:
            return await call_next(request)

        status = 500
        started = time.perf_counter()
        with ACTIVE_REQUESTS.track_inprogress():
            try:
                response = await call_next(request)
                status = response.status_code
            finally:
                endpoint = route_template(request)
                REQUEST_COUNT.labels(
                    method=request.method, endpoint=endpoint, status_code=str(status)
                ).inc()
                REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(
                    time.perf_counter() - started
                )
        return response
