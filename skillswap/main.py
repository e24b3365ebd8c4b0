from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from skillswap.api.analytics import router as analytics_router
from skillswap.api.certificates import router as certificates_router
from skillswap.api.courses import router as courses_router
from skillswap.api.credits import router as credits_router
from skillswap.api.enrollments import router as enrollments_router
from skillswap.api.health import router as health_router
from skillswap.api.lessons import router as lessons_router
from skillswap.api.metrics_endpoint import router as metrics_router
from skillswap.core.config import SETTINGS
from skillswap.core.errors import DomainError
from skillswap.core.logging import setup_logging
from skillswap.db.engine import lifespan_db
from skillswap.db.redis import lifespan_redis
from skillswap.middleware.metrics import MetricsMiddleware
from skillswap.middleware.request_context import (
    RequestContextMiddleware,
    request_id_var,
)

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="skillswap",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) -> Metrics -> route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc.code,
            extra={"error_code": exc.code},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict(), "request_id": request_id_var.get()},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "internal server error",
            },
            "request_id": request_id_var.get(),
        },
    )


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(credits_router)
app.include_router(courses_router)
app.include_router(lessons_router)
app.include_router(enrollments_router)
app.include_router(certificates_router)
app.include_router(analytics_router)

logger.info(
    "skillswap started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
