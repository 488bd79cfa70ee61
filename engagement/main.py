from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from engagement.api.engagement import router as engagement_router
from engagement.api.health import router as health_router
from engagement.api.metrics_endpoint import router as metrics_router
from engagement.core.config import Settings, load_settings
from engagement.core.errors import CacheError, UpstreamError, ValidationError
from engagement.core.logging import setup_logging
from engagement.db.redis import create_redis_client, verify_connection
from engagement.middleware.request_context import (
    RequestContextMiddleware,
    install_request_id_filter,
)
from engagement.services.factory import build_engagement_service
from engagement.services.transport import HttpxTransport, build_http_client

logger = logging.getLogger(__name__)


async def _validation_error(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "message": str(exc)},
    )


async def _upstream_error(_request: Request, exc: UpstreamError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "Activity source request failed",
            "message": exc.message,
            "upstream_status": exc.status,
        },
    )


async def _cache_error(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Cache unavailable", "message": str(exc)},
    )


def create_app(settings: Settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        redis_client = create_redis_client(settings.redis_url)
        await verify_connection(redis_client, settings.redis_url)
        transport = HttpxTransport(build_http_client(settings.api))

        app.state.redis = redis_client
        app.state.engagement_service = build_engagement_service(
            settings, transport=transport, redis_client=redis_client
        )
        try:
            yield
        finally:
            app.state.engagement_service = None
            await transport.aclose()
            if redis_client is not None:
                await redis_client.aclose()
                logger.info("Redis connection pool closed")

    app = FastAPI(
        title="user-activity-engagement",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(UpstreamError, _upstream_error)
    app.add_exception_handler(CacheError, _cache_error)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(engagement_router)
    return app


SETTINGS = load_settings()

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_id_filter()

app = create_app(SETTINGS)

logger.info(
    "user-activity-engagement started  env=%s log_level=%s port=%d api=%s redis=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.api.base_path,
    "on" if SETTINGS.redis_url else "off",
)
