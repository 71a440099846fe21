"""Newsline chat API - FastAPI application.

Buffered chat and history endpoints under ``/api``, a WebSocket streaming
endpoint at ``/ws`` and health checks. Shared service handles are opened in
the lifespan and released on shutdown.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.dependencies import ChatServices
from api.models import HealthResponse
from api.routers import chat as chat_router
from api.routers import stream as stream_router
from libs.caching.redis_client import health_check as redis_health_check
from libs.common.settings import Settings, get_settings


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level, logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[ChatServices] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use, defaults to the environment
        services: Pre-built services (tests); when omitted they are started
            in the lifespan from ``settings`` and closed on shutdown
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        app.state.services = services or await ChatServices.start(settings)
        logger.info("Server ready", port=settings.port, app_env=settings.app_env)
        try:
            yield
        finally:
            if owned:
                await app.state.services.close()
            logger.info("Server shut down")

    app = FastAPI(
        title="Newsline Chat API",
        description="Retrieval-augmented news chat with persistent sessions",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        debug=settings.debug,
        lifespan=lifespan,
    )

    cors_origins = settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and structured data."""
        start_time = time.time()
        request_id = f"req_{int(start_time * 1000000)}"
        request.state.request_id = request_id

        logger.info(
            "Request started",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            user_agent=request.headers.get("user-agent"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                request_id=request_id,
                error=str(e),
                process_time_ms=round((time.time() - start_time) * 1000, 2),
                exc_info=True,
            )
            raise

        logger.info(
            "Request completed",
            request_id=request_id,
            status_code=response.status_code,
            process_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(chat_router.router, prefix="/api")
    app.include_router(stream_router.router)

    @app.get("/health", response_model=HealthResponse, response_model_exclude_none=True, tags=["Health"])
    async def health(request: Request) -> HealthResponse:
        """Liveness check with the number of open streaming connections.

        Example:
            ```bash
            curl http://localhost:8080/health
            ```
        """
        return HealthResponse(status="ok", connections=request.app.state.services.connections.active)

    @app.get("/readyz", response_model=HealthResponse, tags=["Health"])
    async def readiness(request: Request) -> ORJSONResponse:
        """Readiness check: the session store must answer a ping."""
        services = request.app.state.services
        redis_ok = await redis_health_check(services.redis)
        body = HealthResponse(
            status="ready" if redis_ok else "unavailable",
            connections=services.connections.active,
            details={"redis": "connected" if redis_ok else "unreachable"},
        )
        return ORJSONResponse(status_code=200 if redis_ok else 503, content=body.model_dump())

    return app


if __name__ == "__main__":
    import uvicorn

    # For local development only
    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=get_settings().port,
        log_level="info",
    )
