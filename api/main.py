"""Athlete Support Agent API service.

FastAPI application exposing the agent over a blocking JSON endpoint and
a Server-Sent Events stream. The orchestrator is built once at startup
(or injected, in tests) and stored on ``app.state``.
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

from api.models import HealthResponse
from api.orchestrators.query_orchestrator import AgentOrchestrator, build_orchestrator
from api.routers import chat as chat_router
from libs.caching.redis_client import close_redis_client
from libs.common.settings import Settings, get_settings

SERVICE_NAME = "athlete-support-agent"
SERVICE_VERSION = "0.1.0"

logger = structlog.get_logger(__name__)


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured JSON logging through the stdlib logging module."""
    logging.basicConfig(format="%(message)s", level=log_level.upper())
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


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[AgentOrchestrator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Service settings; read from the environment when omitted
        orchestrator: Pre-built orchestrator; built from settings at startup when omitted
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = await build_orchestrator(settings)
        logger.info("Athlete support agent started", app_env=settings.app_env)
        try:
            yield
        finally:
            memory = app.state.orchestrator.memory
            if memory is not None:
                await memory.drain()
            await close_redis_client()
            logger.info("Athlete support agent stopped")

    app = FastAPI(
        title="Athlete Support Agent API",
        description="Governance and compliance answers for U.S. Olympic and Paralympic athletes",
        version=SERVICE_VERSION,
        default_response_class=ORJSONResponse,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_methods=["GET", "POST", "OPTIONS"],
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

    @app.get("/healthz", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthResponse:
        """Liveness probe, with circuit breaker states once the agent is loaded."""
        circuits = {}
        current = getattr(request.app.state, "orchestrator", None)
        if current is not None and current.breakers is not None:
            circuits = {name: m.state for name, m in current.breakers.all_metrics().items()}
        return HealthResponse(
            status="healthy",
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
            timestamp=time.time(),
            circuits=circuits,
        )

    return app


if __name__ == "__main__":
    import uvicorn

    # For local development only
    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
