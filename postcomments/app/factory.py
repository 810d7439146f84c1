"""
Application factory - creates and configures the FastAPI application.
This isolates all initialization logic from main.py.
"""
import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from strawberry.fastapi import GraphQLRouter

from postcomments.dependencies.services import ServiceContainer, get_services, set_services
from postcomments.exceptions.handlers import setup_exception_handlers
from postcomments.graphql_schema import schema
from postcomments.monitoring import MetricsMiddleware, get_health_info, get_metrics, get_request_id
from postcomments.tracing import instrument_fastapi, setup_tracing

logger = logging.getLogger(__name__)


class RequestIDFilter(logging.Filter):
    """Logging filter to add request ID to log records."""

    def filter(self, record):
        if not getattr(record, 'request_id', None):
            record.request_id = get_request_id() or '-'
        return True


def setup_logging(level: Optional[str] = None) -> None:
    """Setup structured logging with request ID support."""
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = logging.StreamHandler()
    handler.addFilter(RequestIDFilter())
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[handler],
        force=True
    )


@asynccontextmanager
async def lifespan(app):
    """Manage application lifespan: build services on startup, release them on shutdown."""
    logger.info("Application starting up...")
    services = get_services()
    logger.info(f"Storage backend: {type(services.storage).__name__}")

    yield

    logger.info("Shutting down...")
    services.close()
    logger.info("Shutdown complete")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Pre-built service container (tests inject one with a chosen backend)

    Returns:
        Configured FastAPI app instance ready to run.
    """
    if services is not None:
        set_services(services)
        setup_logging(services.config.log_level)
    else:
        setup_logging()

    app = FastAPI(
        title="Posts & Comments Service",
        description="Posts with threaded comments over GraphQL",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(MetricsMiddleware)
    setup_exception_handlers(app)

    if os.getenv("OTEL_TRACING_ENABLED", "false").lower() == "true":
        setup_tracing()
        instrument_fastapi(app)

    graphql_app = GraphQLRouter(schema)
    app.include_router(graphql_app, prefix="/graphql")

    @app.get("/health")
    async def health_check():
        """Health check endpoint with storage status."""
        health_info = get_health_info(get_services().storage)
        if health_info["status"] == "unhealthy":
            return JSONResponse(content=health_info, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
        return health_info

    @app.get("/ready")
    def readiness_check():
        """Readiness check; storage failures render through the service error handler."""
        services = get_services()
        services.storage.ping()
        return {"status": "ready", "backend": type(services.storage).__name__}

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)

    return app
