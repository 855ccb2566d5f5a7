from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

from oltpoller.core.config import settings
from oltpoller.core.logging import get_logger
from oltpoller.core.middleware import RequestIDMiddleware
from oltpoller.core.database import AsyncSessionLocal, check_db_health, close_db
from oltpoller.core.exceptions import ProcessSpecError
from oltpoller.core.influx import check_influx_health, close_influx, write_points
from oltpoller.core.process import load_process_spec
from oltpoller.core.redis_client import check_redis_health, close_redis, get_redis_client
from oltpoller.api.v1 import events, metrics, polling, status as status_api
from oltpoller.services.polling_service import PollingService
from oltpoller.services.publisher import Publisher
from oltpoller.services.sinks import DatabaseSink, InfluxSink, RedisSink


logger = get_logger(__name__)


async def build_service() -> PollingService:
    """Polling service with the MySQL, Redis and InfluxDB sinks."""
    redis = await get_redis_client()
    publisher = Publisher(sinks=[
        DatabaseSink(AsyncSessionLocal),
        RedisSink(redis, settings.events_channel, settings.state_cache_ttl_s),
        InfluxSink(write_points),
    ])
    return PollingService(session_factory=AsyncSessionLocal, publisher=publisher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.
    Runs on startup and shutdown.
    """
    # Startup
    logger.info("service_starting", env=settings.app_env, port=settings.port)

    try:
        app.state.process_spec = load_process_spec(settings.process_file)
    except ProcessSpecError as e:
        app.state.process_spec = None
        logger.error("process_spec_invalid", error=str(e))

    # Verify dependencies
    db_ok = await check_db_health()
    redis_ok = await check_redis_health()
    influx_ok = await check_influx_health()

    if not db_ok:
        logger.error("startup_failed", reason="Database connection failed")
    if not redis_ok:
        logger.warning("startup_warning", reason="Redis connection failed")
    if not influx_ok:
        logger.warning("startup_warning", reason="InfluxDB connection failed")

    if getattr(app.state, "service", None) is None:
        app.state.service = await build_service()
    service: PollingService = app.state.service
    await service.start()

    logger.info(
        "service_started",
        database=db_ok,
        redis=redis_ok,
        influxdb=influx_ok,
        devices=len(service.registry),
        polling_interval_ms=settings.polling_interval_ms,
    )

    yield

    # Shutdown
    logger.info("service_shutting_down")
    await service.stop()
    await close_redis()
    await close_influx()
    await close_db()
    logger.info("service_shutdown_complete")


def create_app(service: Optional[PollingService] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        service: Pre-built polling service (tests); built from settings on startup when omitted
    """
    app = FastAPI(
        title="OLT Polling Server",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url=None,
        lifespan=lifespan
    )
    app.state.service = service
    app.state.process_spec = None

    app.add_middleware(RequestIDMiddleware)

    app.include_router(status_api.router, prefix="/api")
    app.include_router(polling.router, prefix="/api")
    app.include_router(events.router, prefix="/api")
    app.include_router(metrics.router)

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.
        The process is healthy while the scheduler runs; dependencies are informational.
        """
        current = app.state.service
        db_healthy = await check_db_health()
        redis_healthy = await check_redis_health()
        influx_healthy = await check_influx_health()

        return {
            "status": "ok" if current is not None else "starting",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "is_polling": current.scheduler.poll_all_running if current else False,
            "scheduler_running": current.scheduler.running if current else False,
            "dependencies": {
                "mysql": "ok" if db_healthy else "error",
                "redis": "ok" if redis_healthy else "error",
                "influxdb": "ok" if influx_healthy else "error"
            }
        }

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors (422)."""
        errors = [
            {
                "field": ".".join(str(x) for x in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            }
            for error in exc.errors()
        ]

        logger.warning("validation_error", path=request.url.path, errors=errors)

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "details": errors
                }
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Handle all unhandled exceptions.
        Logs full traceback and returns 500 error.
        """
        request_id = structlog.contextvars.get_contextvars().get("request_id", "unknown")

        logger.error(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "An unexpected error occurred",
                    "request_id": request_id
                }
            }
        )

    return app
