"""
FastAPI application entry point for the restaurant back office.

Wires configuration, logging, the shared rate limiter and notification
channel, error translation for the service error taxonomy, health probes and
the v1 routers.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from backoffice.api.v1 import api_router
from backoffice.cache.redis_client import close_redis_client, get_redis_client
from backoffice.core.config import Settings, get_settings
from backoffice.core.exceptions import RateLimited, ServiceError, ValidationError
from backoffice.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from backoffice.database.connection import check_database_health, close_database_connections
from backoffice.services.notifications.channels import LogNotificationChannel
from backoffice.services.rate_limit.limiter import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitStore,
    RedisRateLimitStore,
)

configure_logging()
logger = get_logger(__name__)


async def build_rate_limit_store(settings: Settings) -> RateLimitStore:
    if settings.rate_limit_backend == "redis":
        return RedisRateLimitStore.from_client(await get_redis_client())
    if settings.is_production:
        logger.warning(
            "In-memory rate limiting in production is only correct with a single worker"
        )
    return InMemoryRateLimitStore()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared services on startup and release connections on shutdown."""
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
        rate_limit_backend=settings.rate_limit_backend,
    )

    with log_performance(logger, "application_startup"):
        app.state.rate_limiter = RateLimiter(
            await build_rate_limit_store(settings),
            limit=settings.order_rate_limit_requests,
            window_seconds=settings.order_rate_limit_window_seconds,
            scope="orders",
        )
        app.state.notifier = LogNotificationChannel()

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await close_redis_client()
        await close_database_connections()


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Order lifecycle and ingredient stock ledger for the restaurant back office",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Retry-After"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Assign the correlation id, time the request and clear log context."""
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    finally:
        clear_context()


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """
    Translate service errors into HTTP responses.

    Client-correctable errors keep their message; server-side failures are
    logged with the request id and answered generically.
    """
    if exc.status_code >= 500:
        logger.error(
            "Service error",
            method=request.method,
            path=request.url.path,
            error_code=exc.code,
            error=exc.message,
            **exc.context,
        )
    else:
        logger.info(
            "Request rejected",
            method=request.method,
            path=request.url.path,
            error_code=exc.code,
            status_code=exc.status_code,
        )

    content = {
        "error": exc.code,
        "message": exc.message if exc.expose_message else "An unexpected error occurred",
        "request_id": get_request_id(),
    }
    headers = None
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=exc.errors(),
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
            "request_id": get_request_id(),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected exceptions and answer without internal details."""
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "request_id": get_request_id(),
        },
    )


@app.get("/health", tags=["Health"], summary="Liveness probe")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/ready", tags=["Health"], summary="Readiness probe")
async def readiness_check():
    """Check the database and, when it backs rate limiting, Redis."""
    database_ok = await check_database_health(max_retries=1)
    checks = {"database": "healthy" if database_ok else "unhealthy"}

    ready = database_ok
    if settings.rate_limit_backend == "redis":
        try:
            redis_ok = await (await get_redis_client()).health_check()
        except RedisError as e:
            logger.warning("Redis connectivity check failed", error=str(e))
            redis_ok = False
        checks["redis"] = "healthy" if redis_ok else "unhealthy"
        ready = ready and redis_ok

    if not ready:
        logger.warning("Readiness check failed", **checks)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", **checks},
        )

    return {"status": "ready", **checks}


app.include_router(api_router, prefix=settings.api_v1_prefix)
