"""Main FastAPI application entry point."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from obanet.api.v1.endpoints.auth.routes import router as auth_router
from obanet.api.v1.endpoints.health.routes import router as health_router
from obanet.core.exceptions import DomainException, RateLimitExceededException
from obanet.infrastructure.resources import AppResources
from obanet.settings import Settings, get_settings
from obanet.utils.clock import Clock, utc_now
from obanet.utils.logging import setup_logging

logger = logging.getLogger("obanet")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events."""
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info("Starting %s (%s)...", settings.app_name, settings.environment)

    resources = AppResources.create(
        settings,
        redis_client=app.state.redis_override,
        clock=app.state.clock,
    )
    try:
        await resources.startup()
    except Exception:
        logger.exception("Startup failed")
        await resources.close()
        raise

    app.state.resources = resources
    logger.info("%s started successfully", settings.app_name)

    yield

    logger.info("Shutting down %s...", settings.app_name)
    await resources.close()
    logger.info("Resources released")


def create_app(
    settings: Optional[Settings] = None,
    *,
    redis_client: Optional[Redis] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to use instead of the environment
        redis_client: Pre-built Redis client, e.g. an in-memory double
        clock: Source of the current time
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Authentication and session lifecycle service of the ObaNet diaspora network",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.redis_override = redis_client
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    app.include_router(health_router, prefix="/api/v1")
    app.include_router(auth_router, prefix="/api/v1")

    register_exception_handlers(app)

    register_middleware(app)

    register_root_routes(app)

    return app


def error_body(
    settings: Settings,
    message: str,
    code: str,
    exc: Exception,
    **extra: Any,
) -> Dict[str, Any]:
    """Build the error envelope shared by every handler."""
    body = {"success": False, "error": message, "code": code}
    body.update({key: value for key, value in extra.items() if value is not None})
    if settings.debug:
        body["type"] = exc.__class__.__name__
    return body


def _validation_detail(error: Dict[str, Any]) -> Dict[str, Any]:
    field = ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0])
    detail = {"field": field, "message": error["msg"]}
    value = error.get("input")
    # never echo secrets or whole request bodies back
    if "password" not in field.lower() and not isinstance(value, (dict, list)):
        detail["value"] = value
    return detail


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""
    settings: Settings = app.state.settings

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        """Handle custom domain exceptions."""
        headers = {}
        if exc.status_code == 401:
            headers["WWW-Authenticate"] = "Bearer"
        if isinstance(exc, RateLimitExceededException):
            headers["Retry-After"] = str(exc.retry_after)
            headers["X-RateLimit-Limit"] = str(exc.limit)
            headers["X-RateLimit-Remaining"] = "0"

        if exc.status_code >= 500:
            logger.error("%s on %s: %s", exc.code, request.url.path, exc.details)
        else:
            logger.info("%s on %s", exc.code, request.url.path)

        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(settings, exc.message, exc.code, exc, **exc.extra()),
            headers=headers or None,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        details = [_validation_detail(error) for error in exc.errors()]
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder(
                error_body(settings, "Validation failed", "VALIDATION_ERROR", exc, details=details)
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions, including unknown routes."""
        if exc.status_code == 404:
            message, code = f"Route {request.url.path} not found", "ROUTE_NOT_FOUND"
        elif exc.status_code == 405:
            message, code = "Method not allowed", "METHOD_NOT_ALLOWED"
        else:
            message, code = str(exc.detail), "HTTP_ERROR"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(settings, message, code, exc),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle user store failures not translated by a repository."""
        logger.error("Database error on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content=error_body(
                settings,
                "Authentication service temporarily unavailable",
                "SERVICE_UNAVAILABLE",
                exc,
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error("Unhandled exception: %s", exc, exc_info=True)

        return JSONResponse(
            status_code=500,
            content=error_body(settings, "Internal server error", "INTERNAL_SERVER_ERROR", exc),
        )


def register_middleware(app: FastAPI) -> None:
    """Register custom middleware."""
    settings: Settings = app.state.settings
    request_logger = logging.getLogger("obanet.requests")

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log all HTTP requests."""
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        request_logger.info("Request started: %s %s from %s", request.method, request.url.path, client_ip)

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        request_logger.info(
            "Request completed: %s %s status=%s time=%.3fs",
            request.method,
            request.url.path,
            response.status_code,
            process_time,
        )

        return response

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        """Add security headers to responses."""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


def register_root_routes(app: FastAPI) -> None:
    """Register service-level routes outside the versioned API."""
    settings: Settings = app.state.settings

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint."""
        return {
            "message": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health", include_in_schema=False)
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "service": "obanet-auth"}


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "obanet.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
