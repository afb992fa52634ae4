"""FastAPI application factory and server entry point."""

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from storefront_realtime import __version__
from storefront_realtime.config import Settings, get_settings
from storefront_realtime.exceptions import StorefrontRealtimeError
from storefront_realtime.server.services import RealtimeServices, build_services
from storefront_realtime.telemetry.logger import get_logger, request_id_var, setup_logging

logger = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID to all requests."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.time()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        process_time = time.time() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(
            "Request processed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=process_time,
        )
        return response


def _error_body(request: Request, status_code: int, error: str, **extra) -> dict:
    return {
        "error": error,
        "status_code": status_code,
        "request_id": getattr(request.state, "request_id", "unknown"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    services: RealtimeServices = app.state.services
    logger.info("Starting storefront realtime service", version=__version__)
    await services.start()

    yield

    logger.info("Shutting down storefront realtime service")
    await services.stop()


def create_app(
    settings: Optional[Settings] = None, services: Optional[RealtimeServices] = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Realtime chat and notice channel for the storefront",
        version=__version__,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services or build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(StorefrontRealtimeError)
    async def service_exception_handler(request: Request, exc: StorefrontRealtimeError):
        """Handle domain errors raised by handlers and dependencies."""
        logger.warning(
            "Request failed",
            error_code=exc.error_code,
            status_code=exc.status_code,
            path=request.url.path,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request, exc.status_code, exc.message, error_code=exc.error_code, details=exc.details
            ),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        logger.info("Validation error", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(
                request,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                "Validation error",
                error_code="VALIDATION_ERROR",
                details=jsonable_errors(exc),
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error("Unexpected error", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"),
        )

    from storefront_realtime.api.health import health_router
    from storefront_realtime.api.notices import notice_router
    from storefront_realtime.server.routes.websocket import router as ws_router

    app.include_router(notice_router, prefix=f"{settings.api_prefix}/notices", tags=["notices"])
    app.include_router(health_router, tags=["health"])
    app.include_router(ws_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Storefront Realtime API",
            "version": __version__,
            "health": "/health",
            "realtime": "/ws",
            "api": settings.api_prefix,
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def start_server(host: Optional[str] = None, port: Optional[int] = None, reload: Optional[bool] = None):
    """Start the server programmatically; explicit arguments override settings."""
    settings = get_settings()
    if reload is None:
        reload = settings.reload if settings.is_development else False
    uvicorn.run(
        "storefront_realtime.server.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
        reload=reload,
        # The connection registry is process-local
        workers=settings.workers if settings.delivery_backend == "redis" else 1,
        access_log=settings.is_development,
    )


if __name__ == "__main__":
    start_server()
