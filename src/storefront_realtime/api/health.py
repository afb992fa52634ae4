"""Health check API endpoints."""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from storefront_realtime import __version__

from ..server.services import RealtimeServices
from .deps import get_services

health_router = APIRouter()


@health_router.get("/health")
async def health_check(services: RealtimeServices = Depends(get_services)):
    """Liveness with a summary of the realtime layer."""
    return {
        "status": "healthy",
        "version": __version__,
        "service": "storefront-realtime",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": services.settings.environment,
        "store_backend": services.settings.store_backend,
        "delivery_backend": services.settings.delivery_backend,
        "connections": services.registry.get_stats(),
    }


@health_router.get("/ready")
async def readiness_check(services: RealtimeServices = Depends(get_services)):
    """Readiness: Redis must answer when a Redis backend is configured."""
    checks = {"redis": "not_configured"}
    if services.redis_client is not None:
        try:
            await services.redis_client.ping()
            checks["redis"] = "ok"
        except RedisError as e:
            checks["redis"] = f"error: {e}"
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "checks": checks},
            )
    return {"status": "ready", "checks": checks}
