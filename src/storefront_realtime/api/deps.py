"""Shared request dependencies."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..auth import Identity
from ..server.services import RealtimeServices

security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> RealtimeServices:
    return request.app.state.services


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: RealtimeServices = Depends(get_services),
) -> Identity:
    """Resolve the bearer credential; AuthenticationError becomes a 401."""
    token = credentials.credentials if credentials else None
    return services.jwt_handler.resolve_identity(token)
