"""Bearer credential handling shared by REST and realtime entry points."""

from .jwt_handler import JWTHandler, create_access_token, resolve_identity
from .permissions import Identity, Role

__all__ = ["JWTHandler", "Identity", "Role", "create_access_token", "resolve_identity"]
