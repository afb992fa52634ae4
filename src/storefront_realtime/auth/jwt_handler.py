"""JWT token handling for authentication."""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from ..config import get_settings
from ..exceptions import AuthenticationError
from ..telemetry.logger import get_logger
from .permissions import Identity, Role

logger = get_logger(__name__)


class JWTHandler:
    """Handles JWT token creation and verification."""

    def __init__(
        self, secret_key: str = None, algorithm: str = None, access_token_expire_minutes: int = None
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.jwt_secret_key.get_secret_value()
        self.algorithm = algorithm or settings.jwt_algorithm
        self.access_token_expire_minutes = (
            access_token_expire_minutes or settings.jwt_access_token_expire_minutes
        )

    def create_access_token(
        self, data: dict[str, Any], expires_delta: timedelta | None = None
    ) -> str:
        """Create JWT access token."""
        to_encode = data.copy()
        now = datetime.now(timezone.utc)

        if expires_delta:
            expire = now + expires_delta
        else:
            expire = now + timedelta(minutes=self.access_token_expire_minutes)

        to_encode.update({"exp": expire, "iat": now, "type": "access"})

        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify JWT token and return payload."""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning("JWT verification failed", error=str(e))
            return None

    def verify_access_token(self, token: str) -> dict[str, Any] | None:
        """Verify access token specifically."""
        payload = self.verify_token(token)

        if payload and payload.get("type") == "access":
            return payload

        return None

    def resolve_identity(self, token: str | None) -> Identity:
        """Turn a bearer credential into an identity or raise AuthenticationError."""
        if not token:
            raise AuthenticationError("Not authorized, token missing")

        payload = self.verify_access_token(token)
        if payload is None:
            raise AuthenticationError("Not authorized, token invalid")

        # Tokens minted by the storefront's login flow carry "id"
        user_id = payload.get("sub") or payload.get("id")
        if not user_id:
            raise AuthenticationError("Token has no subject")

        try:
            role = Role(payload.get("role", Role.USER.value))
        except ValueError:
            raise AuthenticationError("Token carries an unknown role")

        return Identity(user_id=str(user_id), role=role)


def create_access_token(user_id: str, role: Role | str = Role.USER, handler: JWTHandler | None = None, **kwargs) -> str:
    """Create access token with user data."""
    data = {"sub": str(user_id), "role": Role(role).value, **kwargs}
    return (handler or JWTHandler()).create_access_token(data)


def resolve_identity(token: str | None, handler: JWTHandler | None = None) -> Identity:
    """Verify a bearer token and return the identity it names."""
    return (handler or JWTHandler()).resolve_identity(token)
