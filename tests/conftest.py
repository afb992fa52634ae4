"""Pytest configuration and fixtures."""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

# Ensure test environment is set before imports
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from storefront_realtime.auth import Identity, JWTHandler, Role
from storefront_realtime.config import Settings
from storefront_realtime.realtime import (
    ChatRelay,
    ConnectionRegistry,
    LocalDelivery,
    NoticeFanout,
    RealtimeGateway,
)
from storefront_realtime.server.main import create_app
from storefront_realtime.server.services import build_services
from storefront_realtime.storage import InMemoryMessageStore, InMemoryNoticeStore


class FakeClock:
    """Controllable clock; every reading is already millisecond aligned."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTransport:
    """Records every frame written to it, like an accepted socket would."""

    def __init__(self, fail: bool = False, stall: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.closed = None
        self.fail = fail
        self.stall = stall

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket is closed")
        if self.stall:
            # A peer whose receive buffer is full never lets the write finish
            await asyncio.Event().wait()
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = (code, reason)

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [f for f in self.sent if f["type"] == event_type]


@pytest.fixture
def test_settings() -> Settings:
    """Settings for an isolated, in-memory instance."""
    return Settings(
        environment="test",
        jwt_secret_key="test-secret-key",
        store_backend="memory",
        delivery_backend="local",
        ws_heartbeat_interval=0,
        ws_send_timeout=0.05,
        typing_timeout_seconds=0.05,
        log_level="WARNING",
    )


@pytest.fixture
def jwt_handler() -> JWTHandler:
    return JWTHandler(secret_key="test-secret-key", algorithm="HS256", access_token_expire_minutes=30)


@pytest.fixture
def make_token(jwt_handler):
    """Mint an access token for a user id and role."""

    def _make(user_id: str, role: str = "user") -> str:
        return jwt_handler.create_access_token({"sub": user_id, "role": role})

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry(max_connections=100, send_timeout=0.05)


@pytest.fixture
def message_store(clock) -> InMemoryMessageStore:
    return InMemoryMessageStore(retention_seconds=12 * 60 * 60, clock=clock)


@pytest.fixture
def notice_store(clock) -> InMemoryNoticeStore:
    return InMemoryNoticeStore(retention_seconds=24 * 60 * 60, clock=clock)


@pytest.fixture
def delivery(registry) -> LocalDelivery:
    return LocalDelivery(registry)


@pytest.fixture
async def relay(message_store, delivery):
    relay = ChatRelay(message_store, delivery, typing_timeout=0.05)
    yield relay
    await relay.shutdown()


@pytest.fixture
def fanout(notice_store, delivery) -> NoticeFanout:
    return NoticeFanout(notice_store, delivery)


@pytest.fixture
def gateway(registry, relay, jwt_handler) -> RealtimeGateway:
    return RealtimeGateway(registry, relay, jwt_handler=jwt_handler, heartbeat_interval=0)


@pytest.fixture
def connect(registry):
    """Register a fake connection and hand back (connection, transport)."""
    counter = {"n": 0}

    def _connect(user_id: str, role: Role = Role.USER, fail: bool = False, stall: bool = False):
        counter["n"] += 1
        transport = FakeTransport(fail=fail, stall=stall)
        connection = registry.register(f"conn-{counter['n']}", Identity(user_id, role), transport)
        return connection, transport

    return _connect


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    mock = AsyncMock()
    mock.ping = AsyncMock(return_value=True)
    mock.eval = AsyncMock(return_value=0)
    mock.zrevrangebyscore = AsyncMock(return_value=[])
    mock.zcount = AsyncMock(return_value=0)
    mock.mget = AsyncMock(return_value=[])
    mock.publish = AsyncMock(return_value=1)

    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.execute = AsyncMock(return_value=[True, 1, 0, True])
    mock.pipeline = MagicMock(return_value=pipe)
    return mock


@pytest.fixture
def app(test_settings):
    """Application wired to in-memory stores."""
    return create_app(settings=test_settings, services=build_services(test_settings))


@pytest.fixture
def client(app):
    """Test client with the lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str, role: str = "user") -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers


@pytest.fixture
def fake_transport():
    """Factory for recording transports."""
    return FakeTransport
