"""Tests for the connection registry."""

import asyncio

import pytest

from storefront_realtime.auth import Identity, Role
from storefront_realtime.exceptions import AuthenticationError
from storefront_realtime.realtime import ConnectionRegistry


class TestConnectionRegistry:
    """Registration and addressing of live connections."""

    def test_register_and_lookup(self, registry, fake_transport):
        identity = Identity("u1", Role.USER)
        connection = registry.register("c1", identity, fake_transport())

        assert "c1" in registry
        assert len(registry) == 1
        assert registry.get("c1") is connection
        assert connection.identity == identity
        assert connection.is_open

    def test_register_without_identity_is_refused(self, registry, fake_transport):
        with pytest.raises(AuthenticationError):
            registry.register("c1", None, fake_transport())
        assert len(registry) == 0

    def test_duplicate_connection_id_rejected(self, registry, fake_transport):
        registry.register("c1", Identity("u1", Role.USER), fake_transport())
        with pytest.raises(ValueError):
            registry.register("c1", Identity("u2", Role.USER), fake_transport())

    def test_user_with_several_tabs(self, registry, fake_transport):
        registry.register("tab-1", Identity("u1", Role.USER), fake_transport())
        registry.register("tab-2", Identity("u1", Role.USER), fake_transport())
        registry.register("other", Identity("u2", Role.USER), fake_transport())

        ids = {c.connection_id for c in registry.connections_for("u1")}
        assert ids == {"tab-1", "tab-2"}
        assert registry.connections_for("nobody") == []

    def test_admin_connections(self, registry, fake_transport):
        registry.register("a1", Identity("admin-1", Role.ADMIN), fake_transport())
        registry.register("a2", Identity("admin-2", Role.ADMIN), fake_transport())
        registry.register("u1", Identity("u1", Role.USER), fake_transport())

        assert {c.connection_id for c in registry.admin_connections()} == {"a1", "a2"}
        assert len(registry.all_connections()) == 3

    def test_unregister_is_idempotent(self, registry, fake_transport):
        connection = registry.register("c1", Identity("u1", Role.USER), fake_transport())

        assert registry.unregister("c1") is connection
        assert connection.is_open is False
        assert registry.unregister("c1") is None
        assert registry.unregister("never-registered") is None
        assert registry.connections_for("u1") == []

    def test_unregister_admin_removes_from_admin_set(self, registry, fake_transport):
        registry.register("a1", Identity("admin-1", Role.ADMIN), fake_transport())
        registry.unregister("a1")
        assert registry.admin_connections() == []

    def test_capacity(self, fake_transport):
        registry = ConnectionRegistry(max_connections=2)
        registry.register("c1", Identity("u1", Role.USER), fake_transport())
        assert not registry.is_full
        registry.register("c2", Identity("u2", Role.USER), fake_transport())
        assert registry.is_full

    def test_stats(self, registry, fake_transport):
        registry.register("a1", Identity("admin-1", Role.ADMIN), fake_transport())
        registry.register("c1", Identity("u1", Role.USER), fake_transport())
        registry.register("c2", Identity("u1", Role.USER), fake_transport())

        stats = registry.get_stats()
        assert stats["active_connections"] == 3
        assert stats["admin_connections"] == 1
        assert stats["distinct_users"] == 2


class TestConnection:
    """Per-connection send behaviour."""

    @pytest.mark.asyncio
    async def test_send_records_frame(self, registry, fake_transport):
        transport = fake_transport()
        connection = registry.register("c1", Identity("u1", Role.USER), transport)

        assert await connection.send({"type": "pong", "data": {}})
        assert transport.sent == [{"type": "pong", "data": {}}]
        assert connection.frames_sent == 1

    @pytest.mark.asyncio
    async def test_send_failure_marks_connection_closed(self, registry, fake_transport):
        connection = registry.register("c1", Identity("u1", Role.USER), fake_transport(fail=True))

        assert await connection.send({"type": "pong", "data": {}}) is False
        assert connection.is_open is False
        # A closed connection is skipped without touching the socket
        assert await connection.send({"type": "pong", "data": {}}) is False

    @pytest.mark.asyncio
    async def test_close_all(self, registry, fake_transport):
        first, second = fake_transport(), fake_transport()
        registry.register("c1", Identity("u1", Role.USER), first)
        registry.register("c2", Identity("admin", Role.ADMIN), second)

        await registry.close_all(code=1001, reason="Server shutdown")

        assert len(registry) == 0
        assert first.closed == (1001, "Server shutdown")
        assert second.closed == (1001, "Server shutdown")

    @pytest.mark.asyncio
    async def test_stalled_send_times_out_and_closes(self, registry, fake_transport):
        transport = fake_transport(stall=True)
        connection = registry.register("c1", Identity("u1", Role.USER), transport)

        sent = await asyncio.wait_for(connection.send({"type": "pong", "data": {}}), timeout=1.0)

        assert sent is False
        assert connection.is_open is False
        assert transport.closed == (1011, "Send timeout")
        assert await connection.send({"type": "pong", "data": {}}) is False
