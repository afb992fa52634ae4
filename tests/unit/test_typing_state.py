"""Tests for typing presence tracking."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from storefront_realtime.models import Direction
from storefront_realtime.realtime import TypingTracker


@pytest.mark.asyncio
class TestTypingTracker:
    async def test_update_sets_and_unsets(self):
        tracker = TypingTracker(timeout=10)

        tracker.update("u1", Direction.FROM_USER, True)
        assert tracker.is_typing("u1", Direction.FROM_USER)
        assert not tracker.is_typing("u1", Direction.FROM_ADMIN)

        tracker.update("u1", Direction.FROM_USER, False)
        assert not tracker.is_typing("u1", Direction.FROM_USER)
        await tracker.shutdown()

    async def test_expiry_invokes_callback(self):
        on_expire = AsyncMock()
        tracker = TypingTracker(timeout=0.02, on_expire=on_expire)

        tracker.update("u1", Direction.FROM_ADMIN, True)
        await asyncio.sleep(0.08)

        on_expire.assert_awaited_once_with("u1", Direction.FROM_ADMIN)
        assert not tracker.is_typing("u1", Direction.FROM_ADMIN)

    async def test_refresh_postpones_expiry(self):
        on_expire = AsyncMock()
        tracker = TypingTracker(timeout=0.1, on_expire=on_expire)

        tracker.update("u1", Direction.FROM_USER, True)
        await asyncio.sleep(0.06)
        tracker.update("u1", Direction.FROM_USER, True)
        await asyncio.sleep(0.06)

        on_expire.assert_not_awaited()
        assert tracker.is_typing("u1", Direction.FROM_USER)
        await tracker.shutdown()

    async def test_explicit_stop_cancels_expiry(self):
        on_expire = AsyncMock()
        tracker = TypingTracker(timeout=0.02, on_expire=on_expire)

        tracker.update("u1", Direction.FROM_USER, True)
        tracker.update("u1", Direction.FROM_USER, False)
        await asyncio.sleep(0.06)

        on_expire.assert_not_awaited()

    async def test_clear_is_silent(self):
        on_expire = AsyncMock()
        tracker = TypingTracker(timeout=0.02, on_expire=on_expire)

        tracker.update("u1", Direction.FROM_USER, True)
        assert tracker.clear("u1", Direction.FROM_USER) is True
        assert tracker.clear("u1", Direction.FROM_USER) is False
        await asyncio.sleep(0.06)

        on_expire.assert_not_awaited()

    async def test_failing_callback_is_contained(self):
        tracker = TypingTracker(timeout=0.01, on_expire=AsyncMock(side_effect=RuntimeError("boom")))

        tracker.update("u1", Direction.FROM_USER, True)
        await asyncio.sleep(0.05)

        assert not tracker.is_typing("u1", Direction.FROM_USER)

    async def test_shutdown_cancels_timers(self):
        on_expire = AsyncMock()
        tracker = TypingTracker(timeout=0.02, on_expire=on_expire)
        tracker.update("u1", Direction.FROM_USER, True)
        tracker.update("u2", Direction.FROM_ADMIN, True)

        await tracker.shutdown()
        await asyncio.sleep(0.05)

        on_expire.assert_not_awaited()
        assert not tracker.is_typing("u1", Direction.FROM_USER)
