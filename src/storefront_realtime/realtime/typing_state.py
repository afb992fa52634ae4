"""Ephemeral typing presence with a server-side expiry."""

import asyncio
from typing import Awaitable, Callable, Dict, Tuple

from ..models import Direction
from ..telemetry.logger import get_logger

logger = get_logger(__name__)

TypingKey = Tuple[str, Direction]
ExpiryCallback = Callable[[str, Direction], Awaitable[None]]


class TypingTracker:
    """
    Last-write-wins typing flags per (thread, side).

    A ``True`` flag is cleared automatically after ``timeout`` seconds
    without a refresh; ``on_expire`` is awaited so the opposite party can
    be told the indicator went away. Nothing here is persisted.
    """

    def __init__(self, timeout: float = 5.0, on_expire: ExpiryCallback | None = None):
        self.timeout = timeout
        self.on_expire = on_expire
        self._state: Dict[TypingKey, bool] = {}
        self._timers: Dict[TypingKey, asyncio.Task] = {}

    def is_typing(self, thread_user_id: str, side: Direction) -> bool:
        return self._state.get((thread_user_id, side), False)

    def update(self, thread_user_id: str, side: Direction, is_typing: bool) -> None:
        key = (thread_user_id, side)
        self._cancel_timer(key)
        if is_typing:
            self._state[key] = True
            self._timers[key] = asyncio.create_task(self._expire_later(key))
        else:
            self._state.pop(key, None)

    def clear(self, thread_user_id: str, side: Direction) -> bool:
        """Drop the flag without notifying anyone; returns whether it was set."""
        key = (thread_user_id, side)
        self._cancel_timer(key)
        return self._state.pop(key, False)

    def _cancel_timer(self, key: TypingKey) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _expire_later(self, key: TypingKey) -> None:
        await asyncio.sleep(self.timeout)
        self._timers.pop(key, None)
        if not self._state.pop(key, False):
            return

        thread_user_id, side = key
        logger.debug("Typing indicator expired", thread_user_id=thread_user_id, side=side.value)
        if self.on_expire is not None:
            try:
                await self.on_expire(thread_user_id, side)
            except Exception as e:
                logger.warning("Typing expiry relay failed", thread_user_id=thread_user_id, error=str(e))

    async def shutdown(self) -> None:
        timers = list(self._timers.values())
        self._timers.clear()
        self._state.clear()
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
