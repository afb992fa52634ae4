"""
Chat message persistence keyed by thread owner, with a fixed retention window.

Timestamps are assigned here, at millisecond precision, and are strictly
increasing within a thread so that "older than T" paging has no gaps.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from ..exceptions import PersistenceError
from ..models import ChatMessage, Direction, ThreadSummary, from_epoch_ms, to_epoch_ms, utc_now
from ..telemetry.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]

ONE_MS = timedelta(milliseconds=1)


class MessageStore(ABC):
    """Storage contract for chat threads."""

    def __init__(self, retention_seconds: int, clock: Optional[Clock] = None):
        self.retention = timedelta(seconds=retention_seconds)
        self._clock = clock or utc_now

    def cutoff(self) -> datetime:
        """Messages created at or before this instant are expired."""
        return self._clock() - self.retention

    @abstractmethod
    async def append(self, thread_user_id: str, direction: Direction, text: str) -> ChatMessage:
        """Persist a message and return it with its assigned timestamp."""

    @abstractmethod
    async def get_thread(
        self, thread_user_id: str, before: Optional[datetime] = None, limit: int = 20
    ) -> List[ChatMessage]:
        """
        Return up to ``limit`` messages in ascending order.

        Without ``before`` the newest page is returned; with it, only
        messages strictly older than ``before``.
        """

    @abstractmethod
    async def recent_threads(self) -> List[ThreadSummary]:
        """One summary per live thread, newest first."""

    @abstractmethod
    async def count(self, thread_user_id: Optional[str] = None) -> int:
        """Number of live messages, in one thread or overall."""

    async def close(self) -> None:
        return None


class InMemoryMessageStore(MessageStore):
    """Process-local store that expires entries the same way the Redis store does."""

    def __init__(self, retention_seconds: int = 12 * 60 * 60, clock: Optional[Clock] = None):
        super().__init__(retention_seconds, clock)
        self._threads: Dict[str, List[ChatMessage]] = defaultdict(list)

    def _expire(self) -> None:
        cutoff = self.cutoff()
        for user_id in list(self._threads):
            live = [m for m in self._threads[user_id] if m.created_at > cutoff]
            if live:
                self._threads[user_id] = live
            else:
                del self._threads[user_id]

    async def append(self, thread_user_id: str, direction: Direction, text: str) -> ChatMessage:
        self._expire()
        thread = self._threads[thread_user_id]
        created_at = self._clock()
        if thread and created_at <= thread[-1].created_at:
            created_at = thread[-1].created_at + ONE_MS

        message = ChatMessage(
            thread_user_id=thread_user_id,
            direction=direction,
            text=text,
            created_at=created_at,
        )
        thread.append(message)
        return message

    async def get_thread(
        self, thread_user_id: str, before: Optional[datetime] = None, limit: int = 20
    ) -> List[ChatMessage]:
        self._expire()
        thread = self._threads.get(thread_user_id, [])
        if before is not None:
            thread = [m for m in thread if m.created_at < before]
        return list(thread[-limit:]) if limit > 0 else []

    async def recent_threads(self) -> List[ThreadSummary]:
        self._expire()
        summaries = [ThreadSummary.from_message(thread[-1]) for thread in self._threads.values()]
        summaries.sort(key=lambda s: s.last_timestamp, reverse=True)
        return summaries

    async def count(self, thread_user_id: Optional[str] = None) -> int:
        self._expire()
        if thread_user_id is not None:
            return len(self._threads.get(thread_user_id, []))
        return sum(len(thread) for thread in self._threads.values())


# KEYS[1] thread sorted set, KEYS[2] thread index
# ARGV[1] now ms, ARGV[2] retention ms, ARGV[3] encoded member, ARGV[4] thread user id
APPEND_SCRIPT = """
local ts = tonumber(ARGV[1])
local last = redis.call('ZREVRANGE', KEYS[1], 0, 0, 'WITHSCORES')
if last[2] and tonumber(last[2]) >= ts then
    ts = tonumber(last[2]) + 1
end
local cutoff = ts - tonumber(ARGV[2])
redis.call('ZADD', KEYS[1], ts, ARGV[3])
redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', cutoff)
redis.call('PEXPIRE', KEYS[1], ARGV[2])
redis.call('ZADD', KEYS[2], ts, ARGV[4])
redis.call('ZREMRANGEBYSCORE', KEYS[2], '-inf', cutoff)
redis.call('PEXPIRE', KEYS[2], ARGV[2])
return ts
"""


class RedisMessageStore(MessageStore):
    """
    Redis-backed thread storage.

    Each thread is a sorted set scored by epoch milliseconds. Keys carry a
    TTL equal to the retention window, so an idle thread disappears on its
    own; reads also exclude members past the window.
    """

    def __init__(
        self,
        client: redis.Redis,
        retention_seconds: int = 12 * 60 * 60,
        key_prefix: str = "chat",
        clock: Optional[Clock] = None,
    ):
        super().__init__(retention_seconds, clock)
        self.client = client
        self.key_prefix = key_prefix

    @property
    def retention_ms(self) -> int:
        return int(self.retention.total_seconds() * 1000)

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}:threads"

    def thread_key(self, thread_user_id: str) -> str:
        return f"{self.key_prefix}:thread:{thread_user_id}"

    def _min_score(self) -> str:
        return f"({to_epoch_ms(self.cutoff())}"

    @staticmethod
    def _encode(message_id: str, direction: Direction, text: str) -> str:
        return orjson.dumps({"id": message_id, "direction": direction.value, "text": text}).decode()

    @staticmethod
    def _decode(thread_user_id: str, member: str, score: float) -> ChatMessage:
        data = orjson.loads(member)
        return ChatMessage(
            id=data["id"],
            thread_user_id=thread_user_id,
            direction=Direction(data["direction"]),
            text=data["text"],
            created_at=from_epoch_ms(int(score)),
        )

    async def append(self, thread_user_id: str, direction: Direction, text: str) -> ChatMessage:
        draft = ChatMessage(
            thread_user_id=thread_user_id,
            direction=direction,
            text=text,
            created_at=self._clock(),
        )
        try:
            score = await self.client.eval(
                APPEND_SCRIPT,
                2,
                self.thread_key(thread_user_id),
                self.index_key,
                draft.epoch_ms,
                self.retention_ms,
                self._encode(draft.id, direction, text),
                thread_user_id,
            )
        except RedisError as e:
            logger.error("Failed to persist chat message", thread_user_id=thread_user_id, error=str(e))
            raise PersistenceError(store="messages") from e

        return draft.model_copy(update={"created_at": from_epoch_ms(int(score))})

    async def get_thread(
        self, thread_user_id: str, before: Optional[datetime] = None, limit: int = 20
    ) -> List[ChatMessage]:
        if limit <= 0:
            return []
        max_score = f"({to_epoch_ms(before)}" if before is not None else "+inf"
        try:
            rows = await self.client.zrevrangebyscore(
                self.thread_key(thread_user_id),
                max_score,
                self._min_score(),
                start=0,
                num=limit,
                withscores=True,
            )
        except RedisError as e:
            logger.error("Failed to read chat thread", thread_user_id=thread_user_id, error=str(e))
            raise PersistenceError(store="messages") from e

        return [self._decode(thread_user_id, member, score) for member, score in reversed(rows)]

    async def recent_threads(self) -> List[ThreadSummary]:
        min_score = self._min_score()
        try:
            users = await self.client.zrevrangebyscore(
                self.index_key, "+inf", min_score, withscores=True
            )
            summaries = []
            for user_id, _ in users:
                rows = await self.client.zrevrangebyscore(
                    self.thread_key(user_id), "+inf", min_score, start=0, num=1, withscores=True
                )
                if rows:
                    member, score = rows[0]
                    summaries.append(ThreadSummary.from_message(self._decode(user_id, member, score)))
        except RedisError as e:
            logger.error("Failed to list recent threads", error=str(e))
            raise PersistenceError(store="messages") from e

        summaries.sort(key=lambda s: s.last_timestamp, reverse=True)
        return summaries

    async def count(self, thread_user_id: Optional[str] = None) -> int:
        min_score = self._min_score()
        try:
            if thread_user_id is not None:
                return await self.client.zcount(self.thread_key(thread_user_id), min_score, "+inf")
            users = await self.client.zrevrangebyscore(self.index_key, "+inf", min_score)
            total = 0
            for user_id in users:
                total += await self.client.zcount(self.thread_key(user_id), min_score, "+inf")
            return total
        except RedisError as e:
            raise PersistenceError(store="messages") from e
