"""Notice persistence with a fixed retention window."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..exceptions import PersistenceError
from ..models import Notice, to_epoch_ms, utc_now
from ..telemetry.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class NoticeStore(ABC):
    """Storage contract for broadcast notices."""

    def __init__(self, retention_seconds: int, clock: Optional[Clock] = None):
        self.retention = timedelta(seconds=retention_seconds)
        self._clock = clock or utc_now

    def cutoff(self) -> datetime:
        return self._clock() - self.retention

    def _build(self, message: str, title: Optional[str], created_by: Optional[str]) -> Notice:
        return Notice(title=title, message=message, created_by=created_by, created_at=self._clock())

    @abstractmethod
    async def create(
        self, message: str, title: Optional[str] = None, created_by: Optional[str] = None
    ) -> Notice:
        """Persist a notice and return it."""

    @abstractmethod
    async def list_recent(self, limit: int = 50) -> List[Notice]:
        """Live notices, newest first."""

    async def close(self) -> None:
        return None


class InMemoryNoticeStore(NoticeStore):
    def __init__(self, retention_seconds: int = 24 * 60 * 60, clock: Optional[Clock] = None):
        super().__init__(retention_seconds, clock)
        self._notices: List[Notice] = []

    def _expire(self) -> None:
        cutoff = self.cutoff()
        self._notices = [n for n in self._notices if n.created_at > cutoff]

    async def create(
        self, message: str, title: Optional[str] = None, created_by: Optional[str] = None
    ) -> Notice:
        self._expire()
        notice = self._build(message, title, created_by)
        self._notices.append(notice)
        return notice

    async def list_recent(self, limit: int = 50) -> List[Notice]:
        self._expire()
        return sorted(self._notices, key=lambda n: n.created_at, reverse=True)[:limit]


class RedisNoticeStore(NoticeStore):
    """Notices as ``SET ... EX`` values plus a sorted-set index for listing."""

    def __init__(
        self,
        client: redis.Redis,
        retention_seconds: int = 24 * 60 * 60,
        key_prefix: str = "notice",
        clock: Optional[Clock] = None,
    ):
        super().__init__(retention_seconds, clock)
        self.client = client
        self.key_prefix = key_prefix

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}:index"

    def notice_key(self, notice_id: str) -> str:
        return f"{self.key_prefix}:{notice_id}"

    async def create(
        self, message: str, title: Optional[str] = None, created_by: Optional[str] = None
    ) -> Notice:
        notice = self._build(message, title, created_by)
        ttl = int(self.retention.total_seconds())
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(self.notice_key(notice.id), notice.model_dump_json(), ex=ttl)
                pipe.zadd(self.index_key, {notice.id: to_epoch_ms(notice.created_at)})
                pipe.zremrangebyscore(self.index_key, "-inf", to_epoch_ms(self.cutoff()))
                pipe.expire(self.index_key, ttl)
                await pipe.execute()
        except RedisError as e:
            logger.error("Failed to persist notice", error=str(e))
            raise PersistenceError(store="notices") from e
        return notice

    async def list_recent(self, limit: int = 50) -> List[Notice]:
        try:
            ids = await self.client.zrevrangebyscore(
                self.index_key, "+inf", f"({to_epoch_ms(self.cutoff())}", start=0, num=limit
            )
            if not ids:
                return []
            raw = await self.client.mget([self.notice_key(notice_id) for notice_id in ids])
        except RedisError as e:
            logger.error("Failed to list notices", error=str(e))
            raise PersistenceError(store="notices") from e

        # Values expire independently of the index
        return [Notice.model_validate_json(value) for value in raw if value is not None]
