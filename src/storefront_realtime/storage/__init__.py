"""Persistence for chat messages and notices with time-based expiry."""

from .message_store import InMemoryMessageStore, MessageStore, RedisMessageStore
from .notice_store import InMemoryNoticeStore, NoticeStore, RedisNoticeStore
from .redis_client import close_redis, create_redis

__all__ = [
    "MessageStore",
    "InMemoryMessageStore",
    "RedisMessageStore",
    "NoticeStore",
    "InMemoryNoticeStore",
    "RedisNoticeStore",
    "create_redis",
    "close_redis",
]
