"""Construction and teardown of the realtime components for one process."""

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

from ..auth import JWTHandler
from ..config import Settings
from ..realtime import (
    ChatRelay,
    ConnectionRegistry,
    Delivery,
    LocalDelivery,
    NoticeFanout,
    RealtimeGateway,
    RedisDelivery,
)
from ..storage import (
    InMemoryMessageStore,
    InMemoryNoticeStore,
    MessageStore,
    NoticeStore,
    RedisMessageStore,
    RedisNoticeStore,
    close_redis,
    create_redis,
)
from ..telemetry.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RealtimeServices:
    settings: Settings
    registry: ConnectionRegistry
    message_store: MessageStore
    notice_store: NoticeStore
    delivery: Delivery
    relay: ChatRelay
    fanout: NoticeFanout
    gateway: RealtimeGateway
    jwt_handler: JWTHandler
    redis_client: Optional[redis.Redis] = None

    async def start(self) -> None:
        await self.delivery.start()
        logger.info(
            "Realtime services started",
            store_backend=self.settings.store_backend,
            delivery_backend=self.settings.delivery_backend,
        )

    async def stop(self) -> None:
        await self.gateway.shutdown()
        await self.delivery.stop()
        await self.message_store.close()
        await self.notice_store.close()
        if self.redis_client is not None:
            await close_redis(self.redis_client)
        logger.info("Realtime services stopped")


def build_services(
    settings: Settings,
    message_store: Optional[MessageStore] = None,
    notice_store: Optional[NoticeStore] = None,
    jwt_handler: Optional[JWTHandler] = None,
) -> RealtimeServices:
    """Wire registry, stores, delivery, relay, fan-out and gateway together."""
    redis_client = create_redis(settings) if settings.uses_redis else None

    if message_store is None:
        if settings.store_backend == "redis":
            message_store = RedisMessageStore(redis_client, settings.message_ttl_seconds)
        else:
            message_store = InMemoryMessageStore(settings.message_ttl_seconds)
    if notice_store is None:
        if settings.store_backend == "redis":
            notice_store = RedisNoticeStore(redis_client, settings.notice_ttl_seconds)
        else:
            notice_store = InMemoryNoticeStore(settings.notice_ttl_seconds)

    registry = ConnectionRegistry(
        max_connections=settings.ws_max_connections, send_timeout=settings.ws_send_timeout
    )
    if settings.delivery_backend == "redis":
        delivery: Delivery = RedisDelivery(registry, redis_client, settings.redis_channel)
    else:
        delivery = LocalDelivery(registry)

    relay = ChatRelay(
        message_store,
        delivery,
        typing_timeout=settings.typing_timeout_seconds,
        page_size=settings.thread_page_size,
        page_max=settings.thread_page_max,
    )
    jwt_handler = jwt_handler or JWTHandler(
        secret_key=settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
        access_token_expire_minutes=settings.jwt_access_token_expire_minutes,
    )
    gateway = RealtimeGateway(
        registry, relay, jwt_handler=jwt_handler, heartbeat_interval=settings.ws_heartbeat_interval
    )

    return RealtimeServices(
        settings=settings,
        registry=registry,
        message_store=message_store,
        notice_store=notice_store,
        delivery=delivery,
        relay=relay,
        fanout=NoticeFanout(notice_store, delivery),
        gateway=gateway,
        jwt_handler=jwt_handler,
        redis_client=redis_client,
    )
