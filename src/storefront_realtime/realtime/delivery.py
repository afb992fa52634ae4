"""
Outbound delivery to audiences of live connections.

``LocalDelivery`` resolves an audience against this process's registry.
``RedisDelivery`` publishes every delivery on a pub/sub channel instead and
each subscribed process performs the local part, so an admin and a user
connected to different processes still reach each other.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from ..telemetry.logger import get_logger
from .registry import Connection, ConnectionRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class Audience:
    """Who a frame is addressed to."""

    kind: str
    user_id: Optional[str] = None

    ALL = "all"
    USER = "user"
    ADMINS = "admins"

    @classmethod
    def everyone(cls) -> "Audience":
        return cls(cls.ALL)

    @classmethod
    def user(cls, user_id: str) -> "Audience":
        return cls(cls.USER, user_id)

    @classmethod
    def admins(cls) -> "Audience":
        return cls(cls.ADMINS)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "userId": self.user_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Audience":
        if data.get("kind") not in (cls.ALL, cls.USER, cls.ADMINS):
            raise ValueError(f"Unknown audience: {data.get('kind')}")
        return cls(data["kind"], data.get("userId"))


class Delivery(ABC):
    """Fan a frame out to an audience; best effort, no retries."""

    @abstractmethod
    async def deliver(self, audience: Audience, frame: Dict[str, Any]) -> int:
        """Returns how many deliveries were made or handed off."""

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None


class LocalDelivery(Delivery):
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def targets(self, audience: Audience) -> List[Connection]:
        if audience.kind == Audience.ALL:
            return self.registry.all_connections()
        if audience.kind == Audience.ADMINS:
            return self.registry.admin_connections()
        return self.registry.connections_for(audience.user_id)

    async def deliver(self, audience: Audience, frame: Dict[str, Any]) -> int:
        targets = self.targets(audience)
        if not targets:
            return 0
        # One slow socket must not hold up the others
        results = await asyncio.gather(*(c.send(frame) for c in targets))
        return sum(1 for ok in results if ok)


class RedisDelivery(LocalDelivery):
    """Cross-process delivery over Redis pub/sub."""

    def __init__(self, registry: ConnectionRegistry, client: redis.Redis, channel: str):
        super().__init__(registry)
        self.client = client
        self.channel = channel
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    async def deliver(self, audience: Audience, frame: Dict[str, Any]) -> int:
        payload = orjson.dumps({"audience": audience.to_dict(), "frame": frame})
        try:
            return await self.client.publish(self.channel, payload)
        except RedisError as e:
            # Keep this process's own clients served when the bus is down
            logger.error("Broadcast publish failed, delivering locally", channel=self.channel, error=str(e))
            return await super().deliver(audience, frame)

    async def handle_bus_message(self, raw: Any) -> int:
        try:
            message = orjson.loads(raw)
            audience = Audience.from_dict(message["audience"])
            frame = message["frame"]
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed broadcast message", error=str(e))
            return 0
        return await super().deliver(audience, frame)

    async def start(self) -> None:
        self._pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self.channel)
        self._listener = asyncio.create_task(self._listen())
        logger.info("Subscribed to broadcast channel", channel=self.channel)

    async def _listen(self) -> None:
        while True:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") == "message":
                        await self.handle_bus_message(message["data"])
                return
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                logger.error("Broadcast listener error", channel=self.channel, error=str(e))
                await asyncio.sleep(1.0)

    async def stop(self) -> None:
        if self._listener:
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            self._pubsub = None
