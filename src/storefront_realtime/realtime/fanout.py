"""Broadcast of admin notices to every live connection."""

from typing import Optional

from ..auth import Identity
from ..exceptions import AuthorizationError
from ..models import Notice
from ..storage import NoticeStore
from ..telemetry.logger import get_logger
from ..telemetry.metrics import notices_broadcast
from .delivery import Audience, Delivery
from .events import EventType, frame

logger = get_logger(__name__)


class NoticeFanout:
    """Persists notices and pushes them as ``notice:new``; fire and forget."""

    def __init__(self, store: NoticeStore, delivery: Delivery):
        self.store = store
        self.delivery = delivery

    async def publish(self, notice: Notice) -> int:
        """Push an already persisted notice to every live connection."""
        delivered = await self.delivery.deliver(
            Audience.everyone(), frame(EventType.NOTICE, notice.broadcast_payload())
        )
        notices_broadcast.inc()
        logger.info("Notice broadcast", notice_id=notice.id, deliveries=delivered)
        return delivered

    async def create_and_publish(
        self, identity: Identity, message: str, title: Optional[str] = None
    ) -> Notice:
        if not identity.is_admin:
            raise AuthorizationError("Only admins may create notices")

        notice = await self.store.create(message=message, title=title, created_by=identity.user_id)
        await self.publish(notice)
        return notice
