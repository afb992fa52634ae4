"""
Chat relay between end users and the admin operators.

Enforces who may address which thread, persists messages through the
message store and pushes them to the right audiences. Typing signals go
through the same addressing rules but never reach the store.
"""

from datetime import datetime
from typing import List, Optional

from ..auth import Identity
from ..exceptions import AuthorizationError, ValidationError
from ..models import ChatMessage, Direction, ThreadSummary
from ..storage import MessageStore
from ..telemetry.logger import get_logger
from ..telemetry.metrics import chat_messages_persisted
from .delivery import Audience, Delivery
from .events import EventType, frame
from .typing_state import TypingTracker

logger = get_logger(__name__)


class ChatRelay:
    """Applies thread addressing rules and persistence for chat events."""

    def __init__(
        self,
        store: MessageStore,
        delivery: Delivery,
        typing_timeout: float = 5.0,
        page_size: int = 20,
        page_max: int = 100,
    ):
        self.store = store
        self.delivery = delivery
        self.page_size = page_size
        self.page_max = page_max
        self.typing_tracker = TypingTracker(timeout=typing_timeout, on_expire=self._typing_expired)

    @staticmethod
    def _require_role(identity: Identity, admin: bool, event: str) -> None:
        if identity.is_admin != admin:
            raise AuthorizationError(f"{identity.role.value} may not send {event}")

    @staticmethod
    def _message_frame(message: ChatMessage) -> dict:
        return frame(EventType.CHAT_MESSAGE, message.to_wire())

    async def send_user_message(self, identity: Identity, text: str) -> ChatMessage:
        """A shopper writes to the admin side of their own thread."""
        self._require_role(identity, admin=False, event=EventType.USER_MESSAGE.value)

        message = await self.store.append(identity.user_id, Direction.FROM_USER, text)
        chat_messages_persisted.labels(direction=message.direction.value).inc()
        self.typing_tracker.clear(identity.user_id, Direction.FROM_USER)

        outbound = self._message_frame(message)
        admins = await self.delivery.deliver(Audience.admins(), outbound)
        own = await self.delivery.deliver(Audience.user(identity.user_id), outbound)
        logger.info(
            "User message relayed",
            thread_user_id=identity.user_id,
            admin_deliveries=admins,
            own_deliveries=own,
        )
        return message

    async def send_admin_message(
        self, identity: Identity, target_user_id: Optional[str], text: str
    ) -> ChatMessage:
        """An admin answers one user's thread."""
        self._require_role(identity, admin=True, event=EventType.ADMIN_MESSAGE.value)
        if not target_user_id:
            raise ValidationError("targetUserId is required", field="targetUserId")

        message = await self.store.append(target_user_id, Direction.FROM_ADMIN, text)
        chat_messages_persisted.labels(direction=message.direction.value).inc()
        self.typing_tracker.clear(target_user_id, Direction.FROM_ADMIN)

        outbound = self._message_frame(message)
        delivered = await self.delivery.deliver(Audience.user(target_user_id), outbound)
        # Keeps other admin consoles on the same thread in step
        await self.delivery.deliver(Audience.admins(), outbound)
        logger.info(
            "Admin message relayed",
            thread_user_id=target_user_id,
            admin_id=identity.user_id,
            user_deliveries=delivered,
        )
        return message

    def _page_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.page_size
        return max(1, min(int(limit), self.page_max))

    async def get_thread(
        self,
        identity: Identity,
        target_user_id: Optional[str] = None,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ChatMessage]:
        """A page of one thread, oldest first."""
        if not identity.is_admin:
            # Users only ever read their own thread
            target_user_id = identity.user_id
        elif not target_user_id:
            raise ValidationError("targetUserId is required", field="targetUserId")

        return await self.store.get_thread(target_user_id, before=before, limit=self._page_limit(limit))

    async def get_recent_threads(self, identity: Identity) -> List[ThreadSummary]:
        self._require_role(identity, admin=True, event=EventType.RECENT_THREADS.value)
        return await self.store.recent_threads()

    @staticmethod
    def _typing_frame(thread_user_id: str, side: Direction, is_typing: bool) -> dict:
        return frame(
            EventType.TYPING,
            {"threadUserId": thread_user_id, "from": side.sender, "isTyping": is_typing},
        )

    @staticmethod
    def _typing_audience(thread_user_id: str, side: Direction) -> Audience:
        # Signals go to the opposite party
        if side is Direction.FROM_ADMIN:
            return Audience.user(thread_user_id)
        return Audience.admins()

    async def typing(
        self, identity: Identity, target_user_id: Optional[str], is_typing: bool
    ) -> int:
        """Relay a typing indicator to the other side of the thread."""
        if identity.is_admin:
            if not target_user_id:
                raise ValidationError("targetUserId is required", field="targetUserId")
            thread_user_id, side = target_user_id, Direction.FROM_ADMIN
        else:
            thread_user_id, side = identity.user_id, Direction.FROM_USER

        self.typing_tracker.update(thread_user_id, side, is_typing)
        return await self.delivery.deliver(
            self._typing_audience(thread_user_id, side),
            self._typing_frame(thread_user_id, side, is_typing),
        )

    async def _typing_expired(self, thread_user_id: str, side: Direction) -> None:
        await self.delivery.deliver(
            self._typing_audience(thread_user_id, side),
            self._typing_frame(thread_user_id, side, False),
        )

    async def shutdown(self) -> None:
        await self.typing_tracker.shutdown()
