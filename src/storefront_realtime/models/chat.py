"""Chat and notice models shared by the stores and the realtime layer."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class Direction(str, Enum):
    """Which side of a thread wrote a message."""

    FROM_USER = "from-user"
    FROM_ADMIN = "from-admin"

    @property
    def sender(self) -> str:
        return "admin" if self is Direction.FROM_ADMIN else "user"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ChatMessage(_WireModel):
    """One directed message in a user's thread with the admin side."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    thread_user_id: str
    direction: Direction
    text: str = Field(..., min_length=1)
    created_at: datetime

    @computed_field(alias="from")
    @property
    def sender(self) -> str:
        return self.direction.sender

    @property
    def epoch_ms(self) -> int:
        return to_epoch_ms(self.created_at)


class Notice(_WireModel):
    """An announcement pushed to every connected client."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: Optional[str] = None
    message: str = Field(..., min_length=1)
    created_by: Optional[str] = None
    created_at: datetime

    @field_validator("title", "message", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    def broadcast_payload(self) -> Dict[str, Any]:
        """Fields pushed with notice:new."""
        wire = self.to_wire()
        return {key: wire[key] for key in ("id", "title", "message", "createdAt")}


class ThreadSummary(_WireModel):
    """Latest message of one user's thread, for the admin inbox."""

    user_id: str
    last_text: str
    last_direction: Direction
    last_timestamp: datetime

    @classmethod
    def from_message(cls, message: ChatMessage) -> "ThreadSummary":
        return cls(
            user_id=message.thread_user_id,
            last_text=message.text,
            last_direction=message.direction,
            last_timestamp=message.created_at,
        )
