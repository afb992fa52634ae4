"""Realtime event names, inbound payload schemas and outbound frame builders."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, field_validator
from pydantic.alias_generators import to_camel

MAX_TEXT_LENGTH = 2000


class EventType(str, Enum):
    """Realtime event types."""

    # Client -> Server
    USER_MESSAGE = "chat:user_message"
    ADMIN_MESSAGE = "chat:admin_message"
    GET_THREAD = "chat:get_thread"
    RECENT_THREADS = "chat:recent_threads"
    TYPING = "typing"
    PING = "ping"

    # Server -> Client
    CONNECTION = "connection"
    CHAT_MESSAGE = "chat:message"
    NOTICE = "notice:new"
    ACK = "ack"
    ERROR = "error"
    PONG = "pong"
    HEARTBEAT = "heartbeat"


def coerce_request_id(v):
    """Clients commonly use incrementing integers as request ids."""
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    if isinstance(v, str):
        return v
    return None


class Envelope(BaseModel):
    """Every frame on the socket has this shape."""

    type: str = Field(..., min_length=1)
    id: Optional[str] = Field(None, max_length=128)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        if v is None:
            return v
        return coerce_request_id(v) or v

    @field_validator("data", mode="before")
    @classmethod
    def default_data(cls, v):
        return {} if v is None else v


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _clean_text(v):
    if isinstance(v, str):
        v = v.strip()
        if not v:
            raise ValueError("text cannot be empty")
    return v


def _clean_user_id(v):
    if isinstance(v, int) and not isinstance(v, bool):
        v = str(v)
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return None
    return v


MessageText = Annotated[str, BeforeValidator(_clean_text), Field(min_length=1, max_length=MAX_TEXT_LENGTH)]
UserId = Annotated[Optional[str], BeforeValidator(_clean_user_id)]


class UserMessagePayload(_Payload):
    text: MessageText


class AdminMessagePayload(_Payload):
    target_user_id: UserId
    text: MessageText


class GetThreadPayload(_Payload):
    target_user_id: Optional[UserId] = None
    before: Optional[datetime] = None
    limit: Optional[int] = None

    @field_validator("before")
    @classmethod
    def assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v


class TypingPayload(_Payload):
    target_user_id: Optional[UserId] = None
    is_typing: StrictBool


def frame(event_type: EventType, data: Optional[Dict[str, Any]] = None, id: Optional[str] = None) -> Dict[str, Any]:
    """Build an outbound envelope."""
    payload: Dict[str, Any] = {"type": event_type.value, "data": data or {}}
    if id is not None:
        payload["id"] = id
    return payload


def ack(request_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
    return frame(EventType.ACK, data, id=request_id)


def error(request_id: Optional[str], message: str, code: str) -> Dict[str, Any]:
    return frame(EventType.ERROR, {"error": message, "code": code}, id=request_id)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
