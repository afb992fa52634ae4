"""Realtime chat and notification layer."""

from .delivery import Audience, Delivery, LocalDelivery, RedisDelivery
from .fanout import NoticeFanout
from .gateway import RealtimeGateway
from .registry import Connection, ConnectionRegistry
from .relay import ChatRelay
from .typing_state import TypingTracker

__all__ = [
    "Audience",
    "Delivery",
    "LocalDelivery",
    "RedisDelivery",
    "NoticeFanout",
    "RealtimeGateway",
    "Connection",
    "ConnectionRegistry",
    "ChatRelay",
    "TypingTracker",
]
