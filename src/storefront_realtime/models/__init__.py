"""Data models for chat messages, notices and thread summaries."""

from .chat import (
    ChatMessage,
    Direction,
    Notice,
    ThreadSummary,
    from_epoch_ms,
    to_epoch_ms,
    utc_now,
)

__all__ = [
    "ChatMessage",
    "Direction",
    "Notice",
    "ThreadSummary",
    "from_epoch_ms",
    "to_epoch_ms",
    "utc_now",
]
