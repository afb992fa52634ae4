"""
Live connection bookkeeping.

Maps each open realtime session to the identity that authenticated it and
answers the three addressing questions the realtime layer asks: every
connection, one user's connections, and the admin operators' connections.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Set

from ..auth import Identity
from ..exceptions import AuthenticationError
from ..telemetry.logger import get_logger
from ..telemetry.metrics import ws_connections_active, ws_deliveries, ws_delivery_failures

logger = get_logger(__name__)


class Transport(Protocol):
    """The write side of an accepted socket."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


@dataclass(eq=False)
class Connection:
    """One live realtime session."""

    connection_id: str
    identity: Identity
    transport: Transport
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_open: bool = True
    frames_sent: int = 0
    send_timeout: float = 5.0

    async def send(self, frame: Dict[str, Any]) -> bool:
        """Write one frame; returns False when the connection is gone."""
        if not self.is_open:
            return False

        event_type = frame.get("type", "unknown")
        try:
            await asyncio.wait_for(self.transport.send_json(frame), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            # The peer stopped reading; drop it like a closed socket
            self.is_open = False
            ws_delivery_failures.labels(event_type=event_type).inc()
            logger.warning(
                "Closing stalled connection",
                connection_id=self.connection_id,
                event_type=event_type,
                send_timeout=self.send_timeout,
            )
            await self._abort()
            return False
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The receive loop notices the disconnect and unregisters
            self.is_open = False
            ws_delivery_failures.labels(event_type=event_type).inc()
            logger.debug(
                "Dropped frame for closed connection",
                connection_id=self.connection_id,
                event_type=event_type,
                error=str(e),
            )
            return False

        self.frames_sent += 1
        ws_deliveries.labels(event_type=event_type).inc()
        return True

    async def _abort(self) -> None:
        try:
            await asyncio.wait_for(
                self.transport.close(code=1011, reason="Send timeout"), timeout=self.send_timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Error closing stalled connection", connection_id=self.connection_id, error=str(e))

    def get_connection_duration(self) -> float:
        return (datetime.now(timezone.utc) - self.connected_at).total_seconds()


class ConnectionRegistry:
    """Process-local registry of live connections, owned by the gateway."""

    def __init__(self, max_connections: Optional[int] = None, send_timeout: float = 5.0):
        self.max_connections = max_connections
        self.send_timeout = send_timeout
        self._connections: Dict[str, Connection] = {}
        self._by_user: Dict[str, Set[str]] = defaultdict(set)
        self._admins: Set[str] = set()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    @property
    def is_full(self) -> bool:
        return self.max_connections is not None and len(self._connections) >= self.max_connections

    def _update_gauges(self) -> None:
        admins = len(self._admins)
        ws_connections_active.labels(role="admin").set(admins)
        ws_connections_active.labels(role="user").set(len(self._connections) - admins)

    def register(
        self, connection_id: str, identity: Optional[Identity], transport: Transport
    ) -> Connection:
        """Record an authenticated connection. Anonymous registration is refused."""
        if identity is None:
            raise AuthenticationError("Cannot register a connection without an identity")
        if connection_id in self._connections:
            raise ValueError(f"Connection {connection_id} is already registered")

        connection = Connection(
            connection_id=connection_id,
            identity=identity,
            transport=transport,
            send_timeout=self.send_timeout,
        )
        self._connections[connection_id] = connection
        self._by_user[identity.user_id].add(connection_id)
        if identity.is_admin:
            self._admins.add(connection_id)

        self._update_gauges()
        logger.info(
            "Connection registered",
            connection_id=connection_id,
            user_id=identity.user_id,
            role=identity.role.value,
            total_connections=len(self._connections),
        )
        return connection

    def unregister(self, connection_id: str) -> Optional[Connection]:
        """Forget a connection. Unknown ids are ignored."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None

        connection.is_open = False
        user_id = connection.identity.user_id
        self._by_user[user_id].discard(connection_id)
        if not self._by_user[user_id]:
            del self._by_user[user_id]
        self._admins.discard(connection_id)

        self._update_gauges()
        logger.info(
            "Connection unregistered",
            connection_id=connection_id,
            user_id=user_id,
            duration=connection.get_connection_duration(),
            frames_sent=connection.frames_sent,
            remaining_connections=len(self._connections),
        )
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections_for(self, user_id: str) -> List[Connection]:
        """Every live connection opened by this user (tabs, devices)."""
        return [self._connections[cid] for cid in self._by_user.get(user_id, ())]

    def admin_connections(self) -> List[Connection]:
        return [self._connections[cid] for cid in self._admins]

    def all_connections(self) -> List[Connection]:
        return list(self._connections.values())

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_connections": len(self._connections),
            "admin_connections": len(self._admins),
            "distinct_users": len(self._by_user),
            "max_connections": self.max_connections,
        }

    async def close_all(self, code: int = 1001, reason: str = "Server shutdown") -> None:
        """Close and unregister every connection."""
        for connection in self.all_connections():
            self.unregister(connection.connection_id)
            try:
                await asyncio.wait_for(
                    connection.transport.close(code=code, reason=reason), timeout=self.send_timeout
                )
            except Exception as e:
                logger.debug("Error closing connection", connection_id=connection.connection_id, error=str(e))
