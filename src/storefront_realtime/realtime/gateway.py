"""
Realtime gateway: the authenticated entry and exit point for every socket.

A connection is only accepted after its bearer credential verifies; from
then on inbound frames are parsed, validated and dispatched to the chat
relay, and replies are correlated to requests by the envelope ``id``.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

import orjson
from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError
from starlette.websockets import WebSocketState

from ..auth import Identity, JWTHandler
from ..exceptions import (
    AuthenticationError,
    AuthorizationError,
    PersistenceError,
    StorefrontRealtimeError,
    ValidationError,
)
from ..telemetry.logger import ConnectionLogContext, get_logger
from ..telemetry.metrics import ws_connections_total, ws_events_received
from . import events
from .events import EventType
from .registry import Connection, ConnectionRegistry
from .relay import ChatRelay

logger = get_logger(__name__)

Handler = Callable[[Connection, Dict[str, Any]], Awaitable[Dict[str, Any]]]


def extract_token(websocket: WebSocket) -> Optional[str]:
    """Bearer credential from the Authorization header or the ``token`` query parameter."""
    header = websocket.headers.get("authorization")
    if header and header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return websocket.query_params.get("token") or None


class RealtimeGateway:
    """Authenticates sockets, owns their lifecycle and dispatches their events."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        relay: ChatRelay,
        jwt_handler: Optional[JWTHandler] = None,
        heartbeat_interval: int = 30,
    ):
        self.registry = registry
        self.relay = relay
        self.jwt_handler = jwt_handler or JWTHandler()
        self.heartbeat_interval = heartbeat_interval
        self.handlers: Dict[str, Handler] = {
            EventType.USER_MESSAGE.value: self._handle_user_message,
            EventType.ADMIN_MESSAGE.value: self._handle_admin_message,
            EventType.GET_THREAD.value: self._handle_get_thread,
            EventType.RECENT_THREADS.value: self._handle_recent_threads,
            EventType.TYPING.value: self._handle_typing,
            EventType.PING.value: self._handle_ping,
        }

    def authenticate(self, websocket: WebSocket) -> Identity:
        return self.jwt_handler.resolve_identity(extract_token(websocket))

    async def serve(self, websocket: WebSocket) -> None:
        """Run one socket from handshake to disconnect."""
        try:
            identity = self.authenticate(websocket)
        except AuthenticationError as e:
            ws_connections_total.labels(outcome="unauthenticated").inc()
            logger.warning("Realtime connection refused", reason=e.message)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
            return

        if self.registry.is_full:
            ws_connections_total.labels(outcome="over_capacity").inc()
            logger.warning("Realtime connection limit reached", limit=self.registry.max_connections)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Connection limit exceeded")
            return

        await websocket.accept()
        connection = self.registry.register(str(uuid.uuid4()), identity, websocket)
        ws_connections_total.labels(outcome="accepted").inc()

        heartbeat_task = None
        with ConnectionLogContext(connection.connection_id, identity.user_id):
            try:
                await connection.send(
                    events.frame(
                        EventType.CONNECTION,
                        {
                            "connectionId": connection.connection_id,
                            "status": "connected",
                            "identity": identity.to_dict(),
                            "timestamp": events.now_iso(),
                        },
                    )
                )
                if self.heartbeat_interval > 0:
                    heartbeat_task = asyncio.create_task(self._heartbeat(connection))

                while True:
                    raw = await websocket.receive_text()
                    await self.dispatch(connection, raw)

            except WebSocketDisconnect as e:
                logger.info("Realtime client disconnected", code=e.code)
            except Exception as e:
                logger.error("Realtime connection error", error=str(e), exc_info=True)
                if websocket.application_state == WebSocketState.CONNECTED:
                    await websocket.close(
                        code=status.WS_1011_INTERNAL_ERROR, reason="Internal server error"
                    )
            finally:
                self.registry.unregister(connection.connection_id)
                if heartbeat_task:
                    heartbeat_task.cancel()
                    await asyncio.gather(heartbeat_task, return_exceptions=True)

    async def dispatch(self, connection: Connection, raw: Any) -> Optional[Dict[str, Any]]:
        """
        Handle one inbound frame and send the reply, if any.

        Failures never propagate: unknown, malformed or unauthorized events
        are dropped, and only a request that carried an ``id`` is told why.
        """
        request_id = None
        event_type = "invalid"
        try:
            message = orjson.loads(raw) if isinstance(raw, (str, bytes)) else raw
            if not isinstance(message, dict):
                raise ValidationError("Frame must be a JSON object")
            request_id = events.coerce_request_id(message.get("id"))
            envelope = events.Envelope.model_validate(message)
            request_id = envelope.id
            event_type = envelope.type

            handler = self.handlers.get(envelope.type)
            if handler is None:
                event_type = "unknown"
                raise ValidationError(f"Unknown event type: {envelope.type}", field="type")

            data = await handler(connection, envelope.data)
            ws_events_received.labels(event_type=event_type, outcome="ok").inc()

            if request_id is None:
                return None
            reply = events.ack(request_id, data)

        except (orjson.JSONDecodeError, PydanticValidationError, ValidationError) as e:
            reply = self._drop(event_type, "validation", request_id, e, "VALIDATION_ERROR")
        except AuthorizationError as e:
            reply = self._drop(event_type, "unauthorized", request_id, e, e.error_code)
        except PersistenceError as e:
            logger.error("Realtime event failed on the store", event_type=event_type, error=e.message)
            reply = self._drop(event_type, "store_error", request_id, e, e.error_code)
        except StorefrontRealtimeError as e:
            reply = self._drop(event_type, "error", request_id, e, e.error_code)
        except Exception as e:
            logger.error("Realtime handler crashed", event_type=event_type, error=str(e), exc_info=True)
            ws_events_received.labels(event_type=event_type, outcome="error").inc()
            reply = events.error(request_id, "Internal server error", "INTERNAL_ERROR") if request_id else None

        if reply is not None:
            await connection.send(reply)
        return reply

    def _drop(
        self, event_type: str, outcome: str, request_id: Optional[str], exc: Exception, code: str
    ) -> Optional[Dict[str, Any]]:
        message = exc.message if isinstance(exc, StorefrontRealtimeError) else _describe(exc)
        ws_events_received.labels(event_type=event_type, outcome=outcome).inc()
        logger.info("Realtime event dropped", event_type=event_type, outcome=outcome, reason=message)
        if request_id is None:
            return None
        return events.error(request_id, message, code)

    async def _handle_user_message(self, connection: Connection, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = events.UserMessagePayload.model_validate(data)
        message = await self.relay.send_user_message(connection.identity, payload.text)
        return {"message": message.to_wire()}

    async def _handle_admin_message(self, connection: Connection, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = events.AdminMessagePayload.model_validate(data)
        message = await self.relay.send_admin_message(
            connection.identity, payload.target_user_id, payload.text
        )
        return {"message": message.to_wire()}

    async def _handle_get_thread(self, connection: Connection, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = events.GetThreadPayload.model_validate(data)
        messages = await self.relay.get_thread(
            connection.identity, payload.target_user_id, payload.before, payload.limit
        )
        thread_user_id = payload.target_user_id if connection.identity.is_admin else connection.identity.user_id
        return {"threadUserId": thread_user_id, "messages": [m.to_wire() for m in messages]}

    async def _handle_recent_threads(self, connection: Connection, data: Dict[str, Any]) -> Dict[str, Any]:
        summaries = await self.relay.get_recent_threads(connection.identity)
        return {"threads": [s.to_wire() for s in summaries]}

    async def _handle_typing(self, connection: Connection, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = events.TypingPayload.model_validate(data)
        await self.relay.typing(connection.identity, payload.target_user_id, payload.is_typing)
        return {"ok": True}

    async def _handle_ping(self, connection: Connection, data: Dict[str, Any]) -> Dict[str, Any]:
        await connection.send(events.frame(EventType.PONG, {"timestamp": events.now_iso()}))
        return {"ok": True}

    async def _heartbeat(self, connection: Connection) -> None:
        """Send periodic heartbeat frames until the connection closes."""
        while connection.is_open:
            await asyncio.sleep(self.heartbeat_interval)
            if not await connection.send(events.frame(EventType.HEARTBEAT, {"timestamp": events.now_iso()})):
                break

    async def shutdown(self) -> None:
        logger.info("Shutting down realtime gateway", **self.registry.get_stats())
        await self.relay.shutdown()
        await self.registry.close_all(code=status.WS_1001_GOING_AWAY, reason="Server shutdown")


def _describe(exc: Exception) -> str:
    if isinstance(exc, PydanticValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "invalid value")
    return str(exc) or exc.__class__.__name__
