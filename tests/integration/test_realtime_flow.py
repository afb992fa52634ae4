"""Integration tests for the realtime WebSocket channel."""

import pytest
from starlette.websockets import WebSocketDisconnect


def ws_url(token=None):
    return f"/ws?token={token}" if token else "/ws"


@pytest.mark.integration
class TestHandshake:
    def test_connection_without_token_refused(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(ws_url()):
                pass
        assert exc_info.value.code == 1008

    def test_connection_with_bad_token_refused(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(ws_url("garbage")):
                pass
        assert exc_info.value.code == 1008

    def test_welcome_frame_carries_identity(self, client, make_token):
        with client.websocket_connect(ws_url(make_token("u1"))) as websocket:
            welcome = websocket.receive_json()

        assert welcome["type"] == "connection"
        assert welcome["data"]["status"] == "connected"
        assert welcome["data"]["identity"] == {"userId": "u1", "role": "user"}
        assert welcome["data"]["connectionId"]

    def test_authorization_header_accepted(self, client, make_token):
        headers = {"Authorization": f"Bearer {make_token('admin-1', 'admin')}"}
        with client.websocket_connect("/ws", headers=headers) as websocket:
            welcome = websocket.receive_json()

        assert welcome["data"]["identity"]["role"] == "admin"


@pytest.mark.integration
class TestChatFlow:
    def test_user_admin_conversation(self, client, make_token):
        with client.websocket_connect(ws_url(make_token("admin-1", "admin"))) as admin, client.websocket_connect(
            ws_url(make_token("u1"))
        ) as user:
            admin.receive_json()
            user.receive_json()

            user.send_json({"type": "chat:user_message", "id": "1", "data": {"text": "Is this in stock?"}})
            own_copy = user.receive_json()
            ack = user.receive_json()
            at_admin = admin.receive_json()

            assert own_copy["type"] == "chat:message"
            assert ack == {"type": "ack", "id": "1", "data": {"message": own_copy["data"]}}
            assert at_admin["data"]["text"] == "Is this in stock?"
            assert at_admin["data"]["threadUserId"] == "u1"
            assert at_admin["data"]["from"] == "user"

            admin.send_json(
                {"type": "chat:admin_message", "id": "a1", "data": {"targetUserId": "u1", "text": "Yes, 3 left"}}
            )
            echo = admin.receive_json()
            admin_ack = admin.receive_json()
            reply = user.receive_json()

            assert echo["type"] == "chat:message"
            assert admin_ack["type"] == "ack"
            assert reply["data"]["text"] == "Yes, 3 left"
            assert reply["data"]["from"] == "admin"

            user.send_json({"type": "chat:get_thread", "id": "2", "data": {}})
            thread = user.receive_json()
            assert [m["text"] for m in thread["data"]["messages"]] == ["Is this in stock?", "Yes, 3 left"]

            admin.send_json({"type": "chat:recent_threads", "id": "a2"})
            inbox = admin.receive_json()
            assert inbox["data"]["threads"][0]["userId"] == "u1"
            assert inbox["data"]["threads"][0]["lastText"] == "Yes, 3 left"

    def test_user_cannot_impersonate_admin(self, client, make_token):
        with client.websocket_connect(ws_url(make_token("u1"))) as user:
            user.receive_json()

            user.send_json(
                {"type": "chat:admin_message", "id": "x", "data": {"targetUserId": "u2", "text": "hi"}}
            )
            error = user.receive_json()

            assert error["type"] == "error"
            assert error["id"] == "x"
            assert error["data"]["code"] == "FORBIDDEN"

            # The connection stays usable
            user.send_json({"type": "ping", "id": "p"})
            assert user.receive_json()["type"] == "pong"
            assert user.receive_json() == {"type": "ack", "id": "p", "data": {"ok": True}}

    def test_typing_relayed_to_admin(self, client, make_token):
        with client.websocket_connect(ws_url(make_token("admin-1", "admin"))) as admin, client.websocket_connect(
            ws_url(make_token("u1"))
        ) as user:
            admin.receive_json()
            user.receive_json()

            user.send_json({"type": "typing", "data": {"isTyping": True}})
            signal = admin.receive_json()

            assert signal == {"type": "typing", "data": {"threadUserId": "u1", "from": "user", "isTyping": True}}

    def test_disconnect_unregisters(self, client, make_token, app):
        registry = app.state.services.registry
        with client.websocket_connect(ws_url(make_token("u1"))) as user:
            user.receive_json()
            assert len(registry.connections_for("u1")) == 1

        assert registry.connections_for("u1") == []
