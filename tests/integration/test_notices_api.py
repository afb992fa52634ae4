"""Integration tests for the notices REST API and its broadcast."""

import pytest


@pytest.mark.integration
class TestNoticesAPI:
    def test_create_requires_authentication(self, client):
        response = client.post("/api/v1/notices", json={"message": "hello"})

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error_code"] == "AUTHENTICATION_REQUIRED"

    def test_create_requires_admin(self, client, auth_headers):
        response = client.post("/api/v1/notices", json={"message": "hello"}, headers=auth_headers("u1"))

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    @pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}, {"message": "x" * 2001}])
    def test_create_validates_body(self, client, auth_headers, body):
        response = client.post("/api/v1/notices", json=body, headers=auth_headers("admin-1", "admin"))

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_create_and_list(self, client, auth_headers):
        created = client.post(
            "/api/v1/notices",
            json={"title": "  Holiday hours ", "message": "Closed on Monday"},
            headers=auth_headers("admin-1", "admin"),
        )

        assert created.status_code == 201
        notice = created.json()["data"]
        assert notice["title"] == "Holiday hours"
        assert notice["createdBy"] == "admin-1"

        listed = client.get("/api/v1/notices")
        assert listed.status_code == 200
        assert [n["id"] for n in listed.json()["data"]["notices"]] == [notice["id"]]

    def test_notice_broadcast_to_connected_clients(self, client, auth_headers, make_token):
        with client.websocket_connect(f"/ws?token={make_token('u1')}") as first, client.websocket_connect(
            f"/ws?token={make_token('u2')}"
        ) as second:
            first.receive_json()
            second.receive_json()

            response = client.post(
                "/api/v1/notices",
                json={"message": "Flash sale!"},
                headers=auth_headers("admin-1", "admin"),
            )
            assert response.status_code == 201
            notice_id = response.json()["data"]["id"]

            for websocket in (first, second):
                pushed = websocket.receive_json()
                assert pushed["type"] == "notice:new"
                assert pushed["data"]["id"] == notice_id
                assert pushed["data"]["message"] == "Flash sale!"
                assert pushed["data"]["title"] is None


@pytest.mark.integration
class TestHealthAPI:
    def test_health(self, client, make_token):
        with client.websocket_connect(f"/ws?token={make_token('u1')}") as websocket:
            websocket.receive_json()
            response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["store_backend"] == "memory"
        assert body["connections"]["active_connections"] == 1

    def test_ready_without_redis(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["checks"]["redis"] == "not_configured"

    def test_request_id_header(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_metrics_exposed(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "storefront_ws_connections_total" in response.text
