# tests/test_service_endpoints.py
"""
Tests for the free service endpoints: health, discovery, info, registration
and error rendering.
"""
import asyncio
import pytest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from places_gateway.main import create_app
from places_gateway.services.registration import RegistrationResult, StackRegistrationService

from conftest import PAY_TO, StubFacilitator, make_settings


class TestHealth:
    """Tests for GET /health."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "Places"
        assert body["version"] == "2.0.0"
        assert body["uptime"] >= 0
        assert body["payment"] == {
            "network": "base-sepolia",
            "price": "$0.01",
            "payTo": PAY_TO,
            "facilitator": "https://facilitator.test",
        }
        assert body["registration"]["status"] == "unregistered"

    def test_mainnet_reports_trusted_facilitator(self):
        client = TestClient(create_app(
            make_settings(NETWORK="base", CDP_API_KEY_ID="key-id", CDP_API_KEY_SECRET="secret"),
            facilitator_client=StubFacilitator(),
        ))
        assert client.get("/health").json()["payment"]["facilitator"] == "CDP Official (mainnet)"


class TestDiscovery:
    """Tests for GET /.well-known/x402."""

    def test_discovery_document(self, client):
        response = client.get("/.well-known/x402")

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == "1.0"
        assert body["service"] == "Places"
        assert body["payment"]["protocol"] == "x402 v1.0"
        assert body["payment"]["price"] == "$0.01"
        assert body["payment"]["maxAmountRequired"] == "10000"
        assert body["payment"]["payTo"] == PAY_TO
        assert body["payment"]["network"] == "base-sepolia"
        assert body["contact"]["documentation"] == "http://testserver/api/info"

        endpoint = body["endpoints"][0]
        assert endpoint["path"] == "/api/places/text-search"
        assert endpoint["method"] == "POST"
        assert endpoint["payment_required"] is True
        assert endpoint["inputSchema"]["required"] == ["query"]
        assert "metadata" in endpoint["outputSchema"]["properties"]

    def test_service_info(self, client):
        response = client.get("/api/info")

        assert response.status_code == 200
        body = response.json()
        assert "/api/places/text-search" in body["endpoints"]
        usage = body["usage"]
        assert usage["example_request"]["endpoint"] == "/api/places/text-search"
        assert "X-Payment" in usage["example_request"]["headers"]
        assert usage["curl_example"].startswith("curl -X POST http://testserver/api/places/text-search")

    def test_root_redirects_to_info(self, client):
        response = client.get("/", follow_redirects=False)
        assert response.status_code in (307, 302)
        assert response.headers["location"] == "/api/info"


class TestErrors:
    """Tests for the error body shape."""

    def test_unknown_endpoint(self, client):
        response = client.get("/api/nope")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "Not Found"
        assert body["code"] == 404
        assert "GET /api/nope" in body["message"]
        assert "POST /api/places/text-search" in body["details"]["available_endpoints"]
        assert "GET /health" in body["details"]["available_endpoints"]

    def test_method_not_allowed(self, client):
        response = client.get("/api/register")
        assert response.status_code == 405
        assert response.json()["error"] == "Method Not Allowed"


def registration_app(session, disabled=True):
    settings = make_settings(DISABLE_STACK_REGISTRATION=disabled)
    app = create_app(settings, facilitator_client=StubFacilitator())
    app.state.registration._session = session
    return app


def make_response(status_code=200, json_body=None):
    response = MagicMock(status_code=status_code, ok=200 <= status_code < 400)
    response.json.return_value = json_body if json_body is not None else {}
    return response


class TestRegistrationEndpoints:
    """Tests for /api/register and /api/register/status."""

    def test_manual_registration(self):
        session = MagicMock()
        session.get.side_effect = [make_response(200), make_response(json_body={"vendors": []})]
        session.post.return_value = make_response(json_body={"success": True, "vendor": {"id": "v-11"}})
        client = TestClient(registration_app(session))

        response = client.post("/api/register")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["vendorId"] == "v-11"
        assert body["stackUrl"] == "http://stack.test"
        assert body["selfUrl"] == "http://places.test:3000"
        assert body["state"]["status"] == "registered"

        registered = session.post.call_args.kwargs["json"]
        assert registered["url"] == "http://places.test:3000"
        assert registered["walletAddress"] == PAY_TO

    def test_manual_registration_is_sticky(self):
        session = MagicMock()
        session.get.side_effect = [make_response(200), make_response(json_body={"vendors": []})]
        session.post.return_value = make_response(json_body={"success": True, "vendor": {"id": "v-11"}})
        client = TestClient(registration_app(session))

        client.post("/api/register")
        again = client.post("/api/register")

        assert again.status_code == 200
        assert again.json()["alreadyRegistered"] is True
        assert session.post.call_count == 1

    def test_manual_registration_registry_down(self):
        session = MagicMock()
        session.get.return_value = make_response(503)
        client = TestClient(registration_app(session))

        response = client.post("/api/register")

        assert response.status_code == 502
        assert response.json()["success"] is False

    def test_registration_status(self):
        session = MagicMock()
        session.get.return_value = make_response(json_body={"vendors": [{"id": "v-2", "url": "http://places.test:3000/"}]})
        client = TestClient(registration_app(session))

        response = client.get("/api/register/status")

        assert response.status_code == 200
        body = response.json()
        assert body["registered"] is True
        assert body["vendorId"] == "v-2"
        assert body["autoRegistrationDisabled"] is True
        assert body["state"]["status"] == "unregistered"

    def test_registration_status_registry_down(self):
        session = MagicMock()
        session.get.return_value = make_response(500)
        client = TestClient(registration_app(session))

        body = client.get("/api/register/status").json()

        assert body["registered"] is False


class TestLifespan:
    """The startup registration runs beside the server."""

    def test_startup_runs_registration(self):
        service = MagicMock(spec=StackRegistrationService)
        service.state = MagicMock()
        service.state.to_dict.return_value = {"status": "registering"}
        calls = []

        async def run():
            calls.append("run")
            return RegistrationResult(success=True)

        service.run.side_effect = run
        app = create_app(make_settings(), facilitator_client=StubFacilitator(), registration_service=service)

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200

        assert calls == ["run"]

    def test_slow_registration_does_not_block_startup(self):
        """The server answers while registration is still waiting."""
        service = MagicMock(spec=StackRegistrationService)
        service.state = MagicMock()
        service.state.to_dict.return_value = {"status": "registering"}

        async def run():
            await asyncio.sleep(3600)

        service.run.side_effect = run
        app = create_app(make_settings(), facilitator_client=StubFacilitator(), registration_service=service)

        with TestClient(app) as client:
            assert client.get("/health").json()["registration"] == {"status": "registering"}
