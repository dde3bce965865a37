"""
Integration tests for the relay HTTP endpoints.
"""

import base64
import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.settings import Config
from app.main import app
from otp_relay.encryption import OAEP_PADDING
from otp_relay.service import RelayService, get_relay_service

SECRET = "whsec_integration"


class TestRelayEndpoints:
    """Test the webhook, SMS ingest and health endpoints end to end."""

    @pytest.fixture
    def service(self):
        """Relay service built from test config, without the scheduler running."""
        relay_service = RelayService.from_config(
            Config.create_test_config(webhook_secret=SECRET, policy_api_key="policy-key")
        )
        app.dependency_overrides[get_relay_service] = lambda: relay_service
        yield relay_service
        app.dependency_overrides.clear()

    @pytest.fixture
    def client(self, service):
        """Create a test client."""
        return TestClient(app)

    @pytest.fixture
    def auth_headers(self):
        """Headers with the SMS ingest token."""
        with patch("app.core.auth.config") as auth_config:
            auth_config.x_token = "12345678910"
            yield {"X-Token": "12345678910"}

    @pytest.fixture
    def approved_payload(self, public_key_b64):
        return {
            "event": "otp_request.approved",
            "data": {
                "requestId": "req_1",
                "publicKey": public_key_b64,
                "expectedSender": "Acme",
                "filter": {"sources": ["sms"]},
            },
        }

    def test_health(self, client):
        """Test the health endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["pending"] == 0
        assert data["sources"] == ["sms"]

    def test_webhook_approved(self, client, service, approved_payload):
        """Test that an approved webhook starts a watch."""
        response = client.post(
            "/api/webhook",
            json=approved_payload,
            headers={"X-Webhook-Signature": SECRET},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert "req_1" in service.registry

    def test_webhook_bad_signature(self, client, service, approved_payload):
        """Test that a wrong secret is a 401 and changes nothing."""
        response = client.post(
            "/api/webhook",
            json=approved_payload,
            headers={"X-Webhook-Signature": "wrong"},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        assert service.registry.is_empty()

    def test_webhook_missing_signature(self, client, approved_payload):
        """Test that an unsigned webhook is a 401."""
        response = client.post("/api/webhook", json=approved_payload)

        assert response.status_code == 401

    def test_webhook_unknown_event(self, client):
        """Test that an unknown event is a 400."""
        response = client.post(
            "/api/webhook",
            json={"event": "otp_request.denied", "data": {"requestId": "req_1"}},
            headers={"X-Webhook-Signature": SECRET},
        )

        assert response.status_code == 400
        assert "Unknown webhook event" in response.json()["error"]

    def test_webhook_invalid_json(self, client):
        """Test that a body that is not JSON is a 400."""
        response = client.post(
            "/api/webhook",
            content=b"not json",
            headers={"X-Webhook-Signature": SECRET, "Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_webhook_cancelled(self, client, service, approved_payload):
        """Test that cancelling removes the watch, twice without error."""
        client.post("/api/webhook", json=approved_payload, headers={"X-Webhook-Signature": SECRET})
        cancel = {"event": "otp_request.cancelled", "data": {"requestId": "req_1"}}

        first = client.post("/api/webhook", json=cancel, headers={"X-Webhook-Signature": SECRET})
        second = client.post("/api/webhook", json=cancel, headers={"X-Webhook-Signature": SECRET})

        assert first.status_code == 200
        assert second.status_code == 200
        assert service.registry.is_empty()

    def test_webhook_internal_error(self, client, service, approved_payload):
        """Test that unexpected failures are a 500 without details."""
        with patch.object(service.registry, "add", side_effect=RuntimeError("disk on fire")):
            response = client.post(
                "/api/webhook",
                json=approved_payload,
                headers={"X-Webhook-Signature": SECRET},
            )

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_sms_ingest(self, client, service, auth_headers):
        """Test that an ingested SMS is buffered."""
        response = client.post(
            "/api/sms",
            json={"sender": "+15550001111", "body": "Acme code: 123456"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "id": "sms_1"}
        assert len(service.sms_inbox) == 1

    def test_sms_ingest_bad_token(self, client, auth_headers):
        """Test that the SMS endpoint requires the X-Token header."""
        response = client.post(
            "/api/sms",
            json={"sender": "+15550001111", "body": "hi"},
            headers={"X-Token": "wrong"},
        )

        assert response.status_code == 400

    def test_sms_ingest_invalid_body(self, client, auth_headers):
        """Test that a missing sender is rejected by validation."""
        response = client.post("/api/sms", json={"body": "hi"}, headers=auth_headers)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_approved_sms_delivered(
        self, client, service, auth_headers, approved_payload, rsa_private_key
    ):
        """Test the full path from approval through SMS capture to delivery."""
        sms_poller = service.pollers[0]
        await sms_poller.prime()

        client.post("/api/webhook", json=approved_payload, headers={"X-Webhook-Signature": SECRET})
        client.post(
            "/api/sms",
            json={"sender": "+15550001111", "body": "Acme code: 482913. Do not share it."},
            headers=auth_headers,
        )

        with patch.object(
            service.dispatcher.api_client,
            "submit_otp",
            new=AsyncMock(return_value={"success": True}),
        ) as mock_submit:
            await sms_poller.tick()

        request_id, payload, source, metadata = mock_submit.await_args.args
        assert request_id == "req_1"
        assert source == "sms"
        assert metadata["smsId"] == "sms_1"
        ciphertext = base64.b64decode(json.loads(payload)["ciphertext"])
        assert rsa_private_key.decrypt(ciphertext, OAEP_PADDING) == b"482913"
        assert service.registry.is_empty()
