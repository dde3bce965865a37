"""
Unit tests for otp_relay.api_client module.
"""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from otp_relay.api_client import PolicyApiClient
from otp_relay.errors import DeliveryRejectedError, TransientFetchError


def make_response(status_code=200, json_body=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_body
    return response


class TestPolicyApiClient:
    """Test PolicyApiClient class."""

    @pytest.mark.asyncio
    async def test_submit_otp_success(self):
        """Test the request shape and a successful response."""
        client = PolicyApiClient("https://policy.example.com/", "secret-key", timeout=5.0)

        with patch("otp_relay.api_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = make_response(200, {"success": True})
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.submit_otp(
                "req_1", '{"version":1}', "email", {"emailId": "42"}
            )

        assert result == {"success": True}
        call = mock_client_instance.post.await_args
        assert call.args[0] == "https://policy.example.com/v1/otp/req_1/receive"
        assert call.kwargs["json"] == {
            "encryptedPayload": '{"version":1}',
            "source": "email",
            "metadata": {"emailId": "42"},
        }
        assert call.kwargs["headers"]["Authorization"] == "Bearer secret-key"
        assert call.kwargs["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_submit_otp_empty_body(self):
        """Test a 204-style response without JSON."""
        client = PolicyApiClient("https://policy.example.com", "key")

        with patch("otp_relay.api_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = make_response(204)
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            assert await client.submit_otp("req_1", "{}", "sms", {}) == {}

    @pytest.mark.asyncio
    async def test_submit_otp_http_error_status(self):
        """Test that a non-2xx status is a rejection carrying the status code."""
        client = PolicyApiClient("https://policy.example.com", "key")

        with patch("otp_relay.api_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = make_response(
                404, {"error": "not found"}, text="not found"
            )
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            with pytest.raises(DeliveryRejectedError) as exc_info:
                await client.submit_otp("req_1", "{}", "email", {})

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_submit_otp_success_false(self):
        """Test that a 200 with success false is still a rejection."""
        client = PolicyApiClient("https://policy.example.com", "key")

        with patch("otp_relay.api_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = make_response(
                200, {"success": False, "message": "request expired"}
            )
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            with pytest.raises(DeliveryRejectedError, match="request expired"):
                await client.submit_otp("req_1", "{}", "email", {})

    @pytest.mark.asyncio
    async def test_submit_otp_network_error(self):
        """Test that transport failures are reported as transient."""
        client = PolicyApiClient("https://policy.example.com", "key")

        with patch("otp_relay.api_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.side_effect = httpx.ConnectError("refused")
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            with pytest.raises(TransientFetchError):
                await client.submit_otp("req_1", "{}", "email", {})
