"""
Unit tests for app.core.telegram_client module.
"""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from app.core.telegram_client import TelegramClient


class TestTelegramClient:
    """Test TelegramClient class."""

    def test_is_configured(self):
        assert TelegramClient("123:abc").is_configured() is True
        assert TelegramClient("  ").is_configured() is False

    @pytest.mark.asyncio
    async def test_send_message_success(self):
        """Test a successful sendMessage call."""
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"ok": True, "result": {"message_id": 77}}

        with patch("app.core.telegram_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = mock_response
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await TelegramClient("123:abc").send_message(42, "hello", "HTML")

        assert result == (True, 77)
        call = mock_client_instance.post.await_args
        assert call.args[0] == "https://api.telegram.org/bot123:abc/sendMessage"
        assert call.kwargs["json"] == {"chat_id": 42, "text": "hello", "parse_mode": "HTML"}

    @pytest.mark.asyncio
    async def test_send_message_not_configured(self):
        """Test that nothing is sent without a token."""
        with patch("app.core.telegram_client.httpx.AsyncClient") as mock_client:
            result = await TelegramClient("").send_message(42, "hello")

        assert result == (False, None)
        mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_message_api_error(self):
        """Test a Bot API error response."""
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"ok": False, "description": "chat not found"}

        with patch("app.core.telegram_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = mock_response
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await TelegramClient("123:abc").send_message(42, "hello")

        assert result == (False, None)

    @pytest.mark.asyncio
    async def test_send_message_http_status(self):
        """Test a non-200 response."""
        mock_response = Mock()
        mock_response.status_code = 401
        mock_response.text = "Unauthorized"

        with patch("app.core.telegram_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = mock_response
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await TelegramClient("123:abc").send_message(42, "hello")

        assert result == (False, None)

    @pytest.mark.asyncio
    async def test_send_message_network_error(self):
        """Test that transport errors are reported, not raised."""
        with patch("app.core.telegram_client.httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.side_effect = httpx.ConnectError("refused")
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await TelegramClient("123:abc").send_message(42, "hello")

        assert result == (False, None)
