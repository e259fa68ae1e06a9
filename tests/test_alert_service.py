import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import httpx

from app.services.alert_service import (
    alert_critical,
    alert_error,
    alert_warning,
    send_alert,
)


def _mock_async_client(mock_client_class, status_code=200):
    mock_client = MagicMock()
    mock_client_class.return_value.__aenter__.return_value = mock_client
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_client.post = AsyncMock(return_value=mock_response)
    return mock_client


class TestSendAlert:
    @patch("app.services.alert_service.ALERT_BOT_TOKEN", None)
    @patch("app.services.alert_service.ALERT_CHAT_ID", None)
    def test_returns_false_when_not_configured(self):
        result = asyncio.run(send_alert("ERROR", "Test message"))
        assert result is False

    @patch("app.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("app.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("app.services.alert_service.httpx.AsyncClient")
    def test_sends_alert_to_telegram(self, mock_client_class):
        mock_client = _mock_async_client(mock_client_class)

        result = asyncio.run(send_alert("ERROR", "Reply send failed"))

        assert result is True
        mock_client.post.assert_called_once()

        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token/sendMessage" in call_args[0][0]
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "ERROR" in json_data["text"]
        assert "Reply send failed" in json_data["text"]

    @patch("app.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("app.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("app.services.alert_service.httpx.AsyncClient")
    def test_includes_context_in_message(self, mock_client_class):
        mock_client = _mock_async_client(mock_client_class)

        context = {"integration_id": "erxes-1", "error": "timeout"}
        asyncio.run(send_alert("ERROR", "Test message", context))

        json_data = mock_client.post.call_args[1]["json"]
        assert "integration_id" in json_data["text"]
        assert "erxes-1" in json_data["text"]

    @patch("app.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("app.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("app.services.alert_service.httpx.AsyncClient")
    def test_returns_false_on_telegram_error(self, mock_client_class):
        _mock_async_client(mock_client_class, status_code=400)

        result = asyncio.run(send_alert("ERROR", "Test message"))

        assert result is False

    @patch("app.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("app.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("app.services.alert_service.httpx.AsyncClient")
    def test_returns_false_on_network_error(self, mock_client_class):
        mock_client = _mock_async_client(mock_client_class)
        mock_client.post.side_effect = httpx.ConnectError("Network error")

        result = asyncio.run(send_alert("ERROR", "Test message"))

        assert result is False


class TestAlertShortcuts:
    @patch("app.services.alert_service.send_alert", new_callable=AsyncMock)
    def test_alert_error_calls_send_alert_with_error_level(self, mock_send):
        mock_send.return_value = True

        result = asyncio.run(alert_error("Test error", {"key": "value"}))

        mock_send.assert_awaited_once_with("ERROR", "Test error", {"key": "value"})
        assert result is True

    @patch("app.services.alert_service.send_alert", new_callable=AsyncMock)
    def test_alert_critical_calls_send_alert_with_critical_level(self, mock_send):
        mock_send.return_value = True

        result = asyncio.run(alert_critical("Critical issue"))

        mock_send.assert_awaited_once_with("CRITICAL", "Critical issue", None)
        assert result is True

    @patch("app.services.alert_service.send_alert", new_callable=AsyncMock)
    def test_alert_warning_calls_send_alert_with_warning_level(self, mock_send):
        mock_send.return_value = True

        result = asyncio.run(alert_warning("Warning message"))

        mock_send.assert_awaited_once_with("WARNING", "Warning message", None)
        assert result is True


class TestAlertEmojis:
    @patch("app.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("app.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("app.services.alert_service.httpx.AsyncClient")
    def test_error_has_correct_emoji(self, mock_client_class):
        mock_client = _mock_async_client(mock_client_class)

        asyncio.run(send_alert("ERROR", "Test"))

        json_data = mock_client.post.call_args[1]["json"]
        assert "❌" in json_data["text"]

    @patch("app.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("app.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("app.services.alert_service.httpx.AsyncClient")
    def test_critical_has_correct_emoji(self, mock_client_class):
        mock_client = _mock_async_client(mock_client_class)

        asyncio.run(send_alert("CRITICAL", "Test"))

        json_data = mock_client.post.call_args[1]["json"]
        assert "🔥" in json_data["text"]
