from typing import Optional

import httpx

from app.errors import UpstreamError
from app.logging_config import get_logger

logger = get_logger("whatsapp_client")


class WhatsAppClient:
    """Client for the instance-based WhatsApp provider API."""

    def __init__(self, api_url: str, timeout: float = 30.0, http_client: Optional[httpx.AsyncClient] = None):
        self.api_url = api_url.rstrip("/")
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http_client.aclose()

    async def _make_request(self, instance_id: str, token: str, method: str, payload: dict) -> dict:
        url = f"{self.api_url}/instance{instance_id}/{method}"
        try:
            response = await self._http_client.post(url, params={"token": token}, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"WhatsApp API {e.response.status_code}: {e.response.text[:200]}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"WhatsApp API error: {e}") from e

        if not data.get("sent") or not data.get("id"):
            raise UpstreamError(f"WhatsApp API did not send message: {data.get('message') or data}")

        logger.info(
            "WhatsApp message sent",
            extra={"context": {"instance_id": instance_id, "method": method, "message_id": data["id"]}},
        )
        return data

    async def send_message(self, chat_id: str, body: str, instance_id: str, token: str) -> dict:
        """Send text message to a chat."""
        return await self._make_request(instance_id, token, "sendMessage", {"chatId": chat_id, "body": body})

    async def send_file(
        self,
        chat_id: str,
        url: str,
        filename: str,
        caption: Optional[str],
        instance_id: str,
        token: str,
    ) -> dict:
        """Send file by URL to a chat."""
        payload = {"chatId": chat_id, "body": url, "filename": filename}
        if caption:
            payload["caption"] = caption
        return await self._make_request(instance_id, token, "sendFile", payload)
