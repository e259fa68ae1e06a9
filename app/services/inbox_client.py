"""Client for the operator inbox that owns canonical customer and conversation ids.

Every record is pushed to ``POST {api_url}/integrations-api`` as
``{"action": ..., "payload": "<json>"}``; the inbox answers with the ``_id``
it assigned. Without an ``api_url`` the client is disabled and every call
returns None.
"""

import json
from typing import Optional

import httpx

from app.errors import UpstreamError
from app.logging_config import get_logger
from app.models import Conversation, Customer, Integration, Message

logger = get_logger("inbox_client")

CREATE_CUSTOMER = "create-customer"
CREATE_CONVERSATION = "create-conversation"
CREATE_MESSAGE = "create-conversation-message"


class InboxClient:
    def __init__(
        self,
        api_url: Optional[str],
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/") if api_url else None
        self._http_client = http_client
        if self.api_url and self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()

    async def _post(self, action: str, payload: dict) -> Optional[str]:
        if not self.enabled:
            return None

        url = f"{self.api_url}/integrations-api"
        body = {"action": action, "payload": json.dumps(payload, default=str)}
        try:
            response = await self._http_client.post(url, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"Inbox API {e.response.status_code}: {e.response.text[:200]}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"Inbox API error: {e}") from e

        inbox_id = data.get("_id") if isinstance(data, dict) else None
        if not inbox_id:
            raise UpstreamError(f"Inbox API returned no id for {action}")

        logger.debug(f"Inbox {action} -> {inbox_id}")
        return inbox_id

    async def create_customer(self, integration: Integration, customer: Customer) -> Optional[str]:
        return await self._post(
            CREATE_CUSTOMER,
            {
                "integrationId": integration.erxes_api_id,
                "firstName": customer.given_name,
                "lastName": customer.surname,
                "phones": [customer.phone] if customer.phone else [],
                "avatar": customer.avatar_url,
            },
        )

    async def create_conversation(
        self,
        integration: Integration,
        conversation: Conversation,
        customer_inbox_id: str,
        content: Optional[str] = None,
    ) -> Optional[str]:
        return await self._post(
            CREATE_CONVERSATION,
            {
                "integrationId": integration.erxes_api_id,
                "customerId": customer_inbox_id,
                "content": content or "",
                "createdAt": conversation.last_message_at or conversation.created_at,
            },
        )

    async def create_message(
        self,
        conversation_inbox_id: str,
        customer_inbox_id: str,
        message: Message,
    ) -> Optional[str]:
        """Forward an inbound message to the inbox thread."""
        return await self._post(
            CREATE_MESSAGE,
            {
                "conversationId": conversation_inbox_id,
                "customerId": customer_inbox_id,
                "content": message.content or "",
                "attachments": [message.attachment] if message.attachment else [],
            },
        )
