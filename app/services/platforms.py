"""Per-platform adapters and the registry that selects them by integration kind.

Adding a platform means adding a ``PlatformAdapter`` subclass and registering
it in ``build_registry``.
"""

from dataclasses import dataclass
from posixpath import basename
from typing import Iterable, Optional
from urllib.parse import urlparse

from app.errors import NotConfigured, NotFoundError, UnknownIntegrationKind, UpstreamError, ValidationError
from app.models import Conversation, Customer, Integration
from app.services.conversation_service import ConversationStore
from app.services.customer_service import CustomerStore, ProfileHint
from app.services.message_service import MessageStore
from app.services.smooch_client import SmoochClient
from app.services.whatsapp_client import WhatsAppClient


@dataclass(frozen=True)
class PlatformModels:
    customers: CustomerStore
    conversations: ConversationStore
    messages: MessageStore


class PlatformAdapter:
    kind = ""
    # (incoming prop name, stored credential key)
    required_props: tuple[tuple[str, str], ...] = ()

    @property
    def required_credentials(self) -> tuple[str, ...]:
        return tuple(key for _, key in self.required_props)

    def build_credentials(self, props: dict) -> dict:
        missing = [name for name, _ in self.required_props if not props.get(name)]
        if missing:
            raise ValidationError(f"Missing {self.kind} credentials: {', '.join(missing)}")
        return {key: props[name] for name, key in self.required_props}

    def check_credentials(self, integration: Integration) -> None:
        """Raise NotConfigured if a stored credential the kind needs is empty."""
        missing = [key for key in self.required_credentials if not integration.credential(key)]
        if missing:
            raise NotConfigured(
                f"Integration {integration.erxes_api_id} is missing credentials: {', '.join(missing)}"
            )

    def extract_avatar_hint(self, raw_profile: dict) -> ProfileHint:
        return ProfileHint()

    def external_id_for(self, credentials: dict) -> Optional[str]:
        """Inbound routing key known before any remote call."""
        return None

    def ensure_available(self) -> None:
        """Raise if the platform cannot be reached right now."""

    async def register_remote(self, props: dict) -> Optional[str]:
        """Create the account on the platform side, return its routing key."""
        return None

    async def send_reply(
        self,
        integration: Integration,
        conversation: Conversation,
        customer: Customer,
        content: str,
        attachment: Optional[dict],
    ) -> str:
        """Send reply on the platform, return the platform message id."""
        raise NotImplementedError


class SmoochPlatform(PlatformAdapter):
    """Channel reached through the Smooch aggregator."""

    def __init__(self, client: SmoochClient):
        self.client = client

    def ensure_available(self):
        if not self.client.ready:
            raise NotConfigured(f"Smooch client is {self.client.state.value}")

    async def register_remote(self, props):
        data = await self.client.create_integration({**props, "type": self.kind})
        integration_id = (data.get("integration") or {}).get("_id")
        if not integration_id:
            raise UpstreamError("Smooch response has no integration id")
        return integration_id

    async def send_reply(self, integration, conversation, customer, content, attachment):
        message = {"text": content, "role": "appMaker", "type": "text"}
        if attachment:
            message["type"] = "file"
            message["mediaUrl"] = attachment["url"]

        data = await self.client.send_message(customer.platform_user_id, message)
        message_id = (data.get("message") or {}).get("_id")
        if not message_id:
            raise UpstreamError("Smooch response has no message id")
        return message_id


class TelegramPlatform(SmoochPlatform):
    kind = "telegram"
    required_props = (("token", "telegram_bot_token"),)

    def extract_avatar_hint(self, raw_profile):
        photos = (raw_profile.get("raw") or {}).get("profile_photos") or {}
        if not photos.get("total_count"):
            return ProfileHint()
        try:
            file_id = photos["photos"][0][0]["file_id"]
        except (KeyError, IndexError, TypeError):
            return ProfileHint()
        return ProfileHint(avatar_file_id=file_id)


class ViberPlatform(SmoochPlatform):
    kind = "viber"
    required_props = (("token", "viber_bot_token"),)

    def extract_avatar_hint(self, raw_profile):
        return ProfileHint(avatar_url=(raw_profile.get("raw") or {}).get("avatar"))


class LinePlatform(SmoochPlatform):
    kind = "line"
    required_props = (
        ("channelId", "line_channel_id"),
        ("channelSecret", "line_channel_secret"),
    )

    def extract_avatar_hint(self, raw_profile):
        return ProfileHint(avatar_url=(raw_profile.get("raw") or {}).get("pictureUrl"))


class TwilioPlatform(SmoochPlatform):
    kind = "twilio"
    required_props = (
        ("accountSid", "twilio_sid"),
        ("authToken", "twilio_auth_token"),
        ("phoneNumberSid", "twilio_phone_sid"),
    )

    def extract_avatar_hint(self, raw_profile):
        # SMS users are identified by their phone number
        return ProfileHint(phone=raw_profile.get("displayName"))


class WhatsAppPlatform(PlatformAdapter):
    kind = "whatsapp"
    required_props = (
        ("instanceId", "whatsapp_instance_ids"),
        ("token", "whatsapp_tokens"),
    )

    def __init__(self, client: WhatsAppClient):
        self.client = client

    def build_credentials(self, props):
        super().build_credentials(props)
        instance_id = str(props["instanceId"])
        return {
            "whatsapp_instance_ids": [instance_id],
            "whatsapp_tokens": {instance_id: props["token"]},
        }

    def external_id_for(self, credentials):
        return credentials["whatsapp_instance_ids"][0]

    def extract_avatar_hint(self, raw_profile):
        chat_id = raw_profile.get("chatId") or ""
        return ProfileHint(phone=chat_id.split("@", 1)[0] or None)

    async def send_reply(self, integration, conversation, customer, content, attachment):
        instance_ids = integration.credential("whatsapp_instance_ids") or []
        if not instance_ids:
            raise NotFoundError(f"Integration {integration.erxes_api_id} has no WhatsApp instance")

        # Only the first registered instance is used for replies
        instance_id = instance_ids[0]
        token = (integration.credential("whatsapp_tokens") or {}).get(instance_id)
        if not token:
            raise NotFoundError(f"No token stored for WhatsApp instance {instance_id}")

        recipient_id = conversation.recipient_id or conversation.platform_conversation_id
        if attachment:
            filename = basename(urlparse(attachment["url"]).path) or "file"
            data = await self.client.send_file(
                recipient_id, attachment["url"], filename, content, instance_id, token
            )
        else:
            data = await self.client.send_message(recipient_id, content, instance_id, token)
        return data["id"]


class PlatformRegistry:
    AGGREGATOR_PREFIX = "smooch-"

    def __init__(self, adapters: Iterable[PlatformAdapter]):
        self._adapters = {adapter.kind: adapter for adapter in adapters}
        self._models = {
            kind: PlatformModels(
                customers=CustomerStore(kind),
                conversations=ConversationStore(kind),
                messages=MessageStore(kind),
            )
            for kind in self._adapters
        }

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(self._adapters)

    def normalize_kind(self, kind: str) -> str:
        normalized = (kind or "").strip().lower()
        if normalized.startswith(self.AGGREGATOR_PREFIX):
            normalized = normalized[len(self.AGGREGATOR_PREFIX):]
        return normalized

    def get(self, kind: str) -> PlatformAdapter:
        adapter = self._adapters.get(kind)
        if adapter is None:
            raise UnknownIntegrationKind(kind)
        return adapter

    def models(self, kind: str) -> PlatformModels:
        models = self._models.get(kind)
        if models is None:
            raise UnknownIntegrationKind(kind)
        return models

    def is_aggregated(self, kind: str) -> bool:
        return isinstance(self.get(kind), SmoochPlatform)

    def aggregated_kinds(self) -> tuple[str, ...]:
        return tuple(kind for kind in self._adapters if self.is_aggregated(kind))


def build_registry(smooch_client: SmoochClient, whatsapp_client: WhatsAppClient) -> PlatformRegistry:
    return PlatformRegistry(
        [
            TelegramPlatform(smooch_client),
            ViberPlatform(smooch_client),
            LinePlatform(smooch_client),
            TwilioPlatform(smooch_client),
            WhatsAppPlatform(whatsapp_client),
        ]
    )
