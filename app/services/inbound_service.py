"""Inbound webhook pipeline.

Turns aggregator and WhatsApp webhook payloads into canonical Customer,
Conversation and Message rows. Every run ends in ``acknowledged`` or
``failed_non_fatal``; the HTTP layer answers 200 either way so platforms do
not redeliver.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import ValidationError as PayloadError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ChatBridgeError, PersistenceError
from app.logging_config import LoggerAdapter, get_logger
from app.models import Conversation, Customer, Integration, Message
from app.schemas.smooch import SmoochWebhook
from app.schemas.whatsapp import WhatsAppWebhook
from app.services.alert_service import alert_critical, alert_error
from app.services.conversation_service import resolve_conversation
from app.services.customer_service import AvatarFetcher, PlatformUser, resolve_customer
from app.services.inbox_client import InboxClient
from app.services.integration_service import get_integration_by_external_id
from app.services.message_service import INBOUND, record_message
from app.services.platforms import PlatformRegistry
from app.services.state_machine import InboundState, acknowledge, fail, transition
from app.services.telegram_service import fetch_telegram_avatar

logger = get_logger("inbound_service")


@dataclass(frozen=True)
class InboundMessage:
    platform_message_id: str
    content: Optional[str]
    attachment: Optional[dict] = None
    received_at: Optional[datetime] = None


@dataclass
class InboundResult:
    state: InboundState
    customer_id: Optional[UUID] = None
    conversation_id: Optional[UUID] = None
    # stored message ids in delivery order, re-deliveries included
    message_ids: list[UUID] = field(default_factory=list)
    duplicates: int = 0
    failures: list[str] = field(default_factory=list)


class InboundNormalizer:
    def __init__(
        self,
        registry: PlatformRegistry,
        inbox: Optional[InboxClient] = None,
        avatar_fetcher: Optional[AvatarFetcher] = fetch_telegram_avatar,
    ):
        self.registry = registry
        self.inbox = inbox
        self.avatar_fetcher = avatar_fetcher

    async def handle_smooch(self, db: Session, payload: Optional[dict]) -> InboundResult:
        state = InboundState.RECEIVED
        try:
            webhook = SmoochWebhook.model_validate(payload)
        except PayloadError as e:
            logger.warning("Invalid Smooch webhook payload", extra={"context": {"error": str(e)}})
            return InboundResult(state=fail(state), failures=["invalid payload"])
        state = transition(state, InboundState.VALIDATED)

        if not webhook.is_new_user_message:
            logger.debug(f"Ignoring Smooch trigger {webhook.trigger}")
            return InboundResult(state=acknowledge(state))

        client = webhook.source_client()
        if not webhook.appUser or not webhook.conversation or not client or not client.integrationId:
            logger.warning(
                "Smooch webhook without app user, conversation or client",
                extra={"context": {"trigger": webhook.trigger}},
            )
            return InboundResult(state=fail(state), failures=["incomplete payload"])

        integration = self._find_integration(db, client.integrationId)
        if isinstance(integration, InboundResult):
            return integration
        if integration is None:
            return InboundResult(state=acknowledge(state))

        adapter = self.registry.get(integration.kind)
        platform_user = PlatformUser(
            platform_user_id=webhook.appUser.id,
            given_name=webhook.appUser.givenName,
            surname=webhook.appUser.surname,
            profile=adapter.extract_avatar_hint(client.model_dump()),
        )
        messages = [
            InboundMessage(message.id, message.text, message.attachment(), message.received_at())
            for message in webhook.messages
        ]
        return await self.run(db, integration, platform_user, webhook.conversation.id, messages, state)

    async def handle_whatsapp(self, db: Session, payload: Optional[dict]) -> list[InboundResult]:
        state = InboundState.RECEIVED
        try:
            webhook = WhatsAppWebhook.model_validate(payload)
        except PayloadError as e:
            logger.warning("Invalid WhatsApp webhook payload", extra={"context": {"error": str(e)}})
            return [InboundResult(state=fail(state), failures=["invalid payload"])]
        state = transition(state, InboundState.VALIDATED)

        incoming = [message for message in webhook.messages if not message.fromMe]
        if not incoming:
            # delivery acks and our own outgoing messages
            return [InboundResult(state=acknowledge(state))]

        if not webhook.instanceId:
            logger.warning("WhatsApp webhook without instanceId")
            return [InboundResult(state=fail(state), failures=["incomplete payload"])]

        integration = self._find_integration(db, webhook.instanceId)
        if isinstance(integration, InboundResult):
            return [integration]
        if integration is None:
            return [InboundResult(state=acknowledge(state))]

        adapter = self.registry.get(integration.kind)
        groups: dict[tuple[str, str], list] = {}
        for message in incoming:
            groups.setdefault((message.chatId, message.sender_id), []).append(message)

        results = []
        for (chat_id, sender_id), group in groups.items():
            platform_user = PlatformUser(
                platform_user_id=sender_id,
                given_name=group[0].senderName,
                profile=adapter.extract_avatar_hint({"chatId": group[0].author or chat_id}),
            )
            messages = [InboundMessage(m.id, m.content(), m.attachment(), m.received_at()) for m in group]
            results.append(
                await self.run(db, integration, platform_user, chat_id, messages, state, recipient_id=chat_id)
            )
        return results

    def _find_integration(self, db: Session, external_id: str):
        """Integration for an inbound event, None when unknown, or a failed result."""
        try:
            integration = get_integration_by_external_id(db, external_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                "Integration lookup failed",
                extra={"context": {"external_id": external_id, "error": str(e)}},
            )
            return InboundResult(state=fail(InboundState.VALIDATED), failures=[str(e)])

        if integration is None:
            logger.warning("Integration not found", extra={"context": {"external_id": external_id}})
        return integration

    async def run(
        self,
        db: Session,
        integration: Integration,
        platform_user: PlatformUser,
        platform_conversation_id: str,
        messages: list[InboundMessage],
        state: InboundState = InboundState.VALIDATED,
        recipient_id: Optional[str] = None,
    ) -> InboundResult:
        """Resolve customer and conversation once, then record each message.

        An event without messages is acknowledged without any writes.
        """
        if not messages:
            logger.debug(f"No messages for {platform_conversation_id}, nothing to record")
            return InboundResult(state=acknowledge(state))

        log = LoggerAdapter(
            logger,
            {
                "integration_id": str(integration.id),
                "kind": integration.kind,
                "platform_conversation_id": platform_conversation_id,
            },
        )
        models = self.registry.models(integration.kind)
        result = InboundResult(state=state)

        try:
            customer = await resolve_customer(
                db, models.customers, integration, platform_user, self.avatar_fetcher
            )
            result.customer_id = customer.id
            result.state = transition(result.state, InboundState.CUSTOMER_RESOLVED)

            conversation = resolve_conversation(
                db, models.conversations, integration, platform_conversation_id, customer, recipient_id
            )
            result.conversation_id = conversation.id
            result.state = transition(result.state, InboundState.CONVERSATION_RESOLVED)
        except (ChatBridgeError, SQLAlchemyError) as e:
            db.rollback()
            result.failures.append(str(e))
            result.state = fail(result.state)
            log.error("Failed to resolve customer or conversation", context={"error": str(e)}, exc_info=True)
            await self._alert(e, log.extra)
            return result

        inbox_ids = await self._sync_inbox(
            db, integration, customer, conversation, messages[0].content, result, log
        )

        for message in messages:
            try:
                stored, created = record_message(
                    db,
                    models.messages,
                    conversation,
                    message.platform_message_id,
                    message.content,
                    message.attachment,
                    INBOUND,
                    message.received_at,
                )
            except (ChatBridgeError, SQLAlchemyError) as e:
                db.rollback()
                result.failures.append(f"{message.platform_message_id}: {e}")
                log.error(
                    "Failed to record message",
                    context={"platform_message_id": message.platform_message_id, "error": str(e)},
                )
                continue

            result.message_ids.append(stored.id)
            if not created:
                result.duplicates += 1
            elif inbox_ids:
                await self._forward_message(inbox_ids, stored, message.platform_message_id, result, log)

        if result.failures:
            result.state = fail(result.state)
            await self._alert(
                PersistenceError(f"{len(result.failures)} failures while handling {len(messages)} messages"),
                {**log.extra, "failures": "; ".join(result.failures)},
            )
            return result

        result.state = acknowledge(transition(result.state, InboundState.MESSAGES_PERSISTED))
        log.info(
            "Inbound messages processed",
            context={
                "customer_id": str(result.customer_id),
                "conversation_id": str(result.conversation_id),
                "recorded": len(result.message_ids) - result.duplicates,
                "duplicates": result.duplicates,
            },
        )
        return result

    async def _sync_inbox(
        self,
        db: Session,
        integration: Integration,
        customer: Customer,
        conversation: Conversation,
        content: Optional[str],
        result: InboundResult,
        log: LoggerAdapter,
    ) -> Optional[tuple[str, str]]:
        """Register customer and conversation with the inbox once, return their inbox ids."""
        if self.inbox is None or not self.inbox.enabled:
            return None

        try:
            if not customer.erxes_api_id:
                customer.erxes_api_id = await self.inbox.create_customer(integration, customer)
                db.commit()
            if not conversation.erxes_api_id:
                conversation.erxes_api_id = await self.inbox.create_conversation(
                    integration, conversation, customer.erxes_api_id, content
                )
                db.commit()
        except (ChatBridgeError, SQLAlchemyError) as e:
            db.rollback()
            result.failures.append(f"inbox: {e}")
            log.error("Inbox sync failed", context={"error": str(e)})
            return None

        return customer.erxes_api_id, conversation.erxes_api_id

    async def _forward_message(
        self,
        inbox_ids: tuple[str, str],
        stored: Message,
        platform_message_id: str,
        result: InboundResult,
        log: LoggerAdapter,
    ) -> None:
        customer_inbox_id, conversation_inbox_id = inbox_ids
        try:
            await self.inbox.create_message(conversation_inbox_id, customer_inbox_id, stored)
        except ChatBridgeError as e:
            result.failures.append(f"{platform_message_id}: inbox: {e}")
            log.error(
                "Failed to forward message to inbox",
                context={"platform_message_id": platform_message_id, "error": str(e)},
            )

    async def _alert(self, error: Exception, context: dict) -> None:
        if isinstance(error, (PersistenceError, SQLAlchemyError)):
            await alert_critical(f"Inbound message not stored: {error}", context)
        else:
            await alert_error(f"Inbound message failed: {error}", context)
