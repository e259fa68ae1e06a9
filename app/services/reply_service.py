from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ChatBridgeError, NotFoundError, PersistenceError, TooManyAttachments, ValidationError
from app.logging_config import get_logger
from app.models import Conversation, Integration, Message
from app.services.alert_service import alert_error
from app.services.conversation_service import ConversationStore
from app.services.integration_service import get_integration_by_erxes_id
from app.services.message_service import OUTBOUND, record_message
from app.services.platforms import PlatformRegistry

logger = get_logger("reply_service")


class ReplyDispatcher:
    """Sends operator replies through the platform of the conversation."""

    def __init__(self, registry: PlatformRegistry):
        self.registry = registry

    async def reply(
        self,
        db: Session,
        integration_id: str,
        conversation_id: str,
        content: str,
        attachments: list[dict],
        allowed_kinds: Optional[Iterable[str]] = None,
    ) -> Message:
        """Send reply and record it as an outbound message.

        Raises:
            TooManyAttachments: more than one attachment, checked before anything else
            NotFoundError: unknown integration, conversation or customer
            NotConfigured: platform client or stored credentials unavailable
            UpstreamError: platform rejected or could not be reached
        """
        if len(attachments) > 1:
            raise TooManyAttachments(len(attachments))

        try:
            integration = get_integration_by_erxes_id(db, integration_id)
            if not integration:
                raise NotFoundError(f"Integration not found: {integration_id}")
            if allowed_kinds is not None and integration.kind not in allowed_kinds:
                raise ValidationError(f"Integration kind '{integration.kind}' is not supported on this route")

            adapter = self.registry.get(integration.kind)
            models = self.registry.models(integration.kind)

            conversation = self._find_conversation(db, models.conversations, integration, conversation_id)
            if not conversation:
                raise NotFoundError(f"Conversation not found: {conversation_id}")

            customer = conversation.customer
            if not customer:
                raise NotFoundError(f"Customer not found for conversation {conversation_id}")
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to load reply target: {e}") from e

        attachment = None
        if attachments:
            attachment = {"type": attachments[0].get("type") or "file", "url": attachments[0]["url"]}

        context = {
            "integration_id": integration_id,
            "conversation_id": conversation_id,
            "kind": integration.kind,
        }
        try:
            adapter.check_credentials(integration)
            platform_message_id = await adapter.send_reply(integration, conversation, customer, content, attachment)
        except ChatBridgeError as e:
            logger.error("Reply send failed", extra={"context": {**context, "error": e.message}})
            await alert_error(f"Reply send failed: {e.message}", context)
            raise

        try:
            message, _ = record_message(
                db, models.messages, conversation, platform_message_id, content, attachment, OUTBOUND
            )
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Reply sent but not recorded: {e}") from e

        logger.info(
            "Reply sent",
            extra={"context": {**context, "message_id": str(message.id), "platform_message_id": platform_message_id}},
        )
        return message

    def _find_conversation(
        self, db: Session, store: ConversationStore, integration: Integration, conversation_id: str
    ) -> Optional[Conversation]:
        """Conversation by the inbox id the caller knows, or by our own id."""
        conversation = store.find_by_erxes_id(db, integration.id, conversation_id)
        if conversation:
            return conversation
        try:
            local_id = UUID(conversation_id)
        except ValueError:
            return None
        return store.get(db, integration.id, local_id)
