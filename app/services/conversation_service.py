from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.database import insert_or_get
from app.logging_config import get_logger
from app.models import Conversation, Customer, Integration

logger = get_logger("conversation_service")


class ConversationStore:
    def __init__(self, kind: str):
        self.kind = kind

    def find(self, db: Session, integration_id: UUID, platform_conversation_id: str) -> Optional[Conversation]:
        return (
            db.query(Conversation)
            .filter(
                Conversation.kind == self.kind,
                Conversation.integration_id == integration_id,
                Conversation.platform_conversation_id == platform_conversation_id,
            )
            .first()
        )

    def get(self, db: Session, integration_id: UUID, conversation_id: UUID) -> Optional[Conversation]:
        return (
            db.query(Conversation)
            .filter(
                Conversation.kind == self.kind,
                Conversation.integration_id == integration_id,
                Conversation.id == conversation_id,
            )
            .first()
        )

    def find_by_erxes_id(self, db: Session, integration_id: UUID, erxes_api_id: str) -> Optional[Conversation]:
        return (
            db.query(Conversation)
            .filter(
                Conversation.kind == self.kind,
                Conversation.integration_id == integration_id,
                Conversation.erxes_api_id == erxes_api_id,
            )
            .first()
        )

    def create(
        self,
        db: Session,
        integration_id: UUID,
        platform_conversation_id: str,
        customer_id: UUID,
        recipient_id: Optional[str] = None,
    ) -> tuple[Conversation, bool]:
        conversation = Conversation(
            kind=self.kind,
            integration_id=integration_id,
            platform_conversation_id=platform_conversation_id,
            customer_id=customer_id,
            recipient_id=recipient_id,
            created_at=datetime.now(timezone.utc),
        )
        return insert_or_get(
            db, conversation, lambda: self.find(db, integration_id, platform_conversation_id)
        )


def resolve_conversation(
    db: Session,
    store: ConversationStore,
    integration: Integration,
    platform_conversation_id: str,
    customer: Customer,
    recipient_id: Optional[str] = None,
) -> Conversation:
    """Find conversation by platform thread id or create new one.

    The customer a conversation was created with is kept even when a later
    event resolves to a different customer.
    """
    conversation = store.find(db, integration.id, platform_conversation_id)

    if not conversation:
        conversation, created = store.create(
            db, integration.id, platform_conversation_id, customer.id, recipient_id=recipient_id
        )
        if created:
            logger.info(
                "Conversation created",
                extra={"context": {"conversation_id": str(conversation.id), "kind": store.kind}},
            )
            return conversation

    if conversation.customer_id != customer.id:
        logger.warning(
            "Conversation already pinned to another customer, keeping first",
            extra={
                "context": {
                    "conversation_id": str(conversation.id),
                    "pinned_customer_id": str(conversation.customer_id),
                    "resolved_customer_id": str(customer.id),
                }
            },
        )

    return conversation


def touch_conversation(db: Session, conversation: Conversation, at: Optional[datetime] = None) -> None:
    """Bump last_message_at after a new message, to the platform receive time when known."""
    conversation.last_message_at = at or datetime.now(timezone.utc)
    db.commit()
