from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.database import insert_or_get
from app.models import Conversation, Message
from app.services.conversation_service import touch_conversation

INBOUND = "inbound"
OUTBOUND = "outbound"


class MessageStore:
    def __init__(self, kind: str):
        self.kind = kind

    def find(self, db: Session, conversation_id: UUID, platform_message_id: str) -> Optional[Message]:
        return (
            db.query(Message)
            .filter(
                Message.conversation_id == conversation_id,
                Message.platform_message_id == platform_message_id,
            )
            .first()
        )

    def create(
        self,
        db: Session,
        conversation_id: UUID,
        platform_message_id: str,
        content: Optional[str],
        attachment: Optional[dict],
        direction: str,
    ) -> Tuple[Message, bool]:
        message = Message(
            conversation_id=conversation_id,
            platform_message_id=platform_message_id,
            content=content,
            attachment=attachment,
            direction=direction,
            created_at=datetime.now(timezone.utc),
        )
        return insert_or_get(db, message, lambda: self.find(db, conversation_id, platform_message_id))


def record_message(
    db: Session,
    store: MessageStore,
    conversation: Conversation,
    platform_message_id: str,
    content: Optional[str],
    attachment: Optional[dict] = None,
    direction: str = INBOUND,
    received_at: Optional[datetime] = None,
) -> Tuple[Message, bool]:
    """Save message once per (conversation, platform message id).

    Returns the stored message and whether it was created by this call. A
    re-delivered message returns the existing row and triggers nothing else.
    """
    if direction not in (INBOUND, OUTBOUND):
        raise ValueError(f"Unknown message direction: {direction}")

    existing = store.find(db, conversation.id, platform_message_id)
    if existing:
        return existing, False

    message, created = store.create(db, conversation.id, platform_message_id, content, attachment, direction)
    if created:
        touch_conversation(db, conversation, received_at)
    return message, created
