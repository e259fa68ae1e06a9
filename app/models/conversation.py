import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.database import Base


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("integration_id", "platform_conversation_id", name="uq_conversations_platform_thread"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(Text, nullable=False)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integrations.id"), nullable=False)
    platform_conversation_id = Column(Text, nullable=False)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    recipient_id = Column(Text)  # whatsapp chat id
    erxes_api_id = Column(Text, unique=True)  # inbox conversation id, used by replies
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_message_at = Column(DateTime(timezone=True))

    integration = relationship("Integration", back_populates="conversations")
    customer = relationship("Customer", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation")
