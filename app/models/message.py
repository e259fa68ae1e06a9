import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.database import Base


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "platform_message_id", name="uq_messages_platform_message"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False)
    platform_message_id = Column(Text, nullable=False)
    content = Column(Text)
    attachment = Column(JSON().with_variant(JSONB, "postgresql"))  # {"type": ..., "url": ...}
    direction = Column(Text, nullable=False)  # inbound, outbound
    created_at = Column(DateTime(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
