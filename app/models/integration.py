import uuid

from sqlalchemy import JSON, Column, DateTime, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.database import Base


class Integration(Base):
    __tablename__ = "integrations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(Text, nullable=False)  # telegram, viber, line, twilio, whatsapp
    erxes_api_id = Column(Text, nullable=False, unique=True)
    # Aggregator integration id, or the first WhatsApp instance id
    external_id = Column(Text, unique=True)
    display_name = Column(Text)
    credentials = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))

    customers = relationship("Customer", back_populates="integration")
    conversations = relationship("Conversation", back_populates="integration")

    def credential(self, key: str):
        return (self.credentials or {}).get(key)
