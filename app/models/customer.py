import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.database import Base


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("integration_id", "platform_user_id", name="uq_customers_platform_user"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(Text, nullable=False)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integrations.id"), nullable=False)
    platform_user_id = Column(Text, nullable=False)
    erxes_api_id = Column(Text, unique=True)  # inbox customer id
    given_name = Column(Text)
    surname = Column(Text)
    phone = Column(Text)
    avatar_url = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)

    integration = relationship("Integration", back_populates="customers")
    conversations = relationship("Conversation", back_populates="customer")
