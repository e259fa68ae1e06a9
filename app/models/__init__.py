from app.models.conversation import Conversation
from app.models.customer import Customer
from app.models.integration import Integration
from app.models.message import Message

__all__ = [
    "Integration",
    "Customer",
    "Conversation",
    "Message",
]
