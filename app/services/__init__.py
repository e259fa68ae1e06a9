from app.services.conversation_service import ConversationStore, resolve_conversation
from app.services.customer_service import CustomerStore, PlatformUser, ProfileHint, resolve_customer
from app.services.inbox_client import InboxClient
from app.services.inbound_service import InboundNormalizer, InboundResult
from app.services.integration_service import IntegrationProvisioner
from app.services.message_service import MessageStore, record_message
from app.services.platforms import PlatformRegistry, build_registry
from app.services.reply_service import ReplyDispatcher
from app.services.state_machine import (
    InboundState,
    InvalidTransitionError,
    acknowledge,
    can_transition,
    fail,
    transition,
)
