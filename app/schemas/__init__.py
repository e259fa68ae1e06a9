from app.schemas.integration import CreateIntegrationRequest, StatusResponse
from app.schemas.reply import ReplyAttachment, ReplyRequest, ReplyResponse
from app.schemas.smooch import SmoochWebhook
from app.schemas.whatsapp import WhatsAppWebhook

__all__ = [
    "CreateIntegrationRequest",
    "StatusResponse",
    "ReplyAttachment",
    "ReplyRequest",
    "ReplyResponse",
    "SmoochWebhook",
    "WhatsAppWebhook",
]
