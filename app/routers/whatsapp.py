from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_dispatcher, get_json_payload, get_normalizer, get_provisioner, require_api_token
from app.logging_config import get_logger
from app.schemas.integration import CreateIntegrationRequest, StatusResponse
from app.schemas.reply import ReplyRequest, ReplyResponse
from app.services.alert_service import alert_error
from app.services.inbound_service import InboundNormalizer
from app.services.integration_service import IntegrationProvisioner
from app.services.reply_service import ReplyDispatcher

logger = get_logger("whatsapp_router")

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

WHATSAPP_KINDS = ("whatsapp",)


@router.post("/webhook", response_model=StatusResponse)
async def whatsapp_webhook(
    payload: Optional[dict] = Depends(get_json_payload),
    db: Session = Depends(get_db),
    normalizer: InboundNormalizer = Depends(get_normalizer),
):
    """chat-api webhook. Always acknowledged."""
    try:
        results = await normalizer.handle_whatsapp(db, payload)
        logger.debug(f"WhatsApp webhook results: {results}")
    except Exception as e:
        logger.error(f"WhatsApp webhook error: {e}", exc_info=True)
        await alert_error(f"WhatsApp webhook error: {e}", {"route": "/whatsapp/webhook"})
    return StatusResponse()


@router.post(
    "/create-integration",
    response_model=StatusResponse,
    dependencies=[Depends(require_api_token)],
)
async def whatsapp_create_integration(
    request: CreateIntegrationRequest,
    db: Session = Depends(get_db),
    provisioner: IntegrationProvisioner = Depends(get_provisioner),
):
    logger.debug(f"Creating WhatsApp integration: {request.integrationId}")
    await provisioner.provision(db, "whatsapp", request.integrationId, request.data, allowed_kinds=WHATSAPP_KINDS)
    return StatusResponse()


@router.post("/reply", response_model=ReplyResponse, dependencies=[Depends(require_api_token)])
async def whatsapp_reply(
    request: ReplyRequest,
    db: Session = Depends(get_db),
    dispatcher: ReplyDispatcher = Depends(get_dispatcher),
):
    logger.debug(f"WhatsApp reply: integration={request.integrationId} conversation={request.conversationId}")
    message = await dispatcher.reply(
        db,
        request.integrationId,
        request.conversationId,
        request.content,
        [attachment.model_dump() for attachment in request.attachments],
        allowed_kinds=WHATSAPP_KINDS,
    )
    return ReplyResponse(messageId=str(message.id))
