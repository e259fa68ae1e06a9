from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import (
    get_dispatcher,
    get_json_payload,
    get_normalizer,
    get_provisioner,
    get_registry,
    require_api_token,
)
from app.errors import ValidationError
from app.logging_config import get_logger
from app.schemas.integration import CreateIntegrationRequest, StatusResponse
from app.schemas.reply import ReplyRequest, ReplyResponse
from app.services.alert_service import alert_error
from app.services.inbound_service import InboundNormalizer
from app.services.integration_service import IntegrationProvisioner
from app.services.platforms import PlatformRegistry
from app.services.reply_service import ReplyDispatcher

logger = get_logger("smooch_router")

router = APIRouter(prefix="/smooch", tags=["smooch"])


@router.post("/webhook", response_model=StatusResponse)
async def smooch_webhook(
    payload: Optional[dict] = Depends(get_json_payload),
    db: Session = Depends(get_db),
    normalizer: InboundNormalizer = Depends(get_normalizer),
):
    """Aggregator webhook. Always acknowledged so Smooch does not redeliver."""
    try:
        result = await normalizer.handle_smooch(db, payload)
        logger.debug(f"Smooch webhook result: {result}")
    except Exception as e:
        logger.error(f"Smooch webhook error: {e}", exc_info=True)
        await alert_error(f"Smooch webhook error: {e}", {"route": "/smooch/webhook"})
    return StatusResponse()


@router.post(
    "/create-integration",
    response_model=StatusResponse,
    dependencies=[Depends(require_api_token)],
)
async def smooch_create_integration(
    request: CreateIntegrationRequest,
    db: Session = Depends(get_db),
    registry: PlatformRegistry = Depends(get_registry),
    provisioner: IntegrationProvisioner = Depends(get_provisioner),
):
    logger.debug(f"Creating Smooch integration: {request.integrationId} kind={request.kind}")
    if not request.kind:
        raise ValidationError("kind is required")

    await provisioner.provision(
        db,
        request.kind,
        request.integrationId,
        request.data,
        allowed_kinds=registry.aggregated_kinds(),
    )
    return StatusResponse()


@router.post("/reply", response_model=ReplyResponse, dependencies=[Depends(require_api_token)])
async def smooch_reply(
    request: ReplyRequest,
    db: Session = Depends(get_db),
    registry: PlatformRegistry = Depends(get_registry),
    dispatcher: ReplyDispatcher = Depends(get_dispatcher),
):
    logger.debug(f"Smooch reply: integration={request.integrationId} conversation={request.conversationId}")
    message = await dispatcher.reply(
        db,
        request.integrationId,
        request.conversationId,
        request.content,
        [attachment.model_dump() for attachment in request.attachments],
        allowed_kinds=registry.aggregated_kinds(),
    )
    response = ReplyResponse(messageId=str(message.id))
    logger.debug(f"Smooch reply response: {response}")
    return response
