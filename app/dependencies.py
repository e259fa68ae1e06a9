"""FastAPI dependency injection."""

import json
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from app.config import settings
from app.logging_config import get_logger
from app.services.inbox_client import InboxClient
from app.services.inbound_service import InboundNormalizer
from app.services.integration_service import IntegrationProvisioner
from app.services.platforms import PlatformRegistry
from app.services.reply_service import ReplyDispatcher

logger = get_logger("dependencies")


def get_registry(request: Request) -> PlatformRegistry:
    """Get the platform registry built at startup."""
    return request.app.state.registry


def get_inbox(request: Request) -> InboxClient:
    return request.app.state.inbox_client


def get_normalizer(
    registry: PlatformRegistry = Depends(get_registry), inbox: InboxClient = Depends(get_inbox)
) -> InboundNormalizer:
    return InboundNormalizer(registry, inbox)


def get_dispatcher(registry: PlatformRegistry = Depends(get_registry)) -> ReplyDispatcher:
    return ReplyDispatcher(registry)


def get_provisioner(registry: PlatformRegistry = Depends(get_registry)) -> IntegrationProvisioner:
    return IntegrationProvisioner(registry)


def require_api_token(x_api_token: Optional[str] = Header(default=None, alias="X-Api-Token")) -> None:
    """Guard operator routes when API_TOKEN is configured."""
    expected = settings.api_token
    if not expected:
        return
    if not x_api_token or x_api_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API token")


async def get_json_payload(request: Request) -> Optional[dict]:
    """Parse webhook body with tolerant decoding. Returns dict or None."""
    try:
        return await request.json()
    except ValueError as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            return json.loads(raw.decode(enc, errors="replace"))
        except ValueError:
            continue

    logger.error("Failed to decode webhook payload after fallbacks")
    return None
