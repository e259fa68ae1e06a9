"""Client for the Smooch multi-channel aggregator API.

One instance is created during application startup and shared by the reply
dispatcher and integration provisioning. It starts ``uninitialized``, moves
to ``ready`` once credentials are loaded, or stays ``degraded`` when the app
key configuration is missing; every call outside ``ready`` fails fast with
``NotConfigured``.
"""

from enum import Enum
from typing import Optional

import httpx

from app.config import Settings
from app.errors import NotConfigured, UpstreamError
from app.logging_config import get_logger

logger = get_logger("smooch_client")


class ClientState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DEGRADED = "degraded"


class SmoochClient:
    API_VERSION = "v1.1"

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._http_client = http_client
        self.app_id: Optional[str] = None
        self.state = ClientState.UNINITIALIZED

    @property
    def ready(self) -> bool:
        return self.state == ClientState.READY

    async def initialize(self) -> ClientState:
        self.state = ClientState.INITIALIZING

        key_id = self._settings.smooch_app_key_id
        secret = self._settings.smooch_app_key_secret
        app_id = self._settings.smooch_app_id

        missing = [
            name
            for name, value in (
                ("SMOOCH_APP_KEY_ID", key_id),
                ("SMOOCH_APP_KEY_SECRET", secret),
                ("SMOOCH_APP_ID", app_id),
            )
            if not value
        ]
        if missing:
            logger.warning(
                "Smooch client degraded, missing config",
                extra={"context": {"missing": missing}},
            )
            self.state = ClientState.DEGRADED
            return self.state

        self.app_id = app_id
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._settings.smooch_api_url.rstrip("/"),
                auth=(key_id, secret),
                timeout=self._settings.http_timeout_seconds,
            )
        self.state = ClientState.READY
        logger.info("Smooch client ready", extra={"context": {"app_id": app_id}})
        return self.state

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _require_ready(self) -> httpx.AsyncClient:
        if not self.ready or self._http_client is None:
            raise NotConfigured(f"Smooch client is {self.state.value}")
        return self._http_client

    async def _request(self, method: str, path: str, payload: dict) -> dict:
        client = self._require_ready()
        url = f"/{self.API_VERSION}/apps/{self.app_id}{path}"
        try:
            response = await client.request(method, url, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"Smooch API {e.response.status_code}: {e.response.text[:200]}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"Smooch API error: {e}") from e

    async def send_message(self, app_user_id: str, message: dict) -> dict:
        """Send a message to an app user as the app maker."""
        return await self._request("POST", f"/appusers/{app_user_id}/messages", message)

    async def create_integration(self, props: dict) -> dict:
        """Create a channel integration (telegram, viber, line, twilio)."""
        return await self._request("POST", "/integrations", props)
