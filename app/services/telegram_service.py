from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.services.result import Result

logger = get_logger("telegram_service")


class TelegramService:
    """Service for resolving Telegram Bot API files (profile photos)."""

    BASE_URL = "{api_url}/bot{token}"
    FILE_URL = "{api_url}/file/bot{token}"

    def __init__(self, bot_token: str, api_url: Optional[str] = None, timeout: Optional[float] = None):
        api_url = (api_url or settings.telegram_api_url).rstrip("/")
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(api_url=api_url, token=bot_token)
        self.file_url = self.FILE_URL.format(api_url=api_url, token=bot_token)
        self.timeout = timeout or settings.http_timeout_seconds

    async def _make_request(self, method: str, params: Optional[dict] = None) -> dict:
        """Make request to Telegram API."""
        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params or {})
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram API error: {e}")
            return {"ok": False, "description": str(e)}

    async def get_file(self, file_id: str) -> dict:
        """Fetch file metadata (file_path) for a file id."""
        return await self._make_request("getFile", {"file_id": file_id})

    async def get_file_url(self, file_id: str) -> Result[str]:
        """Exchange a file id for a publicly fetchable URL."""
        data = await self.get_file(file_id)
        if not data.get("ok"):
            return Result.failure(data.get("description") or "getFile failed", "telegram_error")

        file_path = (data.get("result") or {}).get("file_path")
        if not file_path:
            return Result.failure(f"No file_path for file {file_id}", "telegram_error")

        return Result.success(f"{self.file_url}/{file_path}")


async def fetch_telegram_avatar(bot_token: str, file_id: str) -> Result[str]:
    """Avatar resolution collaborator used by the customer resolver."""
    return await TelegramService(bot_token).get_file_url(file_id)
