from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

NEW_USER_MESSAGE_TRIGGER = "message:appUser"


class SmoochAppUser(BaseModel):
    id: str = Field(alias="_id")
    givenName: Optional[str] = None
    surname: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class SmoochMessage(BaseModel):
    id: str = Field(alias="_id")
    text: Optional[str] = None
    type: str = "text"  # text, image, file, location, ...
    mediaType: Optional[str] = None
    mediaUrl: Optional[str] = None
    role: Optional[str] = None
    received: Optional[float] = None

    model_config = ConfigDict(populate_by_name=True)

    def attachment(self) -> Optional[dict]:
        if self.type == "text":
            return None
        return {"type": self.mediaType, "url": self.mediaUrl}

    def received_at(self) -> Optional[datetime]:
        if self.received is None:
            return None
        return datetime.fromtimestamp(self.received, tz=timezone.utc)


class SmoochClientInfo(BaseModel):
    """Originating channel of an app user, with the raw platform profile."""

    integrationId: Optional[str] = None
    platform: Optional[str] = None
    displayName: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class SmoochConversation(BaseModel):
    id: str = Field(alias="_id")
    client: Optional[SmoochClientInfo] = None

    model_config = ConfigDict(populate_by_name=True)


class SmoochWebhook(BaseModel):
    trigger: str
    appUser: Optional[SmoochAppUser] = None
    messages: list[SmoochMessage] = Field(default_factory=list)
    conversation: Optional[SmoochConversation] = None
    client: Optional[SmoochClientInfo] = None

    @property
    def is_new_user_message(self) -> bool:
        return self.trigger == NEW_USER_MESSAGE_TRIGGER

    def source_client(self) -> Optional[SmoochClientInfo]:
        if self.client:
            return self.client
        if self.conversation:
            return self.conversation.client
        return None
