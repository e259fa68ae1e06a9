from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator


class WhatsAppMessage(BaseModel):
    id: str
    body: Optional[str] = None
    fromMe: bool = False
    chatId: str
    senderName: Optional[str] = None
    author: Optional[str] = None  # sender inside group chats
    type: str = "chat"  # chat, image, document, ptt, video, ...
    caption: Optional[str] = None
    time: Optional[int] = None

    @property
    def is_text(self) -> bool:
        return self.type == "chat"

    @property
    def sender_id(self) -> str:
        return (self.author or self.chatId).split("@", 1)[0]

    def content(self) -> Optional[str]:
        return self.body if self.is_text else self.caption

    def attachment(self) -> Optional[dict]:
        if self.is_text:
            return None
        # media body carries the file URL
        return {"type": self.type, "url": self.body}

    def received_at(self) -> Optional[datetime]:
        if self.time is None:
            return None
        return datetime.fromtimestamp(self.time, tz=timezone.utc)


class WhatsAppWebhook(BaseModel):
    instanceId: Optional[Union[int, str]] = None
    messages: list[WhatsAppMessage] = Field(default_factory=list)

    @field_validator("instanceId")
    @classmethod
    def _instance_id_as_str(cls, value):
        return str(value) if value is not None else None
