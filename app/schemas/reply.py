from typing import Optional

from pydantic import BaseModel, Field


class ReplyAttachment(BaseModel):
    url: str
    type: Optional[str] = None


class ReplyRequest(BaseModel):
    integrationId: str
    conversationId: str
    content: str = ""
    attachments: list[ReplyAttachment] = Field(default_factory=list)


class ReplyResponse(BaseModel):
    status: str = "ok"
    messageId: Optional[str] = None
