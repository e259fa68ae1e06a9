from typing import Any, Optional, Union

from pydantic import BaseModel


class CreateIntegrationRequest(BaseModel):
    integrationId: str
    data: Union[str, dict[str, Any]]
    kind: Optional[str] = None


class StatusResponse(BaseModel):
    status: str = "ok"
