from datetime import datetime
from typing import Any

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    organization_id: str
    type: str
    title: str
    body: str | None = None
    data: dict[str, Any] = {}
    read: bool = False
    created_at: datetime | None = None


class NotificationReadAllResponse(BaseModel):
    success: bool = True
    updated: int
