from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    message: str
    related_to: str
    entity_id: str
    is_read: bool
    created_at: datetime | None = None


class NotificationListResponse(BaseModel):
    items: list[NotificationDTO]
    total: int
