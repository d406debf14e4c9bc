"""Activity Schemas — notification and audit log responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_id: int
    actor_id: int | None = None
    kind: str
    message: str
    resource_type: str
    resource_id: str
    is_read: bool
    created_at: datetime


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: int
    user_id: int | None = None
    action: str
    resource_type: str
    resource_id: str
    details: dict
    event_id: str | None = None
    correlation_id: str | None = None
    created_at: datetime
