"""Activity — the caller's notifications and the organization audit trail.

Invariants:
    - Notifications are only ever listed/marked for the calling user
    - The audit trail is organization-admin only
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from engage.api.dependencies import Actor, get_actor, get_social_store
from engage.core.errors import (
    ErrorContext, PermissionDeniedError, ResourceNotFoundError,
)
from engage.core.social_rules import require_member_of
from engage.infrastructure.activity_log import get_activity_log
from engage.schemas.activity import AuditLogResponse, NotificationResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["activity"])


@router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    actor: Actor = Depends(get_actor),
    activity_log=Depends(get_activity_log),
):
    return await activity_log.list_notifications(
        actor.organization_id, actor.user_id, unread_only,
    )


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: UUID,
    actor: Actor = Depends(get_actor),
    activity_log=Depends(get_activity_log),
):
    updated = await activity_log.mark_notification_read(
        notification_id, actor.user_id,
    )
    if not updated:
        raise ResourceNotFoundError(
            "Notification", str(notification_id),
            ErrorContext(
                organization_id=actor.organization_id, user_id=actor.user_id,
            ),
        )
    return {"id": str(notification_id), "is_read": True}


@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def list_audit_logs(
    limit: int = Query(50, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    members=Depends(get_social_store),
    activity_log=Depends(get_activity_log),
):
    """Organization audit trail, newest first (admins only)."""
    member = require_member_of(
        await members.get_member(actor.user_id), actor.organization_id,
    )
    if not member.is_admin:
        raise PermissionDeniedError(
            "Only organization admins can read the audit trail",
            ErrorContext(
                organization_id=actor.organization_id, user_id=actor.user_id,
            ),
        )
    return await activity_log.list_audit(actor.organization_id, limit)
