"""Activity Log Backends — audit trail and notification sinks for event handlers.

Invariants:
    - Relational writes use their own session from db_manager: handlers run after
      the request session has already committed (and possibly closed)
    - Audit entries are append-only; only notifications have mutable state (is_read)
    - Listing is newest first and always organization-scoped

Design Decisions:
    - db_manager imported lazily at call time: tests swap the module-level singleton
    - Memory backend shares the list semantics so handler tests need no database
"""

import logging
from uuid import UUID

from sqlalchemy import select, update

from engage.core.social_entities import AuditEntry, NotificationEntry
from engage.infrastructure.relational_store import as_utc
from engage.models.audit_log import AuditLog
from engage.models.notification import NotificationRecord

logger = logging.getLogger(__name__)


def _session_manager():
    from engage.infrastructure.database import db_manager

    if not db_manager:
        raise RuntimeError("Database not initialized")
    return db_manager


def _to_audit_entry(row: AuditLog) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        organization_id=row.organization_id,
        user_id=row.user_id,
        action=row.action,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        details=dict(row.details or {}),
        event_id=row.event_id,
        correlation_id=row.correlation_id,
        created_at=as_utc(row.created_at),
    )


def _to_notification(row: NotificationRecord) -> NotificationEntry:
    return NotificationEntry(
        id=row.id,
        organization_id=row.organization_id,
        recipient_id=row.recipient_id,
        actor_id=row.actor_id,
        kind=row.kind,
        message=row.message,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        is_read=row.is_read,
        created_at=as_utc(row.created_at),
    )


class RelationalActivityLog:
    """ActivityLog persisted to audit_logs / notifications."""

    async def record_audit(self, entry: AuditEntry) -> None:
        async with _session_manager().session() as db:
            db.add(AuditLog(
                id=entry.id,
                organization_id=entry.organization_id,
                user_id=entry.user_id,
                action=entry.action,
                resource_type=entry.resource_type,
                resource_id=entry.resource_id,
                details=entry.details,
                event_id=entry.event_id,
                correlation_id=entry.correlation_id,
                created_at=entry.created_at,
            ))
            await db.commit()

    async def list_audit(
        self, organization_id: int, limit: int = 50,
    ) -> list[AuditEntry]:
        async with _session_manager().session() as db:
            result = await db.execute(
                select(AuditLog)
                .where(AuditLog.organization_id == organization_id)
                .order_by(AuditLog.created_at.desc())
                .limit(limit),
            )
            return [_to_audit_entry(r) for r in result.scalars().all()]

    async def notify(self, notification: NotificationEntry) -> None:
        async with _session_manager().session() as db:
            db.add(NotificationRecord(
                id=notification.id,
                organization_id=notification.organization_id,
                recipient_id=notification.recipient_id,
                actor_id=notification.actor_id,
                kind=notification.kind,
                message=notification.message,
                resource_type=notification.resource_type,
                resource_id=notification.resource_id,
                is_read=notification.is_read,
                created_at=notification.created_at,
            ))
            await db.commit()

    async def list_notifications(
        self, organization_id: int, recipient_id: int, unread_only: bool = False,
    ) -> list[NotificationEntry]:
        query = select(NotificationRecord).where(
            NotificationRecord.organization_id == organization_id,
            NotificationRecord.recipient_id == recipient_id,
        )
        if unread_only:
            query = query.where(NotificationRecord.is_read.is_(False))
        query = query.order_by(NotificationRecord.created_at.desc())
        async with _session_manager().session() as db:
            result = await db.execute(query)
            return [_to_notification(r) for r in result.scalars().all()]

    async def mark_notification_read(
        self, notification_id: UUID, recipient_id: int,
    ) -> bool:
        async with _session_manager().session() as db:
            result = await db.execute(
                update(NotificationRecord)
                .where(
                    NotificationRecord.id == notification_id,
                    NotificationRecord.recipient_id == recipient_id,
                )
                .values(is_read=True),
            )
            await db.commit()
            return result.rowcount > 0


class MemoryActivityLog:
    """ActivityLog kept in process memory (memory storage backend, tests)."""

    def __init__(self):
        self.audit_entries: list[AuditEntry] = []
        self.notifications: list[NotificationEntry] = []

    async def record_audit(self, entry: AuditEntry) -> None:
        self.audit_entries.append(entry)

    async def list_audit(
        self, organization_id: int, limit: int = 50,
    ) -> list[AuditEntry]:
        found = [
            e for e in reversed(self.audit_entries)
            if e.organization_id == organization_id
        ]
        return found[:limit]

    async def notify(self, notification: NotificationEntry) -> None:
        self.notifications.append(notification)

    async def list_notifications(
        self, organization_id: int, recipient_id: int, unread_only: bool = False,
    ) -> list[NotificationEntry]:
        return [
            n for n in reversed(self.notifications)
            if n.organization_id == organization_id
            and n.recipient_id == recipient_id
            and not (unread_only and n.is_read)
        ]

    async def mark_notification_read(
        self, notification_id: UUID, recipient_id: int,
    ) -> bool:
        for notification in self.notifications:
            if notification.id == notification_id and notification.recipient_id == recipient_id:
                notification.is_read = True
                return True
        logger.debug(f"Notification {notification_id} not found for {recipient_id}")
        return False


# Singleton (initialized on startup, backend chosen by settings.storage_backend)
activity_log: RelationalActivityLog | MemoryActivityLog | None = None


def init_activity_log(backend: str = "relational"):
    global activity_log
    activity_log = (
        MemoryActivityLog() if backend == "memory" else RelationalActivityLog()
    )
    return activity_log


def get_activity_log():
    """FastAPI dependency for the process-wide activity log."""
    if not activity_log:
        raise RuntimeError("Activity log not initialized")
    return activity_log
