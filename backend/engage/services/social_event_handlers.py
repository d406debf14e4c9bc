"""Social Event Handlers — audit trail for every social event.

Invariants:
    - register() is idempotent: a second call logs a warning and subscribes nothing
    - Exactly one audit entry per handled event, carrying event id and correlation id
    - Audit write failures are logged and swallowed; the social action already succeeded
    - Content previews are at most CONTENT_PREVIEW_LENGTH chars (plus "..." when cut)

Design Decisions:
    - Audit subscriptions run at higher priority than notifications so the trail
      is written even when a later handler times out
    - Handlers read only the event payload: no storage lookups, so they work
      unchanged over either storage backend
"""

import logging

from engage.core.domain_types import CONTENT_PREVIEW_LENGTH
from engage.core.events import DomainEvent
from engage.core.repository_protocols import ActivityLog
from engage.core.social_entities import AuditEntry
from engage.core.social_events import SocialEventType
from engage.infrastructure.event_system import EventSystem

logger = logging.getLogger(__name__)

HANDLER_SOURCE = "social-event-handlers"
AUDIT_PRIORITY = 10


def preview(text: str | None) -> str:
    text = text or ""
    if len(text) <= CONTENT_PREVIEW_LENGTH:
        return text
    return text[:CONTENT_PREVIEW_LENGTH] + "..."


class SocialEventHandlers:
    """Subscribes audit handlers for all social event types."""

    def __init__(self, activity_log: ActivityLog):
        self._activity_log = activity_log
        self.subscription_ids: list[str] = []

    def register(self, events: EventSystem) -> list[str]:
        if self.subscription_ids:
            logger.warning("Social event handlers already registered")
            return self.subscription_ids
        routes = {
            SocialEventType.POST_CREATED: self.on_post_created,
            SocialEventType.COMMENT_ADDED: self.on_comment_added,
            SocialEventType.REACTION_ADDED: self.on_reaction_added,
            SocialEventType.REACTION_REMOVED: self.on_reaction_removed,
            SocialEventType.POLL_VOTE_CAST: self.on_poll_vote_cast,
            SocialEventType.POST_DELETED: self.on_post_deleted,
            SocialEventType.USER_MENTIONED: self.on_user_mentioned,
            SocialEventType.ENGAGEMENT_MILESTONE: self.on_engagement_milestone,
        }
        for event_type, handler in routes.items():
            self.subscription_ids.append(events.subscribe(
                event_type.value, handler, HANDLER_SOURCE,
                priority=AUDIT_PRIORITY,
            ))
        logger.info(
            f"Social event handlers registered: {len(routes)} event types",
        )
        return self.subscription_ids

    # ─── Handlers ───────────────────────────────────────────────

    async def on_post_created(self, event: DomainEvent) -> None:
        post = event.data["post"]
        poll = event.data.get("poll")
        await self._record(
            event,
            action="post_created",
            resource_type="social_post",
            resource_id=post["id"],
            user_id=post["author_id"],
            details={
                "post_type": post["type"],
                "visibility": post["visibility"],
                "content": preview(post["content"]),
                "tags": post.get("tags") or [],
                "has_image": bool(post.get("image_url")),
                "is_poll": poll is not None,
                "poll_options": poll["options"] if poll else None,
            },
        )
        recognition = event.data.get("recognition")
        if post["type"] == "recognition" and recognition:
            logger.info(
                f"Processing recognition post: {recognition['points']} points "
                f"to {recognition['recipient_name']}",
                extra={"post_id": post["id"], "event_id": event.id},
            )
        if poll:
            logger.info(
                f"Processing poll post: {len(poll['options'])} options",
                extra={"post_id": post["id"], "event_id": event.id},
            )

    async def on_comment_added(self, event: DomainEvent) -> None:
        comment = event.data["comment"]
        await self._record(
            event,
            action="comment_added",
            resource_type="comment",
            resource_id=comment["id"],
            user_id=comment["author_id"],
            details={
                "post_id": comment["post_id"],
                "post_author_id": event.data["post"]["author_id"],
                "content": preview(comment["content"]),
                "is_reply": event.data["is_reply"],
                "parent_comment_id": comment["parent_comment_id"],
            },
        )

    async def on_reaction_added(self, event: DomainEvent) -> None:
        target = event.data["target"]
        reaction = event.data["reaction"]
        await self._record(
            event,
            action="reaction_added",
            resource_type=target["type"],
            resource_id=target["id"],
            user_id=reaction["user_id"],
            details={
                "reaction_type": reaction["type"],
                "previous_reaction": event.data["previous_reaction"],
                "target_author_id": target["author_id"],
            },
        )

    async def on_reaction_removed(self, event: DomainEvent) -> None:
        target = event.data["target"]
        await self._record(
            event,
            action="reaction_removed",
            resource_type=target["type"],
            resource_id=target["id"],
            user_id=event.data["reactor"]["id"],
            details={"removed_reaction": event.data["removed_reaction"]},
        )

    async def on_poll_vote_cast(self, event: DomainEvent) -> None:
        vote = event.data["vote"]
        poll = event.data["poll"]
        await self._record(
            event,
            action="poll_vote_cast",
            resource_type="poll",
            resource_id=poll["post_id"],
            user_id=vote["user_id"],
            details={
                "option": vote["option"],
                "previous_option": vote["previous_option"],
                "is_first_vote": event.data["is_first_vote"],
                "poll_question": preview(poll["question"]),
            },
        )

    async def on_post_deleted(self, event: DomainEvent) -> None:
        post = event.data["post"]
        deleted_by = event.data["deleted_by"]
        await self._record(
            event,
            action="post_deleted",
            resource_type="social_post",
            resource_id=post["id"],
            user_id=deleted_by["id"],
            details={
                "post_type": post["type"],
                "post_author_id": post["author_id"],
                "post_author_name": post["author_name"],
                "is_author": deleted_by["is_author"],
                "reason": event.data["reason"],
                "comments_count": post["comments_count"],
                "reactions_count": post["reactions_count"],
                "deleted_at": post["deleted_at"],
            },
        )

    async def on_user_mentioned(self, event: DomainEvent) -> None:
        mention = event.data["mention"]
        content = event.data["content"]
        await self._record(
            event,
            action="user_mentioned",
            resource_type=content["type"],
            resource_id=content["id"],
            user_id=mention["mentioned_by_user_id"],
            details={
                "mentioned_user_id": mention["mentioned_user_id"],
                "mentioned_username": mention["mentioned_username"],
                "content": preview(content["content"]),
                "context": event.data["context"],
            },
        )

    async def on_engagement_milestone(self, event: DomainEvent) -> None:
        entity = event.data["entity"]
        milestone = event.data["milestone"]
        await self._record(
            event,
            action="engagement_milestone_reached",
            resource_type=entity["type"],
            resource_id=entity["id"],
            user_id=None,
            details={
                "milestone_type": milestone["type"],
                "threshold": milestone["threshold"],
                "actual_value": milestone["actual_value"],
                "metrics": event.data["metrics"],
            },
        )

    # ─── Audit sink ─────────────────────────────────────────────

    async def _record(
        self,
        event: DomainEvent,
        *,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: int | None,
        details: dict,
    ) -> None:
        entry = AuditEntry(
            organization_id=event.organization_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            details=details,
            event_id=event.id,
            correlation_id=event.correlation_id,
        )
        try:
            await self._activity_log.record_audit(entry)
        except Exception as e:
            logger.error(
                f"Failed to log activity: {action}: {e}",
                extra={
                    "event_id": event.id, "event_type": event.type,
                    "organization_id": event.organization_id,
                },
            )
            return
        logger.debug(
            f"Audit entry written: {action}",
            extra={"event_id": event.id, "correlation_id": event.correlation_id},
        )
