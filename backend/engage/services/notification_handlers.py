"""Notification Handlers — turn social events into in-app notifications.

Invariants:
    - The actor is never notified about their own action
    - Reactions notify only on the user's FIRST reaction to a target (changing
      a reaction type is not news)
    - Notification write failures propagate: the event system dead-letters and retries them
"""

import logging

from engage.core.events import DomainEvent
from engage.core.repository_protocols import ActivityLog
from engage.core.social_entities import NotificationEntry
from engage.core.social_events import SocialEventType
from engage.infrastructure.event_system import EventSystem

logger = logging.getLogger(__name__)

HANDLER_SOURCE = "notification-handlers"


class NotificationHandlers:
    def __init__(self, activity_log: ActivityLog):
        self._activity_log = activity_log
        self.subscription_ids: list[str] = []

    def register(self, events: EventSystem) -> list[str]:
        if self.subscription_ids:
            logger.warning("Notification handlers already registered")
            return self.subscription_ids
        routes = {
            SocialEventType.POST_CREATED: self.on_post_created,
            SocialEventType.COMMENT_ADDED: self.on_comment_added,
            SocialEventType.REACTION_ADDED: self.on_reaction_added,
            SocialEventType.USER_MENTIONED: self.on_user_mentioned,
            SocialEventType.ENGAGEMENT_MILESTONE: self.on_engagement_milestone,
        }
        for event_type, handler in routes.items():
            self.subscription_ids.append(
                events.subscribe(event_type.value, handler, HANDLER_SOURCE),
            )
        return self.subscription_ids

    async def on_post_created(self, event: DomainEvent) -> None:
        """Recognition posts notify the recipient."""
        recognition = event.data.get("recognition")
        if event.data["post"]["type"] != "recognition" or not recognition:
            return
        author = event.data["author"]
        await self._notify(
            event,
            recipient_id=recognition["recipient_id"],
            actor_id=author["id"],
            kind="recognition",
            message=(
                f"{author['name']} recognized you with "
                f"{recognition['points']} points"
            ),
            resource_type="social_post",
            resource_id=event.data["post"]["id"],
        )

    async def on_comment_added(self, event: DomainEvent) -> None:
        post = event.data["post"]
        author = event.data["author"]
        verb = "replied on" if event.data["is_reply"] else "commented on"
        await self._notify(
            event,
            recipient_id=post["author_id"],
            actor_id=author["id"],
            kind="comment",
            message=f"{author['name']} {verb} your post",
            resource_type="social_post",
            resource_id=post["id"],
        )

    async def on_reaction_added(self, event: DomainEvent) -> None:
        if event.data["previous_reaction"] is not None:
            return
        target = event.data["target"]
        reaction = event.data["reaction"]
        await self._notify(
            event,
            recipient_id=target["author_id"],
            actor_id=reaction["user_id"],
            kind="reaction",
            message=(
                f"{reaction['user_name']} reacted {reaction['type']} "
                f"to your {target['type']}"
            ),
            resource_type=target["type"],
            resource_id=target["id"],
        )

    async def on_user_mentioned(self, event: DomainEvent) -> None:
        mention = event.data["mention"]
        content = event.data["content"]
        await self._notify(
            event,
            recipient_id=mention["mentioned_user_id"],
            actor_id=mention["mentioned_by_user_id"],
            kind="mention",
            message=f"{mention['mentioned_by_name']} mentioned you in a {content['type']}",
            resource_type=content["type"],
            resource_id=content["id"],
        )

    async def on_engagement_milestone(self, event: DomainEvent) -> None:
        entity = event.data["entity"]
        milestone = event.data["milestone"]
        await self._notify(
            event,
            recipient_id=entity["author_id"],
            actor_id=None,
            kind="milestone",
            message=(
                f"Your post reached a milestone: {milestone['type']} "
                f"({milestone['actual_value']})"
            ),
            resource_type=entity["type"],
            resource_id=entity["id"],
        )

    async def _notify(
        self,
        event: DomainEvent,
        *,
        recipient_id: int,
        actor_id: int | None,
        kind: str,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        if recipient_id == actor_id:
            return
        await self._activity_log.notify(NotificationEntry(
            organization_id=event.organization_id,
            recipient_id=recipient_id,
            actor_id=actor_id,
            kind=kind,
            message=message,
            resource_type=resource_type,
            resource_id=resource_id,
        ))
        logger.info(
            f"Notification queued: {kind}",
            extra={
                "user_id": recipient_id, "event_id": event.id,
                "organization_id": event.organization_id,
            },
        )
