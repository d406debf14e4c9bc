"""Notification Handlers — tests for in-app notifications derived from events.

Tests cover:
    - recognition, comment, first reaction, mention and milestone notifications
    - actors are never notified about their own actions
    - changing a reaction type does not notify again
    - notification failures are dead-lettered by the event system
"""

import pytest

from engage.core.social_events import SocialEventType
from engage.infrastructure.activity_log import MemoryActivityLog
from engage.services.notification_handlers import NotificationHandlers


@pytest.fixture
def activity_log():
    return MemoryActivityLog()


@pytest.fixture
def handlers(events, activity_log):
    h = NotificationHandlers(activity_log)
    h.register(events)
    return h


def _inbox(activity_log, user_id: int, kind: str) -> list[str]:
    return [
        n.message for n in activity_log.notifications
        if n.recipient_id == user_id and n.kind == kind
    ]


async def test_recognition_notifies_recipient(domain, handlers, activity_log):
    await domain.create_post({
        "content": "Thank you Bob!",
        "type": "recognition",
        "recognition": {
            "recipient_id": 2, "recipient_name": "Bob Costa",
            "points": 200, "category": "impact", "badge_type": "gold",
        },
    }, 1, 1)

    assert _inbox(activity_log, 2, "recognition") == [
        "Alice Silva recognized you with 200 points",
    ]


async def test_comment_and_reply_notify_post_author(domain, handlers, activity_log):
    post = await domain.create_post({"content": "Feedback welcome"}, 1, 1)
    comment = await domain.add_comment(post.id, {"content": "Nice"}, 2, 1)
    await domain.add_comment(
        post.id, {"content": "Agreed", "parent_comment_id": str(comment.id)}, 3, 1,
    )
    await domain.add_comment(post.id, {"content": "Thanks all"}, 1, 1)

    assert _inbox(activity_log, 1, "comment") == [
        "Bob Costa commented on your post",
        "Carol Admin replied on your post",
    ]


async def test_only_first_reaction_notifies(domain, handlers, activity_log):
    post = await domain.create_post({"content": "React please"}, 1, 1)
    await domain.add_post_reaction(post.id, {"type": "like"}, 2, 1)
    await domain.add_post_reaction(post.id, {"type": "love"}, 2, 1)
    await domain.add_post_reaction(post.id, {"type": "like"}, 1, 1)

    assert _inbox(activity_log, 1, "reaction") == [
        "Bob Costa reacted like to your post",
    ]


async def test_mention_notifies_mentioned_user(domain, handlers, activity_log):
    post = await domain.create_post({"content": "Ping @carol and @alice"}, 1, 1)

    [notification] = [n for n in activity_log.notifications if n.kind == "mention"]
    assert notification.recipient_id == 3
    assert notification.actor_id == 1
    assert notification.resource_id == str(post.id)
    assert notification.message == "Alice Silva mentioned you in a post"


async def test_milestone_notifies_author(domain, handlers, activity_log):
    post = await domain.create_post({"content": "Hot take"}, 1, 1)
    await domain.add_post_reaction(post.id, {"type": "like"}, 2, 1)
    await domain.add_post_reaction(post.id, {"type": "like"}, 3, 1)

    milestones = [n for n in activity_log.notifications if n.kind == "milestone"]
    assert [(n.recipient_id, n.actor_id) for n in milestones] == [(1, None)]
    assert milestones[0].message == "Your post reached a milestone: post_viral (2)"


async def test_notification_failure_is_dead_lettered(domain, events):
    class BrokenLog:
        async def notify(self, notification):
            raise RuntimeError("inbox down")

    NotificationHandlers(BrokenLog()).register(events)
    post = await domain.create_post({"content": "Hello"}, 1, 1)
    await domain.add_comment(post.id, {"content": "Hi"}, 2, 1)

    [entry] = events.get_dead_letter_queue()
    assert entry.event.type == SocialEventType.COMMENT_ADDED.value
    assert entry.error == "inbox down"
