"""Social Events — event type constants and factories for the social feed.

Invariants:
    - Every factory returns a DomainEvent with source "social-features"
    - Payloads never carry ORM objects, only JSON-friendly values
    - organization_id on the envelope always equals the entity's organization

Design Decisions:
    - One factory per event type keeps payload shape in one place; handlers
      and tests read the same keys
"""

from datetime import datetime
from enum import Enum

from engage.core.events import DomainEvent
from engage.core.social_entities import Comment, Member, Mention, Post

SOCIAL_SOURCE = "social-features"


class SocialEventType(str, Enum):
    POST_CREATED = "social.post_created"
    COMMENT_ADDED = "social.comment_added"
    REACTION_ADDED = "social.reaction_added"
    REACTION_REMOVED = "social.reaction_removed"
    POLL_VOTE_CAST = "social.poll_vote_cast"
    POST_DELETED = "social.post_deleted"
    USER_MENTIONED = "social.user_mentioned"
    ENGAGEMENT_MILESTONE = "social.engagement_milestone"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _member_ref(member: Member) -> dict:
    return {
        "id": member.id,
        "name": member.name,
        "department": member.department,
    }


def _mention_refs(mentions: list[Mention]) -> list[dict]:
    return [
        {"user_id": m.user_id, "username": m.username, "name": m.name}
        for m in mentions
    ]


def _event(
    event_type: SocialEventType, data: dict, organization_id: int,
    user_id: int | None, correlation_id: str | None,
    metadata: dict | None = None,
) -> DomainEvent:
    return DomainEvent(
        type=event_type.value,
        source=SOCIAL_SOURCE,
        data=data,
        organization_id=organization_id,
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def post_created_event(
    post: Post, author: Member, correlation_id: str | None = None,
) -> DomainEvent:
    recognition = None
    if post.recognition is not None:
        recognition = {
            "recipient_id": post.recognition.recipient_id,
            "recipient_name": post.recognition.recipient_name,
            "points": post.recognition.points,
            "category": post.recognition.category,
            "badge_type": post.recognition.badge_type,
        }
    poll = None
    if post.is_poll:
        poll = {
            "options": list(post.poll_options or []),
            "expires_at": _iso(post.poll_expires_at),
        }
    data = {
        "post": {
            "id": str(post.id),
            "author_id": post.author_id,
            "author_name": post.author_name,
            "organization_id": post.organization_id,
            "content": post.content,
            "type": post.type.value,
            "visibility": post.visibility.value,
            "image_url": post.image_url,
            "tags": list(post.tags),
            "created_at": _iso(post.created_at),
        },
        "author": {**_member_ref(author), "avatar_url": author.avatar_url},
        "poll": poll,
        "recognition": recognition,
        "mentions": _mention_refs(post.mentions),
    }
    return _event(
        SocialEventType.POST_CREATED, data, post.organization_id,
        author.id, correlation_id,
        metadata={"post_type": post.type.value, "visibility": post.visibility.value},
    )


def comment_added_event(
    comment: Comment, post: Post, author: Member,
    correlation_id: str | None = None,
) -> DomainEvent:
    data = {
        "comment": {
            "id": str(comment.id),
            "post_id": str(comment.post_id),
            "author_id": comment.author_id,
            "author_name": comment.author_name,
            "organization_id": comment.organization_id,
            "content": comment.content,
            "parent_comment_id": (
                str(comment.parent_comment_id) if comment.parent_comment_id else None
            ),
            "created_at": _iso(comment.created_at),
        },
        "post": {
            "id": str(post.id),
            "author_id": post.author_id,
            "author_name": post.author_name,
            "type": post.type.value,
        },
        "author": _member_ref(author),
        "mentions": _mention_refs(comment.mentions),
        "is_reply": comment.parent_comment_id is not None,
    }
    return _event(
        SocialEventType.COMMENT_ADDED, data, comment.organization_id,
        author.id, correlation_id,
    )


def reaction_added_event(
    *,
    target_type: str,
    target_id: str,
    target_author_id: int,
    target_author_name: str,
    organization_id: int,
    reactor: Member,
    reaction_type: str,
    previous_reaction: str | None,
    reacted_at: datetime,
    correlation_id: str | None = None,
) -> DomainEvent:
    data = {
        "reaction": {
            "user_id": reactor.id,
            "user_name": reactor.name,
            "type": reaction_type,
            "created_at": _iso(reacted_at),
        },
        "target": {
            "id": target_id,
            "type": target_type,
            "author_id": target_author_id,
            "author_name": target_author_name,
            "organization_id": organization_id,
        },
        "reactor": _member_ref(reactor),
        "previous_reaction": previous_reaction,
    }
    return _event(
        SocialEventType.REACTION_ADDED, data, organization_id,
        reactor.id, correlation_id,
    )


def reaction_removed_event(
    *,
    target_type: str,
    target_id: str,
    organization_id: int,
    reactor: Member,
    removed_reaction: str,
    correlation_id: str | None = None,
) -> DomainEvent:
    data = {
        "target": {
            "id": target_id,
            "type": target_type,
            "organization_id": organization_id,
        },
        "reactor": _member_ref(reactor),
        "removed_reaction": removed_reaction,
    }
    return _event(
        SocialEventType.REACTION_REMOVED, data, organization_id,
        reactor.id, correlation_id,
    )


def poll_vote_cast_event(
    post: Post, voter: Member, option: str, previous_option: str | None,
    voted_at: datetime, correlation_id: str | None = None,
) -> DomainEvent:
    data = {
        "vote": {
            "user_id": voter.id,
            "user_name": voter.name,
            "option": option,
            "previous_option": previous_option,
            "voted_at": _iso(voted_at),
        },
        "poll": {
            "post_id": str(post.id),
            "author_id": post.author_id,
            "author_name": post.author_name,
            "organization_id": post.organization_id,
            "question": post.content,
            "options": list(post.poll_options or []),
            "expires_at": _iso(post.poll_expires_at),
        },
        "voter": _member_ref(voter),
        "is_first_vote": previous_option is None,
    }
    return _event(
        SocialEventType.POLL_VOTE_CAST, data, post.organization_id,
        voter.id, correlation_id,
    )


def post_deleted_event(
    post: Post, deleted_by: Member, is_author: bool, reason: str | None,
    deleted_at: datetime, correlation_id: str | None = None,
) -> DomainEvent:
    data = {
        "post": {
            "id": str(post.id),
            "author_id": post.author_id,
            "author_name": post.author_name,
            "organization_id": post.organization_id,
            "type": post.type.value,
            "comments_count": post.comments_count,
            "reactions_count": len(post.reactions),
            "deleted_at": _iso(deleted_at),
        },
        "deleted_by": {
            "id": deleted_by.id,
            "name": deleted_by.name,
            "is_author": is_author,
        },
        "reason": reason,
    }
    return _event(
        SocialEventType.POST_DELETED, data, post.organization_id,
        deleted_by.id, correlation_id,
    )


def user_mentioned_event(
    *,
    mention: Mention,
    mentioned_by: Member,
    organization_id: int,
    content_type: str,
    content_id: str,
    content: str,
    post_id: str,
    comment_id: str | None = None,
    correlation_id: str | None = None,
) -> DomainEvent:
    data = {
        "mention": {
            "mentioned_user_id": mention.user_id,
            "mentioned_username": mention.username,
            "mentioned_by_user_id": mentioned_by.id,
            "mentioned_by_name": mentioned_by.name,
            "organization_id": organization_id,
        },
        "content": {
            "id": content_id,
            "type": content_type,
            "content": content,
        },
        "context": {"post_id": post_id, "comment_id": comment_id},
    }
    return _event(
        SocialEventType.USER_MENTIONED, data, organization_id,
        mentioned_by.id, correlation_id,
    )


def engagement_milestone_event(
    post: Post, milestone: dict, metrics: dict,
    correlation_id: str | None = None,
) -> DomainEvent:
    data = {
        "entity": {
            "id": str(post.id),
            "type": "post",
            "author_id": post.author_id,
            "organization_id": post.organization_id,
        },
        "milestone": {
            "type": milestone["type"],
            "threshold": milestone["threshold"],
            "actual_value": milestone["value"],
        },
        "metrics": dict(metrics),
    }
    return _event(
        SocialEventType.ENGAGEMENT_MILESTONE, data, post.organization_id,
        None, correlation_id,
    )
