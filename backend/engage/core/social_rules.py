"""Social Rules — pure validation and bookkeeping for the social feed.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no clock reads (now is passed in)
    - Violations raise typed EngageError subclasses (core/errors.py)
    - A user holds at most one reaction per target and one vote per poll

Design Decisions:
    - Raising over error dicts: the domain service lets these propagate to the
      global FastAPI handler, which already knows how to render them
    - Milestone evaluation returns only NEW milestones so callers can publish
      each one exactly once per post
"""

import re
from dataclasses import dataclass
from datetime import datetime

from engage.core.domain_types import MilestoneType, MIN_POLL_OPTIONS, PostType
from engage.core.errors import (
    ErrorContext,
    InvalidPollOptionError,
    NotAPollError,
    OrganizationMismatchError,
    PermissionDeniedError,
    PollClosedError,
    ResourceNotFoundError,
    SocialValidationError,
)
from engage.core.social_entities import (
    Member, PollVote, Post, Reaction, RecognitionData,
)

MENTION_PATTERN = re.compile(r"@(\w+)")


# ─── Mentions ────────────────────────────────────────────────────

def extract_mentions(content: str) -> list[str]:
    """Return @handles in order of first appearance, without duplicates."""
    seen: dict[str, None] = {}
    for handle in MENTION_PATTERN.findall(content or ""):
        seen.setdefault(handle, None)
    return list(seen)


# ─── Tenant scoping ──────────────────────────────────────────────

def require_member_of(
    member: Member | None, organization_id: int, label: str = "user",
) -> Member:
    """Member must exist, be active, and belong to organization_id."""
    if (
        member is None
        or not member.is_active
        or member.organization_id != organization_id
    ):
        raise OrganizationMismatchError(
            f"Invalid {label} or organization mismatch",
            ErrorContext(
                organization_id=organization_id,
                user_id=member.id if member else None,
            ),
        )
    return member


def require_same_organization(
    entity_organization_id: int, organization_id: int, message: str,
) -> None:
    if entity_organization_id != organization_id:
        raise OrganizationMismatchError(
            message, ErrorContext(organization_id=organization_id),
        )


def require_live_post(post: Post | None, post_id: str) -> Post:
    """Post must exist and not be soft-deleted."""
    if post is None or post.is_deleted:
        raise ResourceNotFoundError(
            "Post", post_id,
            ErrorContext(resource_id=post_id),
            message="Post not found or has been deleted",
        )
    return post


def require_delete_permission(member: Member, post_author_id: int) -> bool:
    """Authors delete their own content; admins delete anything. Returns is_author."""
    is_author = member.id == post_author_id
    if not (is_author or member.is_admin):
        raise PermissionDeniedError(
            "Only the author or an organization admin can delete this content",
            ErrorContext(
                organization_id=member.organization_id, user_id=member.id,
            ),
        )
    return is_author


# ─── Post creation ───────────────────────────────────────────────

def check_post_rules(
    post_type: PostType,
    poll_options: list[str] | None,
    poll_expires_at: datetime | None,
    recognition: RecognitionData | None,
    now: datetime,
) -> None:
    """Type-specific rules that a schema alone cannot express."""
    if post_type == PostType.POLL:
        if not poll_options or len(poll_options) < MIN_POLL_OPTIONS:
            raise SocialValidationError(
                f"Polls must have at least {MIN_POLL_OPTIONS} options",
                field="poll_options",
            )
        if len(set(poll_options)) != len(poll_options):
            raise SocialValidationError(
                "Poll options must be unique", field="poll_options",
            )
        if poll_expires_at is not None and poll_expires_at <= now:
            raise SocialValidationError(
                "Poll expiration must be in the future",
                field="poll_expires_at",
            )
    if post_type == PostType.RECOGNITION and recognition is None:
        raise SocialValidationError(
            "Recognition posts must include recognition data",
            field="recognition",
        )


# ─── Polls ───────────────────────────────────────────────────────

def is_poll_expired(post: Post, now: datetime) -> bool:
    return post.poll_expires_at is not None and post.poll_expires_at < now


def check_vote_allowed(post: Post, option: str, now: datetime) -> None:
    """Post must be an open poll offering `option`."""
    if not post.is_poll:
        raise NotAPollError(ErrorContext(resource_id=str(post.id)))
    if is_poll_expired(post, now):
        raise PollClosedError(ErrorContext(resource_id=str(post.id)))
    if not post.poll_options or option not in post.poll_options:
        raise InvalidPollOptionError(
            option, ErrorContext(resource_id=str(post.id)),
        )


def find_vote(votes: list[PollVote], user_id: int) -> PollVote | None:
    return next((v for v in votes if v.user_id == user_id), None)


def replace_vote(
    votes: list[PollVote], vote: PollVote,
) -> tuple[list[PollVote], PollVote | None]:
    """Drop the user's earlier vote (if any) and append the new one."""
    previous = find_vote(votes, vote.user_id)
    kept = [v for v in votes if v.user_id != vote.user_id]
    return kept + [vote], previous


def tally_poll(post: Post) -> dict:
    """Vote counts per option; every option appears even with zero votes."""
    counts = {option: 0 for option in (post.poll_options or [])}
    for vote in post.poll_votes:
        if vote.option in counts:
            counts[vote.option] += 1
    return {"options": counts, "total_votes": sum(counts.values())}


# ─── Reactions ───────────────────────────────────────────────────

def find_reaction(reactions: list[Reaction], user_id: int) -> Reaction | None:
    return next((r for r in reactions if r.user_id == user_id), None)


def replace_reaction(
    reactions: list[Reaction], reaction: Reaction,
) -> tuple[list[Reaction], Reaction | None]:
    """Single reaction per user: the new one replaces any previous one."""
    previous = find_reaction(reactions, reaction.user_id)
    kept = [r for r in reactions if r.user_id != reaction.user_id]
    return kept + [reaction], previous


def remove_reaction(
    reactions: list[Reaction], user_id: int,
) -> tuple[list[Reaction], Reaction | None]:
    removed = find_reaction(reactions, user_id)
    return [r for r in reactions if r.user_id != user_id], removed


# ─── Engagement milestones ───────────────────────────────────────

@dataclass(frozen=True)
class EngagementThresholds:
    viral_reactions: int = 50
    high_engagement_comments: int = 25
    high_reach_views: int = 500


def engagement_metrics(post: Post) -> dict:
    return {
        "reactions": len(post.reactions),
        "comments": post.comments_count,
        "shares": post.shares_count,
        "views": post.views_count,
    }


def evaluate_milestones(
    metrics: dict,
    thresholds: EngagementThresholds,
    already_reached: list[str] | None = None,
) -> list[dict]:
    """Milestones whose threshold is met and that were not reached before."""
    reached = set(already_reached or [])
    checks = (
        (MilestoneType.POST_VIRAL, "reactions", thresholds.viral_reactions),
        (MilestoneType.HIGH_ENGAGEMENT, "comments", thresholds.high_engagement_comments),
        (MilestoneType.HIGH_REACH, "views", thresholds.high_reach_views),
    )
    return [
        {"type": kind.value, "threshold": threshold, "value": metrics[metric]}
        for kind, metric, threshold in checks
        if metrics.get(metric, 0) >= threshold and kind.value not in reached
    ]
