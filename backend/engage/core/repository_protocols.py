"""Boundary Protocols — contracts between the social domain and its storage backends.

Invariants:
    - Core NEVER imports from services/, infrastructure/ or db/
    - Both backends (relational, in-memory document) satisfy every protocol here
    - Reaction and vote writes are replace-semantics: at most one per user per target

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Async in Protocol: implementations do IO even when the in-memory one does not
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from engage.core.social_entities import (
    AuditEntry, Comment, Member, NotificationEntry, PollVote, Post,
    PostFilterSpec, Reaction,
)


class MemberDirectory(Protocol):
    """Read access to users; owned by the HR directory, read-only here."""
    async def get_member(self, user_id: int) -> Member | None: ...
    async def find_members_by_username(
        self, organization_id: int, usernames: list[str],
    ) -> list[Member]: ...


class SocialRepository(Protocol):
    """Contract for post/comment persistence."""
    async def persist_post(self, post: Post) -> Post: ...
    async def get_post(self, post_id: UUID) -> Post | None: ...
    async def list_posts(
        self, organization_id: int, filters: PostFilterSpec,
    ) -> list[Post]: ...
    async def soft_delete_post(
        self, post_id: UUID, deleted_by: int, deleted_at: datetime,
    ) -> bool: ...
    async def increment_view_count(self, post_id: UUID) -> None: ...
    async def record_milestones(
        self, post_id: UUID, milestones: list[str],
    ) -> None: ...

    async def persist_comment(self, comment: Comment) -> Comment: ...
    async def get_comment(self, comment_id: UUID) -> Comment | None: ...
    async def list_comments(self, post_id: UUID) -> list[Comment]: ...
    async def soft_delete_comment(
        self, comment_id: UUID, deleted_by: int, deleted_at: datetime,
    ) -> bool: ...

    async def set_post_reaction(self, post_id: UUID, reaction: Reaction) -> bool: ...
    async def remove_post_reaction(self, post_id: UUID, user_id: int) -> bool: ...
    async def set_comment_reaction(
        self, comment_id: UUID, reaction: Reaction,
    ) -> bool: ...
    async def cast_poll_vote(self, post_id: UUID, vote: PollVote) -> bool: ...


class ActivityLog(Protocol):
    """Sink for audit entries and user notifications written by event handlers."""
    async def record_audit(self, entry: AuditEntry) -> None: ...
    async def list_audit(
        self, organization_id: int, limit: int = 50,
    ) -> list[AuditEntry]: ...
    async def notify(self, notification: NotificationEntry) -> None: ...
    async def list_notifications(
        self, organization_id: int, recipient_id: int, unread_only: bool = False,
    ) -> list[NotificationEntry]: ...
    async def mark_notification_read(
        self, notification_id: UUID, recipient_id: int,
    ) -> bool: ...
