"""Social Entities — storage-neutral records passed between domain and backends.

Invariants:
    - Both storage backends read and write these records (never ORM rows)
    - Post.reactions holds at most one Reaction per user_id
    - Post.poll_votes holds at most one PollVote per user_id
    - All datetimes are timezone-aware UTC

Design Decisions:
    - Plain dataclasses: the relational store maps rows into them, the
      document store keeps them as-is with embedded reactions and votes
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from engage.core.domain_types import MemberRole, PostType, Visibility


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Member:
    """A user as seen by the social layer (directory lookup result)."""
    id: int
    organization_id: int
    name: str
    username: str
    email: str = ""
    department: str | None = None
    avatar_url: str | None = None
    role: MemberRole = MemberRole.EMPLOYEE
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN


@dataclass
class Mention:
    user_id: int
    username: str
    name: str


@dataclass
class Reaction:
    user_id: int
    user_name: str
    type: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class PollVote:
    user_id: int
    user_name: str
    option: str
    voted_at: datetime = field(default_factory=utcnow)


@dataclass
class RecognitionData:
    recipient_id: int
    recipient_name: str
    points: int
    category: str
    badge_type: str


@dataclass
class Post:
    organization_id: int
    author_id: int
    author_name: str
    content: str
    type: PostType = PostType.TEXT
    visibility: Visibility = Visibility.PUBLIC
    author_avatar: str | None = None
    image_url: str | None = None
    tags: list[str] = field(default_factory=list)
    poll_options: list[str] | None = None
    poll_votes: list[PollVote] = field(default_factory=list)
    poll_expires_at: datetime | None = None
    recognition: RecognitionData | None = None
    reactions: list[Reaction] = field(default_factory=list)
    mentions: list[Mention] = field(default_factory=list)
    reached_milestones: list[str] = field(default_factory=list)
    comments_count: int = 0
    shares_count: int = 0
    views_count: int = 0
    is_pinned: bool = False
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: int | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_poll(self) -> bool:
        return self.type == PostType.POLL


@dataclass
class Comment:
    post_id: UUID
    organization_id: int
    author_id: int
    author_name: str
    content: str
    author_avatar: str | None = None
    parent_comment_id: UUID | None = None
    reactions: list[Reaction] = field(default_factory=list)
    mentions: list[Mention] = field(default_factory=list)
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: int | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class PostFilterSpec:
    """Storage-level query for listing posts (already validated)."""
    type: PostType | None = None
    author_id: int | None = None
    tags: list[str] | None = None
    search: str | None = None
    visibility: Visibility | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = 20
    skip: int = 0


@dataclass
class AuditEntry:
    organization_id: int
    action: str
    resource_type: str
    resource_id: str
    user_id: int | None = None
    details: dict = field(default_factory=dict)
    event_id: str | None = None
    correlation_id: str | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class NotificationEntry:
    organization_id: int
    recipient_id: int
    kind: str
    message: str
    resource_type: str
    resource_id: str
    actor_id: int | None = None
    is_read: bool = False
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
