"""Social Schemas — Pydantic models with field-level validation for the social feed API.

Invariants:
    - PostCreate.content: 1-2000 chars, stripped, non-empty
    - CommentCreate.content: 1-1000 chars, stripped, non-empty
    - Tags: at most 10, each at most 50 chars; poll options: 2-10, each 1-200 chars
    - Recognition points: 1-1000
    - Naive datetimes are read as UTC

Design Decisions:
    - Cross-field rules (poll needs options, recognition needs data) live in
      core/social_rules.py: they need "now" and raise typed domain errors
    - Response models read core entities via from_attributes (no ORM rows here)
"""

from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from pydantic import (
    BaseModel, ConfigDict, Field, HttpUrl, field_validator,
)

from engage.core.domain_types import (
    COMMENT_REACTION_TYPES,
    DEFAULT_PAGE_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_PAGE_SIZE,
    MAX_POLL_OPTION_LENGTH,
    MAX_POLL_OPTIONS,
    MAX_POST_LENGTH,
    MAX_RECOGNITION_POINTS,
    MAX_TAG_LENGTH,
    MAX_TAGS,
    MIN_POLL_OPTIONS,
    PostType,
    ReactionType,
    Visibility,
)

Tag = Annotated[str, Field(max_length=MAX_TAG_LENGTH)]
PollOption = Annotated[str, Field(min_length=1, max_length=MAX_POLL_OPTION_LENGTH)]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _strip_required(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} cannot be empty or whitespace")
    return value


# ─── Requests ────────────────────────────────────────────────────

class RecognitionIn(BaseModel):
    """Recognition payload attached to a recognition post."""
    recipient_id: int = Field(gt=0)
    recipient_name: str = Field(min_length=1)
    points: int = Field(gt=0, le=MAX_RECOGNITION_POINTS)
    category: str = Field(min_length=1)
    badge_type: str = Field(min_length=1)


class PostCreate(BaseModel):
    """Post creation — content length, tag and poll option limits."""
    content: str = Field(min_length=1, max_length=MAX_POST_LENGTH)
    type: PostType = PostType.TEXT
    visibility: Visibility = Visibility.PUBLIC
    image_url: HttpUrl | None = None
    tags: list[Tag] | None = Field(None, max_length=MAX_TAGS)
    poll_options: list[PollOption] | None = Field(
        None, min_length=MIN_POLL_OPTIONS, max_length=MAX_POLL_OPTIONS,
    )
    poll_expires_at: datetime | None = None
    recognition: RecognitionIn | None = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        return _strip_required(v, "content")

    @field_validator("poll_expires_at")
    @classmethod
    def expires_in_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)


class CommentCreate(BaseModel):
    """Comment creation — optional parent for threaded replies."""
    content: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)
    parent_comment_id: UUID | None = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        return _strip_required(v, "content")


class ReactionCreate(BaseModel):
    type: ReactionType


class CommentReactionCreate(BaseModel):
    """Comments accept a subset of post reactions (no "insightful")."""
    type: ReactionType

    @field_validator("type")
    @classmethod
    def comment_reaction_allowed(cls, v: ReactionType) -> ReactionType:
        if v not in COMMENT_REACTION_TYPES:
            raise ValueError(f"'{v.value}' is not allowed on comments")
        return v


class PollVoteCreate(BaseModel):
    option: str = Field(min_length=1)


class PostDelete(BaseModel):
    reason: str | None = Field(None, max_length=500)


class PostFilters(BaseModel):
    """Feed query — all fields optional, paginated."""
    type: PostType | None = None
    author_id: int | None = None
    tags: list[str] | None = None
    search: str | None = Field(None, max_length=200)
    visibility: Visibility | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    skip: int = Field(0, ge=0)

    @field_validator("date_from", "date_to")
    @classmethod
    def dates_in_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)


# ─── Responses ───────────────────────────────────────────────────

class ReactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    user_name: str
    type: str
    created_at: datetime


class MentionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    username: str
    name: str


class PollVoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    user_name: str
    option: str
    voted_at: datetime


class RecognitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recipient_id: int
    recipient_name: str
    points: int
    category: str
    badge_type: str


class PostResponse(BaseModel):
    """Post response — public-facing post data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: int
    author_id: int
    author_name: str
    author_avatar: str | None = None
    content: str
    type: PostType
    visibility: Visibility
    image_url: str | None = None
    tags: list[str] = []
    poll_options: list[str] | None = None
    poll_votes: list[PollVoteOut] = []
    poll_expires_at: datetime | None = None
    recognition: RecognitionOut | None = None
    reactions: list[ReactionOut] = []
    mentions: list[MentionOut] = []
    comments_count: int = 0
    shares_count: int = 0
    views_count: int = 0
    is_pinned: bool = False
    created_at: datetime
    updated_at: datetime


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    post_id: UUID
    organization_id: int
    author_id: int
    author_name: str
    author_avatar: str | None = None
    content: str
    parent_comment_id: UUID | None = None
    reactions: list[ReactionOut] = []
    mentions: list[MentionOut] = []
    created_at: datetime
    updated_at: datetime


class PostListResponse(BaseModel):
    posts: list[PostResponse]
    limit: int
    skip: int


class PollResultsResponse(BaseModel):
    post_id: UUID
    options: dict[str, int]
    total_votes: int
    expires_at: datetime | None = None
    is_expired: bool


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str]
