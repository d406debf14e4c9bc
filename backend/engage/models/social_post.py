"""SocialPost ORM — a feed post, scoped by organization.

Invariants:
    - organization_id is denormalized from the author for tenant-scoped queries
    - Deletion is soft: is_deleted/deleted_at/deleted_by, rows are never removed
    - reactions and poll_votes hold at most one row per user (see their unique constraints)
    - comments_count/views_count are counters maintained by the store

Design Decisions:
    - JSON for tags, poll_options, recognition, mentions, reached_milestones:
      small value lists always read together with the post
    - reactions/poll_votes as child tables: the unique constraint is what
      enforces single-reaction and single-vote per user
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Integer, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from engage.db.base import Base


class SocialPost(Base):
    __tablename__ = "social_posts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True,
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False,
    )
    author_name: Mapped[str] = mapped_column(String(200), nullable=False)
    author_avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    post_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    visibility: Mapped[str] = mapped_column(
        String(20), nullable=False, default="public",
    )
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    poll_options: Mapped[list | None] = mapped_column(JSON, nullable=True)
    poll_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    recognition: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    mentions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    reached_milestones: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    deleted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    reactions: Mapped[list["PostReaction"]] = relationship(
        "PostReaction", back_populates="post",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="PostReaction.created_at",
    )
    poll_votes: Mapped[list["PollVoteRecord"]] = relationship(
        "PollVoteRecord", back_populates="post",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="PollVoteRecord.voted_at",
    )
