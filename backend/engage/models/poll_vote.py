"""PollVote ORM — one vote per (poll post, user); re-voting replaces the row."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from engage.db.base import Base


class PollVoteRecord(Base):
    __tablename__ = "poll_votes"
    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="uq_poll_votes_post_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    post_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("social_posts.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)
    option: Mapped[str] = mapped_column(String(200), nullable=False)
    voted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    post: Mapped["SocialPost"] = relationship(
        "SocialPost", back_populates="poll_votes",
    )
