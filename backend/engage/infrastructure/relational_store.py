"""Relational Social Store — SQLAlchemy implementation of SocialRepository and MemberDirectory.

Invariants:
    - Works on a request-scoped AsyncSession (get_db); every write commits
    - Rows never escape this module: callers only see core/social_entities records
    - Datetimes leave this module timezone-aware UTC (SQLite hands back naive values)
    - Reaction/vote writes replace the user's previous row (unique constraint per target)

Design Decisions:
    - Feed ordering: pinned first, then newest first; comments oldest first
    - Search is a literal case-insensitive substring match (LIKE wildcards escaped)
    - Tag filtering happens after the SQL query: JSON containment operators differ
      between Postgres and SQLite, and tag lists are small
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from engage.core.domain_types import MemberRole, PostType, Visibility
from engage.core.social_entities import (
    Comment, Member, Mention, PollVote, Post, PostFilterSpec, Reaction,
    RecognitionData,
)
from engage.models.comment import CommentRecord
from engage.models.comment_reaction import CommentReaction
from engage.models.member import MemberRecord
from engage.models.poll_vote import PollVoteRecord
from engage.models.post_reaction import PostReaction
from engage.models.social_post import SocialPost

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ─── Row → entity mapping ────────────────────────────────────────

def _to_member(row: MemberRecord) -> Member:
    return Member(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        username=row.username,
        email=row.email,
        department=row.department,
        avatar_url=row.avatar_url,
        role=MemberRole(row.role),
        is_active=row.is_active,
    )


def _mentions_from_json(items: list | None) -> list[Mention]:
    return [
        Mention(user_id=m["user_id"], username=m["username"], name=m["name"])
        for m in (items or [])
    ]


def _mentions_to_json(mentions: list[Mention]) -> list[dict]:
    return [
        {"user_id": m.user_id, "username": m.username, "name": m.name}
        for m in mentions
    ]


def _recognition_to_json(data: RecognitionData | None) -> dict | None:
    if data is None:
        return None
    return {
        "recipient_id": data.recipient_id,
        "recipient_name": data.recipient_name,
        "points": data.points,
        "category": data.category,
        "badge_type": data.badge_type,
    }


def _to_post(row: SocialPost) -> Post:
    recognition = None
    if row.recognition:
        recognition = RecognitionData(**row.recognition)
    return Post(
        id=row.id,
        organization_id=row.organization_id,
        author_id=row.author_id,
        author_name=row.author_name,
        author_avatar=row.author_avatar,
        content=row.content,
        type=PostType(row.post_type),
        visibility=Visibility(row.visibility),
        image_url=row.image_url,
        tags=list(row.tags or []),
        poll_options=list(row.poll_options) if row.poll_options else None,
        poll_votes=[
            PollVote(
                user_id=v.user_id, user_name=v.user_name,
                option=v.option, voted_at=as_utc(v.voted_at),
            )
            for v in row.poll_votes
        ],
        poll_expires_at=as_utc(row.poll_expires_at),
        recognition=recognition,
        reactions=[
            Reaction(
                user_id=r.user_id, user_name=r.user_name,
                type=r.reaction_type, created_at=as_utc(r.created_at),
            )
            for r in row.reactions
        ],
        mentions=_mentions_from_json(row.mentions),
        reached_milestones=list(row.reached_milestones or []),
        comments_count=row.comments_count,
        shares_count=row.shares_count,
        views_count=row.views_count,
        is_pinned=row.is_pinned,
        is_deleted=row.is_deleted,
        deleted_at=as_utc(row.deleted_at),
        deleted_by=row.deleted_by,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _to_comment(row: CommentRecord) -> Comment:
    return Comment(
        id=row.id,
        post_id=row.post_id,
        organization_id=row.organization_id,
        author_id=row.author_id,
        author_name=row.author_name,
        author_avatar=row.author_avatar,
        content=row.content,
        parent_comment_id=row.parent_comment_id,
        reactions=[
            Reaction(
                user_id=r.user_id, user_name=r.user_name,
                type=r.reaction_type, created_at=as_utc(r.created_at),
            )
            for r in row.reactions
        ],
        mentions=_mentions_from_json(row.mentions),
        is_deleted=row.is_deleted,
        deleted_at=as_utc(row.deleted_at),
        deleted_by=row.deleted_by,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


class RelationalSocialStore:
    """SocialRepository + MemberDirectory over one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Members ────────────────────────────────────────────────

    async def get_member(self, user_id: int) -> Member | None:
        row = await self.db.get(MemberRecord, user_id)
        return _to_member(row) if row else None

    async def find_members_by_username(
        self, organization_id: int, usernames: list[str],
    ) -> list[Member]:
        if not usernames:
            return []
        result = await self.db.execute(
            select(MemberRecord).where(
                MemberRecord.organization_id == organization_id,
                MemberRecord.username.in_(usernames),
                MemberRecord.is_active.is_(True),
            ),
        )
        return [_to_member(r) for r in result.scalars().all()]

    # ─── Posts ──────────────────────────────────────────────────

    async def _load_post_row(self, post_id: UUID) -> SocialPost | None:
        result = await self.db.execute(
            select(SocialPost)
            .where(SocialPost.id == post_id)
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    async def persist_post(self, post: Post) -> Post:
        row = SocialPost(
            id=post.id,
            organization_id=post.organization_id,
            author_id=post.author_id,
            author_name=post.author_name,
            author_avatar=post.author_avatar,
            content=post.content,
            post_type=post.type.value,
            visibility=post.visibility.value,
            image_url=post.image_url,
            tags=list(post.tags),
            poll_options=list(post.poll_options) if post.poll_options else None,
            poll_expires_at=post.poll_expires_at,
            recognition=_recognition_to_json(post.recognition),
            mentions=_mentions_to_json(post.mentions),
            reached_milestones=list(post.reached_milestones),
            is_pinned=post.is_pinned,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )
        self.db.add(row)
        await self.db.commit()
        stored = await self._load_post_row(post.id)
        return _to_post(stored)

    async def get_post(self, post_id: UUID) -> Post | None:
        row = await self._load_post_row(post_id)
        return _to_post(row) if row else None

    async def list_posts(
        self, organization_id: int, filters: PostFilterSpec,
    ) -> list[Post]:
        query = select(SocialPost).where(
            SocialPost.organization_id == organization_id,
            SocialPost.is_deleted.is_(False),
        )
        if filters.type is not None:
            query = query.where(SocialPost.post_type == filters.type.value)
        if filters.author_id is not None:
            query = query.where(SocialPost.author_id == filters.author_id)
        if filters.visibility is not None:
            query = query.where(SocialPost.visibility == filters.visibility.value)
        if filters.search:
            query = query.where(
                func.lower(SocialPost.content).contains(
                    filters.search.lower(), autoescape=True,
                ),
            )
        if filters.date_from is not None:
            query = query.where(SocialPost.created_at >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(SocialPost.created_at <= filters.date_to)
        query = query.order_by(
            SocialPost.is_pinned.desc(), SocialPost.created_at.desc(),
        )

        if not filters.tags:
            query = query.limit(filters.limit).offset(filters.skip)
            result = await self.db.execute(query)
            return [_to_post(r) for r in result.scalars().all()]

        wanted = set(filters.tags)
        result = await self.db.execute(query)
        matching = [
            r for r in result.scalars().all() if wanted.intersection(r.tags or [])
        ]
        window = matching[filters.skip:filters.skip + filters.limit]
        return [_to_post(r) for r in window]

    async def soft_delete_post(
        self, post_id: UUID, deleted_by: int, deleted_at: datetime,
    ) -> bool:
        result = await self.db.execute(
            update(SocialPost)
            .where(SocialPost.id == post_id, SocialPost.is_deleted.is_(False))
            .values(
                is_deleted=True, deleted_at=deleted_at,
                deleted_by=deleted_by, updated_at=deleted_at,
            ),
        )
        await self.db.commit()
        return result.rowcount > 0

    async def increment_view_count(self, post_id: UUID) -> None:
        await self.db.execute(
            update(SocialPost)
            .where(SocialPost.id == post_id)
            .values(views_count=SocialPost.views_count + 1),
        )
        await self.db.commit()

    async def record_milestones(
        self, post_id: UUID, milestones: list[str],
    ) -> None:
        row = await self._load_post_row(post_id)
        if row is None:
            return
        reached = list(row.reached_milestones or [])
        reached.extend(m for m in milestones if m not in reached)
        # Reassign: in-place mutation of a JSON column is not change-tracked
        row.reached_milestones = reached
        await self.db.commit()
        logger.debug(
            f"Milestones recorded: {milestones}", extra={"post_id": str(post_id)},
        )

    # ─── Comments ───────────────────────────────────────────────

    async def _load_comment_row(self, comment_id: UUID) -> CommentRecord | None:
        result = await self.db.execute(
            select(CommentRecord)
            .where(CommentRecord.id == comment_id)
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    async def persist_comment(self, comment: Comment) -> Comment:
        row = CommentRecord(
            id=comment.id,
            post_id=comment.post_id,
            organization_id=comment.organization_id,
            author_id=comment.author_id,
            author_name=comment.author_name,
            author_avatar=comment.author_avatar,
            content=comment.content,
            parent_comment_id=comment.parent_comment_id,
            mentions=_mentions_to_json(comment.mentions),
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )
        self.db.add(row)
        await self.db.execute(
            update(SocialPost)
            .where(SocialPost.id == comment.post_id)
            .values(comments_count=SocialPost.comments_count + 1),
        )
        await self.db.commit()
        stored = await self._load_comment_row(comment.id)
        return _to_comment(stored)

    async def get_comment(self, comment_id: UUID) -> Comment | None:
        row = await self._load_comment_row(comment_id)
        return _to_comment(row) if row else None

    async def list_comments(self, post_id: UUID) -> list[Comment]:
        result = await self.db.execute(
            select(CommentRecord)
            .where(
                CommentRecord.post_id == post_id,
                CommentRecord.is_deleted.is_(False),
            )
            .order_by(CommentRecord.created_at.asc()),
        )
        return [_to_comment(r) for r in result.scalars().all()]

    async def soft_delete_comment(
        self, comment_id: UUID, deleted_by: int, deleted_at: datetime,
    ) -> bool:
        row = await self._load_comment_row(comment_id)
        if row is None or row.is_deleted:
            return False
        row.is_deleted = True
        row.deleted_at = deleted_at
        row.deleted_by = deleted_by
        row.updated_at = deleted_at
        await self.db.execute(
            update(SocialPost)
            .where(SocialPost.id == row.post_id, SocialPost.comments_count > 0)
            .values(comments_count=SocialPost.comments_count - 1),
        )
        await self.db.commit()
        return True

    # ─── Reactions and votes ────────────────────────────────────

    async def set_post_reaction(self, post_id: UUID, reaction: Reaction) -> bool:
        await self.db.execute(
            delete(PostReaction).where(
                PostReaction.post_id == post_id,
                PostReaction.user_id == reaction.user_id,
            ),
        )
        self.db.add(PostReaction(
            post_id=post_id,
            user_id=reaction.user_id,
            user_name=reaction.user_name,
            reaction_type=reaction.type,
            created_at=reaction.created_at,
        ))
        await self.db.commit()
        return True

    async def remove_post_reaction(self, post_id: UUID, user_id: int) -> bool:
        result = await self.db.execute(
            delete(PostReaction).where(
                PostReaction.post_id == post_id,
                PostReaction.user_id == user_id,
            ),
        )
        await self.db.commit()
        return result.rowcount > 0

    async def set_comment_reaction(
        self, comment_id: UUID, reaction: Reaction,
    ) -> bool:
        await self.db.execute(
            delete(CommentReaction).where(
                CommentReaction.comment_id == comment_id,
                CommentReaction.user_id == reaction.user_id,
            ),
        )
        self.db.add(CommentReaction(
            comment_id=comment_id,
            user_id=reaction.user_id,
            user_name=reaction.user_name,
            reaction_type=reaction.type,
            created_at=reaction.created_at,
        ))
        await self.db.commit()
        return True

    async def cast_poll_vote(self, post_id: UUID, vote: PollVote) -> bool:
        await self.db.execute(
            delete(PollVoteRecord).where(
                PollVoteRecord.post_id == post_id,
                PollVoteRecord.user_id == vote.user_id,
            ),
        )
        self.db.add(PollVoteRecord(
            post_id=post_id,
            user_id=vote.user_id,
            user_name=vote.user_name,
            option=vote.option,
            voted_at=vote.voted_at,
        ))
        await self.db.commit()
        return True

