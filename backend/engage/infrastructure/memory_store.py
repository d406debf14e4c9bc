"""Memory Social Store — in-process document store with embedded reactions and votes.

Invariants:
    - Each post is one document: reactions, poll votes and milestones live inside it
    - Callers always receive copies; mutating a returned record never changes the store
    - Same ordering and filtering semantics as the relational store

Design Decisions:
    - Document shape (embedded arrays) over join tables: mirrors the optional
      document backend; selected with storage_backend=memory
    - Single process, no awaits inside operations: no locking needed on the event loop
"""

import copy
import logging
from datetime import datetime
from uuid import UUID

from engage.core.social_entities import (
    Comment, Member, PollVote, Post, PostFilterSpec, Reaction,
)
from engage.core.social_rules import remove_reaction, replace_reaction, replace_vote

logger = logging.getLogger(__name__)


class MemorySocialStore:
    """SocialRepository + MemberDirectory held in dictionaries."""

    def __init__(self):
        self._members: dict[int, Member] = {}
        self._posts: dict[UUID, Post] = {}
        self._comments: dict[UUID, Comment] = {}

    # ─── Members ────────────────────────────────────────────────

    def add_member(self, member: Member) -> Member:
        """Seed the directory (the HR directory owns users elsewhere)."""
        self._members[member.id] = copy.deepcopy(member)
        return member

    async def get_member(self, user_id: int) -> Member | None:
        member = self._members.get(user_id)
        return copy.deepcopy(member) if member else None

    async def find_members_by_username(
        self, organization_id: int, usernames: list[str],
    ) -> list[Member]:
        wanted = set(usernames)
        return [
            copy.deepcopy(m) for m in self._members.values()
            if m.organization_id == organization_id
            and m.is_active and m.username in wanted
        ]

    # ─── Posts ──────────────────────────────────────────────────

    async def persist_post(self, post: Post) -> Post:
        self._posts[post.id] = copy.deepcopy(post)
        return copy.deepcopy(post)

    async def get_post(self, post_id: UUID) -> Post | None:
        post = self._posts.get(post_id)
        return copy.deepcopy(post) if post else None

    async def list_posts(
        self, organization_id: int, filters: PostFilterSpec,
    ) -> list[Post]:
        search = filters.search.lower() if filters.search else None
        wanted_tags = set(filters.tags or [])

        def matches(post: Post) -> bool:
            if post.organization_id != organization_id or post.is_deleted:
                return False
            if filters.type is not None and post.type != filters.type:
                return False
            if filters.author_id is not None and post.author_id != filters.author_id:
                return False
            if filters.visibility is not None and post.visibility != filters.visibility:
                return False
            if search and search not in post.content.lower():
                return False
            if wanted_tags and not wanted_tags.intersection(post.tags):
                return False
            if filters.date_from is not None and post.created_at < filters.date_from:
                return False
            if filters.date_to is not None and post.created_at > filters.date_to:
                return False
            return True

        found = sorted(
            (p for p in self._posts.values() if matches(p)),
            key=lambda p: (p.is_pinned, p.created_at),
            reverse=True,
        )
        window = found[filters.skip:filters.skip + filters.limit]
        return [copy.deepcopy(p) for p in window]

    async def soft_delete_post(
        self, post_id: UUID, deleted_by: int, deleted_at: datetime,
    ) -> bool:
        post = self._posts.get(post_id)
        if post is None or post.is_deleted:
            return False
        post.is_deleted = True
        post.deleted_at = deleted_at
        post.deleted_by = deleted_by
        post.updated_at = deleted_at
        return True

    async def increment_view_count(self, post_id: UUID) -> None:
        post = self._posts.get(post_id)
        if post is not None:
            post.views_count += 1

    async def record_milestones(
        self, post_id: UUID, milestones: list[str],
    ) -> None:
        post = self._posts.get(post_id)
        if post is None:
            return
        post.reached_milestones.extend(
            m for m in milestones if m not in post.reached_milestones
        )

    # ─── Comments ───────────────────────────────────────────────

    async def persist_comment(self, comment: Comment) -> Comment:
        self._comments[comment.id] = copy.deepcopy(comment)
        post = self._posts.get(comment.post_id)
        if post is not None:
            post.comments_count += 1
        return copy.deepcopy(comment)

    async def get_comment(self, comment_id: UUID) -> Comment | None:
        comment = self._comments.get(comment_id)
        return copy.deepcopy(comment) if comment else None

    async def list_comments(self, post_id: UUID) -> list[Comment]:
        found = sorted(
            (
                c for c in self._comments.values()
                if c.post_id == post_id and not c.is_deleted
            ),
            key=lambda c: c.created_at,
        )
        return [copy.deepcopy(c) for c in found]

    async def soft_delete_comment(
        self, comment_id: UUID, deleted_by: int, deleted_at: datetime,
    ) -> bool:
        comment = self._comments.get(comment_id)
        if comment is None or comment.is_deleted:
            return False
        comment.is_deleted = True
        comment.deleted_at = deleted_at
        comment.deleted_by = deleted_by
        comment.updated_at = deleted_at
        post = self._posts.get(comment.post_id)
        if post is not None and post.comments_count > 0:
            post.comments_count -= 1
        return True

    # ─── Reactions and votes ────────────────────────────────────

    async def set_post_reaction(self, post_id: UUID, reaction: Reaction) -> bool:
        post = self._posts.get(post_id)
        if post is None:
            return False
        post.reactions, _ = replace_reaction(post.reactions, copy.copy(reaction))
        return True

    async def remove_post_reaction(self, post_id: UUID, user_id: int) -> bool:
        post = self._posts.get(post_id)
        if post is None:
            return False
        post.reactions, removed = remove_reaction(post.reactions, user_id)
        return removed is not None

    async def set_comment_reaction(
        self, comment_id: UUID, reaction: Reaction,
    ) -> bool:
        comment = self._comments.get(comment_id)
        if comment is None:
            return False
        comment.reactions, _ = replace_reaction(
            comment.reactions, copy.copy(reaction),
        )
        return True

    async def cast_poll_vote(self, post_id: UUID, vote: PollVote) -> bool:
        post = self._posts.get(post_id)
        if post is None:
            return False
        post.poll_votes, previous = replace_vote(post.poll_votes, copy.copy(vote))
        if previous is not None:
            logger.debug(
                f"Vote replaced: {previous.option} -> {vote.option}",
                extra={"post_id": str(post_id), "user_id": vote.user_id},
            )
        return True


# Singleton (initialized on startup when storage_backend == "memory")
memory_store: MemorySocialStore | None = None


def init_memory_store() -> MemorySocialStore:
    global memory_store
    memory_store = MemorySocialStore()
    return memory_store


def get_memory_store() -> MemorySocialStore:
    if not memory_store:
        raise RuntimeError("Memory store not initialized")
    return memory_store
