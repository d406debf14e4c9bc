"""Memory Social Store — tests for the in-process document backend.

Tests cover:
    - returned records are copies (store state never leaks)
    - feed ordering: pinned first, then newest; filters and pagination
    - soft delete hides posts and comments, keeps comment counts in step
    - one reaction / one vote per user, replaced on change
    - member lookup by username is organization-scoped and skips inactive users
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from engage.core.domain_types import PostType
from engage.core.social_entities import (
    Comment, Member, PollVote, Post, PostFilterSpec, Reaction,
)
from engage.infrastructure.memory_store import MemorySocialStore

T0 = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


def _post(minutes: int = 0, **overrides) -> Post:
    fields = dict(
        organization_id=1, author_id=1, author_name="Alice",
        content="hello team", created_at=T0 + timedelta(minutes=minutes),
    )
    fields.update(overrides)
    return Post(**fields)


# ─── Members ─────────────────────────────────────────────────────

async def test_find_members_by_username_scoped_to_org():
    store = MemorySocialStore()
    store.add_member(Member(1, 1, "Alice", "alice"))
    store.add_member(Member(2, 1, "Bob", "bob", is_active=False))
    store.add_member(Member(3, 2, "Alice Two", "alice"))

    found = await store.find_members_by_username(1, ["alice", "bob", "nobody"])

    assert [m.id for m in found] == [1]
    assert await store.get_member(99) is None


# ─── Posts ───────────────────────────────────────────────────────

async def test_returned_posts_are_copies():
    store = MemorySocialStore()
    post = await store.persist_post(_post())
    post.content = "mutated"
    post.tags.append("leak")

    stored = await store.get_post(post.id)
    assert stored.content == "hello team"
    assert stored.tags == []


async def test_list_orders_pinned_then_newest():
    store = MemorySocialStore()
    old = await store.persist_post(_post(0))
    new = await store.persist_post(_post(10))
    pinned = await store.persist_post(_post(-30, is_pinned=True))
    await store.persist_post(_post(5, organization_id=2))

    posts = await store.list_posts(1, PostFilterSpec())

    assert [p.id for p in posts] == [pinned.id, new.id, old.id]


async def test_list_filters_and_paginates():
    store = MemorySocialStore()
    poll = await store.persist_post(_post(
        1, type=PostType.POLL, content="Lunch vote", tags=["food"],
        poll_options=["a", "b"],
    ))
    await store.persist_post(_post(2, author_id=2, content="Release notes", tags=["eng"]))
    await store.persist_post(_post(3, content="Another"))

    assert [p.id for p in await store.list_posts(1, PostFilterSpec(type=PostType.POLL))] == [poll.id]
    assert len(await store.list_posts(1, PostFilterSpec(author_id=2))) == 1
    assert [p.id for p in await store.list_posts(1, PostFilterSpec(tags=["food", "x"]))] == [poll.id]
    assert [p.id for p in await store.list_posts(1, PostFilterSpec(search="LUNCH"))] == [poll.id]
    in_range = await store.list_posts(1, PostFilterSpec(
        date_from=T0 + timedelta(minutes=2), date_to=T0 + timedelta(minutes=3),
    ))
    assert len(in_range) == 2
    page = await store.list_posts(1, PostFilterSpec(limit=1, skip=1))
    assert [p.content for p in page] == ["Release notes"]


async def test_soft_delete_post_hides_from_feed():
    store = MemorySocialStore()
    post = await store.persist_post(_post())

    assert await store.soft_delete_post(post.id, 3, T0) is True
    assert await store.soft_delete_post(post.id, 3, T0) is False

    assert await store.list_posts(1, PostFilterSpec()) == []
    stored = await store.get_post(post.id)
    assert stored.is_deleted is True
    assert stored.deleted_by == 3


async def test_view_count_and_milestones():
    store = MemorySocialStore()
    post = await store.persist_post(_post())
    await store.increment_view_count(post.id)
    await store.increment_view_count(post.id)
    await store.record_milestones(post.id, ["post_viral"])
    await store.record_milestones(post.id, ["post_viral", "high_reach"])

    stored = await store.get_post(post.id)
    assert stored.views_count == 2
    assert stored.reached_milestones == ["post_viral", "high_reach"]


# ─── Comments ────────────────────────────────────────────────────

async def test_comments_track_post_count():
    store = MemorySocialStore()
    post = await store.persist_post(_post())
    first = await store.persist_comment(Comment(
        post.id, 1, 2, "Bob", "first", created_at=T0,
    ))
    second = await store.persist_comment(Comment(
        post.id, 1, 2, "Bob", "second", created_at=T0 + timedelta(minutes=1),
    ))
    assert (await store.get_post(post.id)).comments_count == 2

    assert await store.soft_delete_comment(first.id, 2, T0) is True
    assert await store.soft_delete_comment(first.id, 2, T0) is False

    assert [c.id for c in await store.list_comments(post.id)] == [second.id]
    assert (await store.get_post(post.id)).comments_count == 1


# ─── Reactions and votes ─────────────────────────────────────────

async def test_post_reaction_replaced_and_removed():
    store = MemorySocialStore()
    post = await store.persist_post(_post())
    await store.set_post_reaction(post.id, Reaction(2, "Bob", "like"))
    await store.set_post_reaction(post.id, Reaction(2, "Bob", "love"))
    await store.set_post_reaction(post.id, Reaction(3, "Carol", "like"))

    stored = await store.get_post(post.id)
    assert sorted((r.user_id, r.type) for r in stored.reactions) == [
        (2, "love"), (3, "like"),
    ]
    assert await store.remove_post_reaction(post.id, 2) is True
    assert await store.remove_post_reaction(post.id, 2) is False
    assert await store.set_post_reaction(uuid4(), Reaction(2, "Bob", "like")) is False


async def test_comment_reaction_one_per_user():
    store = MemorySocialStore()
    post = await store.persist_post(_post())
    comment = await store.persist_comment(Comment(post.id, 1, 2, "Bob", "hi"))
    await store.set_comment_reaction(comment.id, Reaction(1, "Alice", "like"))
    await store.set_comment_reaction(comment.id, Reaction(1, "Alice", "laugh"))

    stored = await store.get_comment(comment.id)
    assert [(r.user_id, r.type) for r in stored.reactions] == [(1, "laugh")]


async def test_poll_vote_replaced():
    store = MemorySocialStore()
    post = await store.persist_post(_post(type=PostType.POLL, poll_options=["a", "b"]))
    await store.cast_poll_vote(post.id, PollVote(2, "Bob", "a"))
    await store.cast_poll_vote(post.id, PollVote(2, "Bob", "b"))

    stored = await store.get_post(post.id)
    assert [(v.user_id, v.option) for v in stored.poll_votes] == [(2, "b")]
