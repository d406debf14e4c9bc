"""Social Posts — feed, post, reaction and poll endpoints.

Invariants:
    - Every handler delegates to SocialDomain; no business rule lives here
    - Request bodies are validated by Pydantic before reaching the domain
    - Domain errors propagate to the global EngageError handler (api/error_handlers.py)
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from engage.api.dependencies import Actor, get_actor, get_social_domain
from engage.core.domain_types import (
    DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, PostType, SocialOperation, Visibility,
)
from engage.schemas.social import (
    CommentCreate,
    CommentResponse,
    PollResultsResponse,
    PollVoteCreate,
    PostCreate,
    PostDelete,
    PostFilters,
    PostListResponse,
    PostResponse,
    ReactionCreate,
    ValidationResult,
)
from engage.services.social_domain import SocialDomain

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/social", tags=["social"])


# ─── Posts ───────────────────────────────────────────────────────

@router.post(
    "/posts", response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_post(
    body: PostCreate,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Create a post (text, image, poll, recognition or announcement)."""
    return await domain.create_post(
        body, actor.user_id, actor.organization_id, actor.correlation_id,
    )


@router.get("/posts", response_model=PostListResponse)
async def list_posts(
    type: PostType | None = Query(None),
    author_id: int | None = Query(None),
    tags: list[str] | None = Query(None),
    search: str | None = Query(None, max_length=200),
    visibility: Visibility | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    skip: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Organization feed: pinned first, newest first."""
    filters = PostFilters(
        type=type, author_id=author_id, tags=tags, search=search,
        visibility=visibility, date_from=date_from, date_to=date_to,
        limit=limit, skip=skip,
    )
    posts = await domain.list_posts(actor.organization_id, filters)
    return PostListResponse(
        posts=[PostResponse.model_validate(p) for p in posts],
        limit=limit, skip=skip,
    )


@router.get("/posts/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: UUID,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Fetch one post; counts as a view."""
    return await domain.get_post(post_id, actor.organization_id)


@router.delete("/posts/{post_id}")
async def delete_post(
    post_id: UUID,
    body: PostDelete | None = Body(None),
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Soft-delete a post (author or organization admin)."""
    deleted = await domain.delete_post(
        post_id, actor.user_id, actor.organization_id,
        reason=body.reason if body else None,
        correlation_id=actor.correlation_id,
    )
    return {"deleted": deleted, "post_id": str(post_id)}


# ─── Comments on a post ──────────────────────────────────────────

@router.post(
    "/posts/{post_id}/comments", response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    post_id: UUID,
    body: CommentCreate,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    return await domain.add_comment(
        post_id, body, actor.user_id, actor.organization_id,
        actor.correlation_id,
    )


@router.get(
    "/posts/{post_id}/comments", response_model=list[CommentResponse],
)
async def list_comments(
    post_id: UUID,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    return await domain.list_comments(post_id, actor.organization_id)


# ─── Reactions ───────────────────────────────────────────────────

@router.put("/posts/{post_id}/reactions")
async def set_post_reaction(
    post_id: UUID,
    body: ReactionCreate,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Set the caller's reaction; replaces any earlier reaction."""
    return await domain.add_post_reaction(
        post_id, body, actor.user_id, actor.organization_id,
        actor.correlation_id,
    )


@router.delete("/posts/{post_id}/reactions")
async def remove_post_reaction(
    post_id: UUID,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    removed = await domain.remove_post_reaction(
        post_id, actor.user_id, actor.organization_id, actor.correlation_id,
    )
    return {"removed": removed}


# ─── Polls ───────────────────────────────────────────────────────

@router.post("/posts/{post_id}/poll-votes")
async def cast_poll_vote(
    post_id: UUID,
    body: PollVoteCreate,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Vote on a poll; re-voting replaces the earlier option."""
    return await domain.cast_poll_vote(
        post_id, body, actor.user_id, actor.organization_id,
        actor.correlation_id,
    )


@router.get(
    "/posts/{post_id}/poll-results", response_model=PollResultsResponse,
)
async def poll_results(
    post_id: UUID,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    return await domain.poll_results(post_id, actor.organization_id)


# ─── Dry-run validation ──────────────────────────────────────────

@router.post(
    "/validate/{operation}", response_model=ValidationResult,
)
async def validate_operation(
    operation: SocialOperation,
    body: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Check a payload against the social rules without writing anything."""
    return await domain.validate_social_rules(
        operation.value, body or {}, actor.user_id, actor.organization_id,
    )
