"""Social Comments — reaction and delete endpoints addressed by comment id."""

from uuid import UUID

from fastapi import APIRouter, Depends

from engage.api.dependencies import Actor, get_actor, get_social_domain
from engage.schemas.social import CommentReactionCreate
from engage.services.social_domain import SocialDomain

router = APIRouter(prefix="/api/v1/social/comments", tags=["social"])


@router.put("/{comment_id}/reactions")
async def set_comment_reaction(
    comment_id: UUID,
    body: CommentReactionCreate,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    """Set the caller's reaction on a comment (like, love, celebrate, support)."""
    return await domain.add_comment_reaction(
        comment_id, body, actor.user_id, actor.organization_id,
        actor.correlation_id,
    )


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: UUID,
    actor: Actor = Depends(get_actor),
    domain: SocialDomain = Depends(get_social_domain),
):
    deleted = await domain.delete_comment(
        comment_id, actor.user_id, actor.organization_id,
    )
    return {"deleted": deleted, "comment_id": str(comment_id)}
