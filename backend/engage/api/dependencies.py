"""API Dependencies — caller identity and service wiring for route handlers.

Invariants:
    - Caller identity comes from X-Organization-Id / X-User-Id (authentication
      happens upstream of this service)
    - The storage backend is chosen once by settings.storage_backend
    - SocialDomain is built per request over the request's storage session

Design Decisions:
    - Dependencies over module globals in routes: tests override get_db and the
      singletons the same way production initializes them
"""

from dataclasses import dataclass

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from engage.config import get_settings
from engage.core.social_rules import EngagementThresholds
from engage.infrastructure.database import get_db
from engage.infrastructure.event_system import EventSystem, get_event_system
from engage.infrastructure.memory_store import get_memory_store
from engage.infrastructure.relational_store import RelationalSocialStore
from engage.services.social_domain import SocialDomain


@dataclass(frozen=True)
class Actor:
    organization_id: int
    user_id: int
    correlation_id: str | None = None


def get_actor(
    x_organization_id: int = Header(..., gt=0),
    x_user_id: int = Header(..., gt=0),
    x_correlation_id: str | None = Header(None, max_length=64),
) -> Actor:
    return Actor(
        organization_id=x_organization_id,
        user_id=x_user_id,
        correlation_id=x_correlation_id,
    )


async def get_social_store(db: AsyncSession = Depends(get_db)):
    """Storage for the current request (relational session or memory singleton)."""
    if get_settings().storage_backend == "memory":
        return get_memory_store()
    return RelationalSocialStore(db)


def get_engagement_thresholds() -> EngagementThresholds:
    settings = get_settings()
    return EngagementThresholds(
        viral_reactions=settings.viral_reaction_threshold,
        high_engagement_comments=settings.high_engagement_comment_threshold,
        high_reach_views=settings.high_reach_view_threshold,
    )


def get_social_domain(
    store=Depends(get_social_store),
    events: EventSystem = Depends(get_event_system),
    thresholds: EngagementThresholds = Depends(get_engagement_thresholds),
) -> SocialDomain:
    return SocialDomain(store, store, events, thresholds)
