"""Event System Admin — metrics, history, subscriptions and dead-letter control.

Invariants:
    - Read-only except for dead-letter clear/process
    - Handler callables are never serialized (only subscription metadata)

Design Decisions:
    - Operational endpoints, not tenant data: no organization scoping here;
      the deployment restricts /api/v1/admin upstream
"""

import logging

from fastapi import APIRouter, Depends, Query

from engage.infrastructure.event_system import (
    DeadLetterEntry, EventSubscription, EventSystem, get_event_system,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/admin/events", tags=["admin"])


def _subscription_view(subscription: EventSubscription) -> dict:
    return {
        "id": subscription.id,
        "event_type": subscription.event_type,
        "source": subscription.source,
        "priority": subscription.options.priority,
        "retries": subscription.options.retries,
        "timeout_ms": subscription.options.timeout_ms,
        "dead_letter": subscription.options.dead_letter,
    }


def _dead_letter_view(entry: DeadLetterEntry) -> dict:
    return {
        "event_id": entry.event.id,
        "event_type": entry.event.type,
        "subscription_id": entry.subscription.id,
        "error": entry.error,
        "attempts": entry.attempts,
        "last_attempt": entry.last_attempt.isoformat(),
        "next_retry": entry.next_retry.isoformat() if entry.next_retry else None,
    }


@router.get("/metrics")
async def event_metrics(events: EventSystem = Depends(get_event_system)):
    return {"metrics": events.get_metrics()}


@router.get("/history")
async def event_history(
    limit: int = Query(50, ge=1, le=1000),
    events: EventSystem = Depends(get_event_system),
):
    return {"events": [e.to_dict() for e in events.get_event_history(limit)]}


@router.get("/subscriptions")
async def event_subscriptions(
    event_type: str | None = Query(None),
    events: EventSystem = Depends(get_event_system),
):
    return {
        "subscriptions": {
            kind: [_subscription_view(s) for s in subs]
            for kind, subs in events.get_subscriptions(event_type).items()
        },
    }


@router.get("/dead-letters")
async def dead_letters(events: EventSystem = Depends(get_event_system)):
    entries = events.get_dead_letter_queue()
    return {
        "count": len(entries),
        "entries": [_dead_letter_view(e) for e in entries],
    }


@router.delete("/dead-letters")
async def clear_dead_letters(events: EventSystem = Depends(get_event_system)):
    removed = events.clear_dead_letter_queue()
    logger.warning(f"Dead letter queue cleared via admin API: {removed} entries")
    return {"removed": removed}


@router.post("/dead-letters/process")
async def process_dead_letters(events: EventSystem = Depends(get_event_system)):
    """Run one dead-letter sweep now instead of waiting for the background task."""
    return await events.process_dead_letter_queue()
