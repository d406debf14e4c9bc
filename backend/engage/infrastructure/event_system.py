"""Event System — in-process publish/subscribe dispatcher with dead-letter retries.

Invariants:
    - Subscribers run sequentially in descending priority; equal priorities keep
      registration order
    - One failing or timed-out handler never prevents the remaining handlers from running
    - A failed (event, subscription) pair has at most one dead-letter entry
    - Dead-letter retry delay grows linearly: base_delay * attempts
    - Entries whose attempts exceed their subscription's retry budget are expired
    - History and dead-letter queue are bounded (oldest dropped first)

Design Decisions:
    - Envelope validated with pydantic before dispatch: malformed events are a
      programming error and raise InvalidEventError
    - Feature gate is a plain callable: a gate that raises is logged and
      treated as "enabled"
    - Sync handlers run via asyncio.to_thread so the timeout covers them too;
      a timed-out sync handler is abandoned, not interrupted
    - Dead-letter sweeps are serialized by a lock; an entry removed mid-sweep
      (clear, size cap) is skipped rather than retried or removed twice
    - Singleton initialized on startup (same lifecycle as db_manager); the
      periodic dead-letter sweep is an asyncio task owned by start()/stop()
"""

import asyncio
import inspect
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Union
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from engage.core.errors import ErrorContext, InvalidEventError
from engage.core.events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Union[Awaitable[None], None]]
EventGate = Callable[[DomainEvent], bool]


class _EnvelopeSchema(BaseModel):
    """Structural contract every published event must satisfy."""
    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    source: str = Field(min_length=1)
    timestamp: datetime
    version: str = Field(min_length=1)
    correlation_id: str | None = None
    user_id: int | None = None
    organization_id: int | None = None
    metadata: dict[str, Any] | None = None
    data: dict[str, Any]


@dataclass
class SubscriptionOptions:
    priority: int = 0
    retries: int = 3
    timeout_ms: int = 5000
    dead_letter: bool = True


@dataclass
class EventSubscription:
    id: str
    event_type: str
    handler: EventHandler
    source: str
    options: SubscriptionOptions


@dataclass
class HandlerResult:
    subscription_id: str
    success: bool
    execution_ms: float
    error: str | None = None


@dataclass
class EventProcessingResult:
    success: bool
    handler_results: list[HandlerResult] = field(default_factory=list)
    total_execution_ms: float = 0.0


@dataclass
class DeadLetterEntry:
    event: DomainEvent
    subscription: EventSubscription
    error: str
    attempts: int
    last_attempt: datetime
    next_retry: datetime | None = None


@dataclass
class _TypeMetrics:
    total_events: int = 0
    successful_events: int = 0
    failed_events: int = 0
    average_processing_ms: float = 0.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


async def _call_handler(handler: EventHandler, event: DomainEvent) -> None:
    if inspect.iscoroutinefunction(handler):
        await handler(event)
        return
    outcome = await asyncio.to_thread(handler, event)
    if inspect.isawaitable(outcome):
        await outcome


def _failure_message(error: Exception, subscription: EventSubscription) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return f"Handler timeout after {subscription.options.timeout_ms}ms"
    return str(error) or type(error).__name__


class EventSystem:
    """Routes published events to subscribers; keeps history, metrics and dead letters."""

    def __init__(
        self,
        handler_timeout_ms: int = 5000,
        default_retries: int = 3,
        history_size: int = 1000,
        dead_letter_max_size: int = 1000,
        retry_base_delay_seconds: float = 60.0,
        retry_interval_seconds: float = 30.0,
        gate: EventGate | None = None,
    ):
        self.handler_timeout_ms = handler_timeout_ms
        self.default_retries = default_retries
        self.history_size = history_size
        self.dead_letter_max_size = dead_letter_max_size
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self.retry_interval_seconds = retry_interval_seconds
        self._gate = gate
        self._subscriptions: dict[str, list[EventSubscription]] = {}
        self._dead_letters: list[DeadLetterEntry] = []
        self._history: list[DomainEvent] = []
        self._metrics: dict[str, _TypeMetrics] = {}
        self._sweeper: asyncio.Task | None = None
        self._sweep_lock = asyncio.Lock()

    # ─── Subscriptions ───────────────────────────────────────────

    def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        source: str,
        *,
        priority: int = 0,
        retries: int | None = None,
        timeout_ms: int | None = None,
        dead_letter: bool = True,
    ) -> str:
        """Register handler for event_type. Returns the subscription id."""
        subscription = EventSubscription(
            id=f"{source}_{event_type}_{uuid4().hex[:12]}",
            event_type=event_type,
            handler=handler,
            source=source,
            options=SubscriptionOptions(
                priority=priority,
                retries=self.default_retries if retries is None else retries,
                timeout_ms=self.handler_timeout_ms if timeout_ms is None else timeout_ms,
                dead_letter=dead_letter,
            ),
        )
        subscribers = self._subscriptions.setdefault(event_type, [])
        subscribers.append(subscription)
        # sort() is stable: equal priorities keep registration order
        subscribers.sort(key=lambda s: s.options.priority, reverse=True)
        logger.debug(
            f"Event subscription registered: {subscription.id}",
            extra={"event_type": event_type, "subscription_id": subscription.id},
        )
        return subscription.id

    def unsubscribe(self, subscription_id: str) -> bool:
        for event_type, subscribers in self._subscriptions.items():
            for index, subscription in enumerate(subscribers):
                if subscription.id == subscription_id:
                    del subscribers[index]
                    if not subscribers:
                        del self._subscriptions[event_type]
                    logger.debug(f"Event subscription removed: {subscription_id}")
                    return True
        return False

    # ─── Publishing ──────────────────────────────────────────────

    async def publish(self, event: DomainEvent) -> EventProcessingResult:
        """Validate, gate, record and dispatch event to every subscriber."""
        self._validate(event)

        if not self._is_enabled(event):
            logger.warning(
                f"Event processing disabled by feature flag: {event.type}",
                extra={"event_type": event.type, "event_id": event.id},
            )
            return EventProcessingResult(success=True)

        self._add_to_history(event)
        logger.info(
            f"Publishing event: {event.type}",
            extra={
                "event_type": event.type, "event_id": event.id,
                "correlation_id": event.correlation_id,
            },
        )

        started = time.perf_counter()
        subscribers = list(self._subscriptions.get(event.type, []))
        if not subscribers:
            logger.debug(f"No subscribers for event: {event.type}")

        results = [await self._deliver(event, sub) for sub in subscribers]

        total_ms = _elapsed_ms(started)
        failed = sum(1 for r in results if not r.success)
        self._update_metrics(event.type, failed == 0, total_ms)
        logger.info(
            f"Event processing completed: {event.type} "
            f"({len(results) - failed}/{len(results)} handlers ok)",
            extra={"event_type": event.type, "event_id": event.id},
        )
        return EventProcessingResult(
            success=failed == 0,
            handler_results=results,
            total_execution_ms=total_ms,
        )

    async def _deliver(
        self, event: DomainEvent, subscription: EventSubscription,
    ) -> HandlerResult:
        started = time.perf_counter()
        try:
            await self._invoke(subscription, event)
        except Exception as e:
            message = _failure_message(e, subscription)
            logger.error(
                f"Event handler failed: {subscription.id}: {message}",
                extra={
                    "event_type": event.type, "event_id": event.id,
                    "subscription_id": subscription.id,
                },
            )
            if subscription.options.dead_letter:
                self._add_to_dead_letters(event, subscription, message)
            return HandlerResult(
                subscription.id, False, _elapsed_ms(started), message,
            )
        return HandlerResult(subscription.id, True, _elapsed_ms(started))

    async def _invoke(
        self, subscription: EventSubscription, event: DomainEvent,
    ) -> None:
        """Run handler under its timeout; sync handlers run in a worker thread."""
        await asyncio.wait_for(
            _call_handler(subscription.handler, event),
            timeout=subscription.options.timeout_ms / 1000,
        )

    def _validate(self, event: DomainEvent) -> None:
        try:
            _EnvelopeSchema.model_validate(asdict(event))
        except ValidationError as e:
            logger.error(f"Invalid event structure: {e}")
            raise InvalidEventError(
                str(e), ErrorContext(organization_id=event.organization_id),
            )

    def _is_enabled(self, event: DomainEvent) -> bool:
        if self._gate is None:
            return True
        try:
            return bool(self._gate(event))
        except Exception as e:
            logger.warning(
                f"Feature flag evaluation failed, continuing with event processing: {e}",
            )
            return True

    # ─── Dead letters ────────────────────────────────────────────

    def _add_to_dead_letters(
        self, event: DomainEvent, subscription: EventSubscription, error: str,
    ) -> None:
        now = _utcnow()
        existing = self._find_dead_letter(event.id, subscription.id)
        if existing:
            existing.attempts += 1
            existing.error = error
            existing.last_attempt = now
            existing.next_retry = now + self._retry_delay(existing.attempts)
            return
        self._dead_letters.append(DeadLetterEntry(
            event=event,
            subscription=subscription,
            error=error,
            attempts=1,
            last_attempt=now,
            next_retry=now + self._retry_delay(1),
        ))
        if len(self._dead_letters) > self.dead_letter_max_size:
            self._dead_letters.pop(0)

    def _find_dead_letter(
        self, event_id: str, subscription_id: str,
    ) -> DeadLetterEntry | None:
        return next(
            (
                e for e in self._dead_letters
                if e.event.id == event_id and e.subscription.id == subscription_id
            ),
            None,
        )

    def _retry_delay(self, attempts: int) -> timedelta:
        return timedelta(seconds=self.retry_base_delay_seconds * attempts)

    async def process_dead_letter_queue(
        self, now: datetime | None = None,
    ) -> dict:
        """Retry due entries, drop recovered ones, expire exhausted ones."""
        async with self._sweep_lock:
            return await self._sweep_dead_letters(now or _utcnow())

    async def _sweep_dead_letters(self, now: datetime) -> dict:
        due = [
            e for e in self._dead_letters
            if e.next_retry is not None and e.next_retry <= now
            and e.attempts <= e.subscription.options.retries
        ]
        retried = recovered = 0
        for entry in due:
            if entry not in self._dead_letters:
                continue
            retried += 1
            logger.info(
                f"Retrying dead letter entry: {entry.subscription.id}",
                extra={
                    "event_id": entry.event.id,
                    "subscription_id": entry.subscription.id,
                },
            )
            try:
                await self._invoke(entry.subscription, entry.event)
            except Exception as e:
                entry.attempts += 1
                entry.error = _failure_message(e, entry.subscription)
                entry.last_attempt = now
                entry.next_retry = now + self._retry_delay(entry.attempts)
                logger.error(
                    f"Dead letter retry failed: {entry.subscription.id} "
                    f"(attempt {entry.attempts}): {entry.error}",
                )
                continue
            recovered += 1
            logger.info(f"Dead letter retry successful: {entry.subscription.id}")
            # cleared or evicted while the handler was running
            if entry in self._dead_letters:
                self._dead_letters.remove(entry)

        expired = [
            e for e in self._dead_letters
            if e.attempts > e.subscription.options.retries
        ]
        for entry in expired:
            if entry in self._dead_letters:
                self._dead_letters.remove(entry)
            logger.warning(
                f"Dead letter entry expired: {entry.subscription.id} "
                f"after {entry.attempts} attempts: {entry.error}",
                extra={"event_id": entry.event.id},
            )
        return {
            "retried": retried,
            "recovered": recovered,
            "expired": len(expired),
            "remaining": len(self._dead_letters),
        }

    def clear_dead_letter_queue(self) -> int:
        count = len(self._dead_letters)
        self._dead_letters = []
        logger.info(f"Dead letter queue cleared: {count} entries removed")
        return count

    # ─── Periodic sweep ──────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic dead-letter sweep (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.retry_interval_seconds)
            try:
                await self.process_dead_letter_queue()
            except Exception as e:
                logger.error(f"Dead letter sweep failed: {e}", exc_info=True)

    # ─── Introspection ───────────────────────────────────────────

    def get_metrics(self) -> dict[str, dict]:
        result = {}
        for event_type, m in self._metrics.items():
            rate = (
                round(m.successful_events / m.total_events * 100, 2)
                if m.total_events else 0.0
            )
            result[event_type] = {
                "total_events": m.total_events,
                "successful_events": m.successful_events,
                "failed_events": m.failed_events,
                "average_processing_ms": m.average_processing_ms,
                "success_rate": rate,
            }
        return result

    def get_event_history(self, limit: int = 50) -> list[DomainEvent]:
        if limit <= 0:
            return []
        return self._history[-limit:]

    def get_dead_letter_queue(self) -> list[DeadLetterEntry]:
        return list(self._dead_letters)

    def get_subscriptions(
        self, event_type: str | None = None,
    ) -> dict[str, list[EventSubscription]]:
        if event_type is not None:
            return {event_type: list(self._subscriptions.get(event_type, []))}
        return {t: list(subs) for t, subs in self._subscriptions.items()}

    def _add_to_history(self, event: DomainEvent) -> None:
        self._history.append(event)
        if len(self._history) > self.history_size:
            del self._history[0: len(self._history) - self.history_size]

    def _update_metrics(self, event_type: str, success: bool, elapsed_ms: float) -> None:
        m = self._metrics.setdefault(event_type, _TypeMetrics())
        m.total_events += 1
        if success:
            m.successful_events += 1
        else:
            m.failed_events += 1
        m.average_processing_ms = round(
            (m.average_processing_ms * (m.total_events - 1) + elapsed_ms)
            / m.total_events,
            3,
        )


# Singleton (initialized on startup)
event_system: EventSystem | None = None


def init_event_system(**kwargs) -> EventSystem:
    global event_system
    event_system = EventSystem(**kwargs)
    return event_system


def get_event_system() -> EventSystem:
    """FastAPI dependency for the process-wide event system."""
    if not event_system:
        raise RuntimeError("Event system not initialized")
    return event_system
