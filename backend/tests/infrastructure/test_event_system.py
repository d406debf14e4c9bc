"""Event System — tests for dispatch order, isolation, dead letters and metrics.

Tests cover:
    - subscribers run in descending priority, equal priorities keep registration order
    - failing and timed-out handlers do not stop the remaining handlers
    - dead-letter entries: one per (event, subscription), linear backoff, bounded size
    - process_dead_letter_queue recovers, reschedules and expires entries
    - overlapping sweeps and clears during a retry neither crash nor redeliver
    - sync handlers and dead-letter retries share the handler timeout message
    - feature gate can disable dispatch; a raising gate is treated as enabled
    - history is bounded, metrics count success per event type
    - malformed envelopes raise InvalidEventError
"""

import asyncio
import time
from datetime import timedelta

import pytest

from engage.core.errors import InvalidEventError
from engage.core.events import DomainEvent
from engage.infrastructure.event_system import EventSystem


def _event(event_type: str = "test.event", org: int | None = 1, **data) -> DomainEvent:
    return DomainEvent(
        type=event_type, source="tests", data=data or {"k": "v"},
        organization_id=org,
    )


def _failing(message: str = "boom"):
    async def handler(event):
        raise RuntimeError(message)
    return handler


# ─── Dispatch ────────────────────────────────────────────────────

async def test_handlers_run_in_priority_order():
    events = EventSystem()
    calls = []

    def make(name):
        async def handler(event):
            calls.append(name)
        return handler

    events.subscribe("test.event", make("low"), "tests", priority=0)
    events.subscribe("test.event", make("high"), "tests", priority=10)
    events.subscribe("test.event", make("low-2"), "tests", priority=0)

    result = await events.publish(_event())

    assert calls == ["high", "low", "low-2"]
    assert result.success is True
    assert len(result.handler_results) == 3


async def test_sync_handlers_are_supported():
    events = EventSystem()
    seen = []
    events.subscribe("test.event", lambda e: seen.append(e.id), "tests")
    event = _event()
    await events.publish(event)
    assert seen == [event.id]


async def test_publish_without_subscribers_succeeds():
    events = EventSystem()
    result = await events.publish(_event())
    assert result.success is True
    assert result.handler_results == []


async def test_failing_handler_does_not_block_others():
    events = EventSystem()
    seen = []
    events.subscribe("test.event", _failing(), "tests", priority=5)
    events.subscribe("test.event", lambda e: seen.append(e.id), "tests")

    result = await events.publish(_event())

    assert result.success is False
    assert len(seen) == 1
    failed, ok = result.handler_results
    assert failed.success is False
    assert failed.error == "boom"
    assert ok.success is True


async def test_slow_handler_times_out():
    events = EventSystem()

    async def slow(event):
        await asyncio.sleep(1)

    events.subscribe("test.event", slow, "tests", timeout_ms=10)
    result = await events.publish(_event())

    assert result.success is False
    assert result.handler_results[0].error == "Handler timeout after 10ms"


async def test_sync_handler_times_out():
    events = EventSystem()

    def blocking(event):
        time.sleep(0.2)

    events.subscribe("test.event", blocking, "tests", timeout_ms=10)
    result = await events.publish(_event())

    assert result.handler_results[0].error == "Handler timeout after 10ms"


async def test_unsubscribe_stops_delivery():
    events = EventSystem()
    seen = []
    sub_id = events.subscribe("test.event", lambda e: seen.append(e), "tests")
    assert events.unsubscribe(sub_id) is True
    assert events.unsubscribe(sub_id) is False
    await events.publish(_event())
    assert seen == []
    assert events.get_subscriptions() == {}


def test_subscription_ids_carry_source_and_type():
    events = EventSystem(default_retries=5, handler_timeout_ms=250)
    sub_id = events.subscribe("test.event", lambda e: None, "tests")
    assert sub_id.startswith("tests_test.event_")
    subscription = events.get_subscriptions("test.event")["test.event"][0]
    assert subscription.options.retries == 5
    assert subscription.options.timeout_ms == 250


async def test_invalid_envelope_raises():
    events = EventSystem()
    with pytest.raises(InvalidEventError):
        await events.publish(DomainEvent(type="", source="tests", data={}))
    assert events.get_event_history() == []


# ─── Feature gate ────────────────────────────────────────────────

async def test_gate_disables_dispatch():
    seen = []
    events = EventSystem(gate=lambda e: e.organization_id != 2)
    events.subscribe("test.event", lambda e: seen.append(e.organization_id), "tests")

    result = await events.publish(_event(org=2))
    await events.publish(_event(org=1))

    assert result.success is True
    assert result.handler_results == []
    assert seen == [1]
    assert len(events.get_event_history()) == 1


async def test_raising_gate_counts_as_enabled():
    def gate(event):
        raise ValueError("flag service down")

    seen = []
    events = EventSystem(gate=gate)
    events.subscribe("test.event", lambda e: seen.append(e), "tests")
    await events.publish(_event())
    assert len(seen) == 1


# ─── Dead letters ────────────────────────────────────────────────

async def test_failure_creates_dead_letter_with_backoff():
    events = EventSystem(retry_base_delay_seconds=60)
    events.subscribe("test.event", _failing(), "tests")
    await events.publish(_event())

    [entry] = events.get_dead_letter_queue()
    assert entry.attempts == 1
    assert entry.error == "boom"
    assert entry.next_retry - entry.last_attempt == timedelta(seconds=60)


async def test_dead_letter_opt_out():
    events = EventSystem()
    events.subscribe("test.event", _failing(), "tests", dead_letter=False)
    await events.publish(_event())
    assert events.get_dead_letter_queue() == []


async def test_republishing_same_event_bumps_existing_entry():
    events = EventSystem(retry_base_delay_seconds=10)
    events.subscribe("test.event", _failing(), "tests")
    event = _event()
    await events.publish(event)
    await events.publish(event)

    [entry] = events.get_dead_letter_queue()
    assert entry.attempts == 2
    assert entry.next_retry - entry.last_attempt == timedelta(seconds=20)


async def test_dead_letter_queue_is_bounded():
    events = EventSystem(dead_letter_max_size=2)
    events.subscribe("test.event", _failing(), "tests")
    published = [_event() for _ in range(3)]
    for event in published:
        await events.publish(event)

    queued = [e.event.id for e in events.get_dead_letter_queue()]
    assert queued == [published[1].id, published[2].id]


async def test_process_recovers_due_entries():
    events = EventSystem(retry_base_delay_seconds=1)
    attempts = []

    async def flaky(event):
        attempts.append(event.id)
        if len(attempts) == 1:
            raise RuntimeError("first try fails")

    events.subscribe("test.event", flaky, "tests")
    await events.publish(_event())
    [entry] = events.get_dead_letter_queue()

    not_due = await events.process_dead_letter_queue(now=entry.last_attempt)
    assert not_due["retried"] == 0
    assert not_due["remaining"] == 1

    result = await events.process_dead_letter_queue(now=entry.next_retry)
    assert result == {"retried": 1, "recovered": 1, "expired": 0, "remaining": 0}
    assert len(attempts) == 2


async def test_process_reschedules_then_expires():
    events = EventSystem(retry_base_delay_seconds=1)
    events.subscribe("test.event", _failing("still down"), "tests", retries=2)
    await events.publish(_event())
    [entry] = events.get_dead_letter_queue()

    first = await events.process_dead_letter_queue(now=entry.next_retry)
    assert first["retried"] == 1
    assert first["expired"] == 0
    assert entry.attempts == 2
    assert entry.error == "still down"

    second = await events.process_dead_letter_queue(now=entry.next_retry)
    assert second["retried"] == 1
    assert second["expired"] == 1
    assert events.get_dead_letter_queue() == []


async def test_clear_dead_letter_queue():
    events = EventSystem()
    events.subscribe("test.event", _failing(), "tests")
    await events.publish(_event())
    await events.publish(_event())
    assert events.clear_dead_letter_queue() == 2
    assert events.get_dead_letter_queue() == []


async def test_retry_timeout_uses_handler_timeout_message():
    events = EventSystem(retry_base_delay_seconds=1)
    calls = []

    async def stalls_on_retry(event):
        calls.append(event.id)
        if len(calls) == 1:
            raise RuntimeError("first try fails")
        await asyncio.sleep(1)

    events.subscribe("test.event", stalls_on_retry, "tests", timeout_ms=10)
    await events.publish(_event())
    [entry] = events.get_dead_letter_queue()

    await events.process_dead_letter_queue(now=entry.next_retry)

    assert entry.attempts == 2
    assert entry.error == "Handler timeout after 10ms"


async def test_overlapping_sweeps_retry_each_entry_once():
    events = EventSystem(retry_base_delay_seconds=1)
    calls = []

    async def flaky(event):
        calls.append(event.id)
        if len(calls) == 1:
            raise RuntimeError("first try fails")
        await asyncio.sleep(0.01)

    events.subscribe("test.event", flaky, "tests")
    await events.publish(_event())
    [entry] = events.get_dead_letter_queue()

    first, second = await asyncio.gather(
        events.process_dead_letter_queue(now=entry.next_retry),
        events.process_dead_letter_queue(now=entry.next_retry),
    )

    assert len(calls) == 2
    assert first["recovered"] + second["recovered"] == 1
    assert first["retried"] + second["retried"] == 1
    assert events.get_dead_letter_queue() == []


async def test_clear_while_retry_in_flight():
    events = EventSystem(retry_base_delay_seconds=1)
    retry_started = asyncio.Event()
    release = asyncio.Event()
    calls = []

    async def flaky(event):
        calls.append(event.id)
        if len(calls) == 1:
            raise RuntimeError("first try fails")
        retry_started.set()
        await release.wait()

    events.subscribe("test.event", flaky, "tests")
    await events.publish(_event())
    [entry] = events.get_dead_letter_queue()

    sweep = asyncio.create_task(
        events.process_dead_letter_queue(now=entry.next_retry),
    )
    await retry_started.wait()
    assert events.clear_dead_letter_queue() == 1
    release.set()
    result = await sweep

    assert result["recovered"] == 1
    assert result["remaining"] == 0
    assert events.get_dead_letter_queue() == []


async def test_entries_cleared_mid_sweep_are_skipped():
    events = EventSystem(retry_base_delay_seconds=1)
    failed_once = set()
    retried = []

    async def clears_on_retry(event):
        if event.id not in failed_once:
            failed_once.add(event.id)
            raise RuntimeError("first try fails")
        retried.append(event.id)
        events.clear_dead_letter_queue()

    events.subscribe("test.event", clears_on_retry, "tests")
    await events.publish(_event())
    await events.publish(_event())
    due_at = max(e.next_retry for e in events.get_dead_letter_queue())

    result = await events.process_dead_letter_queue(now=due_at)

    assert len(retried) == 1
    assert result["retried"] == 1
    assert result["remaining"] == 0


# ─── History and metrics ─────────────────────────────────────────

async def test_history_keeps_most_recent_events():
    events = EventSystem(history_size=3)
    published = [_event() for _ in range(5)]
    for event in published:
        await events.publish(event)

    history = events.get_event_history()
    assert [e.id for e in history] == [e.id for e in published[2:]]
    assert [e.id for e in events.get_event_history(limit=1)] == [published[-1].id]
    assert events.get_event_history(limit=0) == []


async def test_metrics_track_success_rate_per_type():
    events = EventSystem()
    events.subscribe("bad.event", _failing(), "tests")
    await events.publish(_event("good.event"))
    await events.publish(_event("bad.event"))
    await events.publish(_event("good.event"))

    metrics = events.get_metrics()
    assert metrics["good.event"]["total_events"] == 2
    assert metrics["good.event"]["success_rate"] == 100.0
    assert metrics["bad.event"]["failed_events"] == 1
    assert metrics["bad.event"]["success_rate"] == 0.0


# ─── Lifecycle ───────────────────────────────────────────────────

async def test_start_and_stop_sweeper():
    events = EventSystem(retry_interval_seconds=0.01, retry_base_delay_seconds=0)
    calls = []

    async def flaky(event):
        calls.append(event.id)
        if len(calls) == 1:
            raise RuntimeError("transient")

    events.subscribe("test.event", flaky, "tests")
    await events.publish(_event())
    events.start()
    events.start()
    for _ in range(50):
        if not events.get_dead_letter_queue():
            break
        await asyncio.sleep(0.01)
    await events.stop()
    await events.stop()

    assert events.get_dead_letter_queue() == []
    assert len(calls) == 2
