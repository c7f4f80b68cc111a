"""Unit tests for EventDispatcher over the in-memory queue."""
from __future__ import annotations

import asyncio

from shipsync.application.events.dispatcher import EventDispatcher
from shipsync.application.events.registry import HandlerRegistry
from shipsync.constants import EVENT_STATUS
from shipsync.domain.models import ClaimOptions, DispatchResult, EventMessage
from shipsync.infrastructure.persistence.inmemory.event_queue import InMemoryEventQueue
from tests.conftest import FixedClock

TOPIC = "shipment.delivered"


class SpyQueue(InMemoryEventQueue):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.claim_calls = 0

    async def claim(self, topic, options=None):
        self.claim_calls += 1
        return await super().claim(topic, options)


def test_no_registered_handler_is_a_pure_no_op(clock: FixedClock):
    async def _run():
        queue = SpyQueue(clock=clock)
        await queue.enqueue([EventMessage(topic=TOPIC, payload={})])
        result = await EventDispatcher(queue, HandlerRegistry()).dispatch_events(TOPIC)
        return queue, result

    queue, result = asyncio.run(_run())

    assert result == DispatchResult(processed=0, skipped=0, errors=0)
    assert queue.claim_calls == 0


def test_successes_are_completed_and_failures_marked_failed(clock: FixedClock):
    async def _run():
        queue = InMemoryEventQueue(clock=clock, retry_delay_seconds=0)
        registry = HandlerRegistry()

        async def handler(event):
            if event.payload["fail"]:
                raise ValueError("carrier payload invalid")

        registry.register(TOPIC, handler)
        ids = await queue.enqueue(
            [
                EventMessage(topic=TOPIC, payload={"fail": False}),
                EventMessage(topic=TOPIC, payload={"fail": True}),
                EventMessage(topic=TOPIC, payload={"fail": False}),
            ]
        )
        result = await EventDispatcher(queue, registry).dispatch_events(TOPIC)
        stored = [await queue.get(event_id) for event_id in ids]
        return result, stored

    result, stored = asyncio.run(_run())

    assert result == DispatchResult(processed=2, skipped=1, errors=1)
    assert [event.status for event in stored] == [
        EVENT_STATUS.COMPLETED,
        EVENT_STATUS.PENDING,
        EVENT_STATUS.COMPLETED,
    ]
    assert stored[1].attempts == 1
    assert stored[1].last_error == "carrier payload invalid"


def test_failed_event_is_retried_on_a_later_cycle_not_within_the_call(clock: FixedClock):
    async def _run():
        queue = InMemoryEventQueue(clock=clock, retry_delay_seconds=0)
        registry = HandlerRegistry()
        calls: list[int] = []

        async def flaky(event):
            calls.append(event.attempts)
            if len(calls) == 1:
                raise RuntimeError("transient")

        registry.register(TOPIC, flaky)
        await queue.enqueue([EventMessage(topic=TOPIC, payload={})])
        dispatcher = EventDispatcher(queue, registry)
        first = await dispatcher.dispatch_events(TOPIC)
        second = await dispatcher.dispatch_events(TOPIC)
        return calls, first, second

    calls, first, second = asyncio.run(_run())

    assert first == DispatchResult(processed=0, skipped=1, errors=1)
    assert second == DispatchResult(processed=1, skipped=0, errors=0)
    assert calls == [0, 1]


def test_batch_size_option_limits_claim(clock: FixedClock):
    async def _run():
        queue = InMemoryEventQueue(clock=clock)
        registry = HandlerRegistry()
        registry.register(TOPIC, lambda event: None)
        await queue.enqueue([EventMessage(topic=TOPIC, payload={"n": n}) for n in range(30)])
        dispatcher = EventDispatcher(queue, registry)
        limited = await dispatcher.dispatch_events(TOPIC, ClaimOptions(batch_size=4))
        default = await dispatcher.dispatch_events(TOPIC)
        return limited, default

    limited, default = asyncio.run(_run())

    assert limited.processed == 4
    assert default.processed == 25


def test_dispatch_all_covers_every_topic_with_handlers(clock: FixedClock):
    async def _run():
        queue = InMemoryEventQueue(clock=clock)
        registry = HandlerRegistry()
        registry.register("shipment.created", lambda event: None)
        registry.register("shipment.updated", lambda event: None)
        await queue.enqueue(
            [
                EventMessage(topic="shipment.created", payload={}),
                EventMessage(topic="shipment.updated", payload={}),
                EventMessage(topic="shipment.updated", payload={}),
                EventMessage(topic="shipment.exception", payload={}),
            ]
        )
        return await EventDispatcher(queue, registry).dispatch_all()

    results = asyncio.run(_run())

    assert results == {
        "shipment.created": DispatchResult(processed=1, skipped=0, errors=0),
        "shipment.updated": DispatchResult(processed=2, skipped=0, errors=0),
    }


def test_slow_handler_failure_does_not_release_lock_taken_over_by_another_dispatcher(clock: FixedClock):
    async def _run():
        queue = InMemoryEventQueue(clock=clock, retry_delay_seconds=0)
        registry = HandlerRegistry()
        options = ClaimOptions(visibility_timeout_ms=1_000)
        taken_over: list[str] = []

        async def slow(event):
            clock.advance(milliseconds=1_500)
            taken_over.extend(e.id for e in await queue.claim(TOPIC, options))
            raise TimeoutError("carrier lookup timed out")

        registry.register(TOPIC, slow)
        [event_id] = await queue.enqueue([EventMessage(topic=TOPIC, payload={})])
        result = await EventDispatcher(queue, registry).dispatch_events(TOPIC, options)
        return event_id, taken_over, result, await queue.claim(TOPIC, options), await queue.get(event_id)

    event_id, taken_over, result, third_claim, stored = asyncio.run(_run())

    assert taken_over == [event_id]
    assert result.errors == 1
    assert third_claim == []
    assert stored.status == EVENT_STATUS.PROCESSING
    assert stored.attempts == 0
