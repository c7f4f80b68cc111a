"""Unit tests for HandlerRegistry settle-all fan-out."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from shipsync.application.events.registry import HandlerGroupError, HandlerRegistry
from shipsync.domain.models import QueuedEvent


def _event(topic: str = "shipment.status.changed") -> QueuedEvent:
    return QueuedEvent(
        id="evt-1",
        topic=topic,
        payload={},
        attempts=0,
        max_attempts=5,
        available_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


def test_unknown_topic_has_no_handler():
    registry = HandlerRegistry()

    assert registry.get_event_handler("shipment.created") is None
    assert registry.list_topics() == []


def test_composed_handler_runs_every_registered_handler():
    registry = HandlerRegistry()
    seen: list[str] = []

    async def audit(event):
        seen.append(f"audit:{event.id}")

    def notify(event):
        seen.append(f"notify:{event.id}")

    registry.register("shipment.status.changed", audit)
    registry.register("shipment.status.changed", notify)
    handler = registry.get_event_handler("shipment.status.changed")
    assert handler is not None

    asyncio.run(handler(_event()))

    assert sorted(seen) == ["audit:evt-1", "notify:evt-1"]


def test_failing_handler_does_not_block_siblings_and_is_reported():
    registry = HandlerRegistry()
    seen: list[str] = []

    async def broken(event):
        raise RuntimeError("audit store down")

    async def slow_sibling(event):
        await asyncio.sleep(0.01)
        seen.append("sibling")

    registry.register("shipment.status.changed", broken, name="audit")
    registry.register("shipment.status.changed", slow_sibling, name="notify")
    handler = registry.get_event_handler("shipment.status.changed")

    with pytest.raises(HandlerGroupError) as exc_info:
        asyncio.run(handler(_event()))

    assert seen == ["sibling"]
    assert [name for name, _ in exc_info.value.failures] == ["audit"]
    assert "1 of 2 handlers failed" in str(exc_info.value)


def test_unregister_removes_handler_and_topic():
    registry = HandlerRegistry()
    unregister = registry.register("shipment.created", lambda event: None)

    assert registry.has_handlers("shipment.created")
    unregister()

    assert registry.has_handlers("shipment.created") is False
    assert registry.get_event_handler("shipment.created") is None
    assert registry.list_topics() == []
