"""Single subscription interface over the domain bus and the durable queue.

Each subscription picks a delivery mode:
- DURABLE: the event is persisted to the queue and delivered later by the dispatcher,
  with retries and dead-lettering.
- IMMEDIATE: the event is handed to the in-process bus when published; no
  persistence, no retry.

Handlers receive a QueuedEvent in both modes. Immediate events get a fresh id and
zero attempts. A message is only persisted when its topic has durable subscribers.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from loguru import logger

from shipsync.application.events.domain_bus import DomainEventBus
from shipsync.application.events.registry import EventHandler, HandlerRegistry
from shipsync.constants import EVENT_STATUS
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import EventMessage, QueuedEvent
from shipsync.ports.event_queue import EventQueue


class DeliveryMode:
    IMMEDIATE = "immediate"
    DURABLE = "durable"


@dataclass(frozen=True)
class PublishResult:
    enqueued_ids: list[str] = field(default_factory=list)
    immediate_topics: list[str] = field(default_factory=list)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventRouter:
    def __init__(
        self,
        bus: DomainEventBus,
        registry: HandlerRegistry,
        queue: EventQueue,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._bus = bus
        self._registry = registry
        self._queue = queue
        self._clock = clock

    @property
    def bus(self) -> DomainEventBus:
        return self._bus

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    def subscribe(
        self,
        topic: str,
        handler: EventHandler,
        *,
        mode: str = DeliveryMode.DURABLE,
        name: str | None = None,
    ) -> Callable[[], None]:
        """Subscribe `handler` to `topic`. Returns an unsubscribe function."""
        if mode == DeliveryMode.DURABLE:
            return self._registry.register(topic, handler, name=name)
        if mode == DeliveryMode.IMMEDIATE:
            return self._bus.on(topic, handler)
        raise ValueError(f"Unsupported delivery mode: {mode}")

    async def publish(self, messages: Sequence[EventMessage], *, wait: bool = False) -> PublishResult:
        """Persist durable deliveries first, then hand immediate ones to the bus.

        With wait=True immediate handlers have settled when this returns.
        """
        durable = [message for message in messages if self._registry.has_handlers(message.topic)]
        enqueued_ids = await self._queue.enqueue(durable) if durable else []

        immediate_topics: list[str] = []
        for message in messages:
            if self._bus.handler_count(message.topic) == 0:
                continue
            event = self._immediate_event(message)
            immediate_topics.append(message.topic)
            if wait:
                await self._bus.emit_and_wait(message.topic, event)
            else:
                self._bus.emit(message.topic, event)

        if messages:
            _log(
                "events_published",
                topics=[message.topic for message in messages],
                enqueued=len(enqueued_ids),
                immediate=len(immediate_topics),
            )
        return PublishResult(enqueued_ids=enqueued_ids, immediate_topics=immediate_topics)

    def _immediate_event(self, message: EventMessage) -> QueuedEvent:
        now = self._clock()
        return QueuedEvent(
            id=uuid.uuid4().hex,
            topic=message.topic,
            payload=message.payload,
            attempts=0,
            max_attempts=1,
            available_at=now,
            locked_at=now,
            status=EVENT_STATUS.PROCESSING,
            dedupe_key=message.dedupe_key,
            metadata=dict(message.metadata or {}),
            created_at=now,
        )
