"""Dispatcher: claims a batch for a topic and routes each event through the registry.

Single-threaded per call; several dispatchers may run at once because the queue's
claim is atomic. A failed event is not retried within the call; it becomes
claimable again on a later cycle driven by the external scheduler.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from shipsync.application.events.registry import HandlerRegistry
from shipsync.constants import DEFAULT_CLAIM_BATCH_SIZE
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import ClaimOptions, DispatchResult
from shipsync.ports.event_queue import EventQueue


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def serialize_error(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class EventDispatcher:
    def __init__(
        self,
        queue: EventQueue,
        registry: HandlerRegistry,
        *,
        batch_size: int = DEFAULT_CLAIM_BATCH_SIZE,
        visibility_timeout_ms: int | None = None,
    ) -> None:
        self._queue = queue
        self._registry = registry
        self._batch_size = int(batch_size)
        self._visibility_timeout_ms = visibility_timeout_ms

    async def dispatch_events(self, topic: str, options: ClaimOptions | None = None) -> DispatchResult:
        handler = self._registry.get_event_handler(topic)
        if handler is None:
            return DispatchResult(processed=0, skipped=0, errors=0)

        claim_options = ClaimOptions(
            batch_size=(options.batch_size if options and options.batch_size is not None else self._batch_size),
            visibility_timeout_ms=(
                options.visibility_timeout_ms
                if options and options.visibility_timeout_ms is not None
                else self._visibility_timeout_ms
            ),
        )
        events = await self._queue.claim(topic, claim_options)
        processed = 0
        errors = 0

        for event in events:
            try:
                await handler(event)
            except Exception as exc:
                errors += 1
                message = serialize_error(exc)
                await self._queue.mark_failed(event.id, message, locked_at=event.locked_at)
                logger.warning(
                    "event {} on {} failed (attempt {} of {}): {}",
                    event.id,
                    topic,
                    event.attempts + 1,
                    event.max_attempts,
                    message,
                )
                continue
            await self._queue.mark_completed([event.id], locked_at=event.locked_at)
            processed += 1

        result = DispatchResult(processed=processed, skipped=len(events) - processed, errors=errors)
        if events:
            _log("events_dispatched", topic=topic, claimed=len(events), **result.to_dict())
        return result

    async def dispatch_all(self, options: ClaimOptions | None = None) -> dict[str, DispatchResult]:
        """Run one dispatch cycle for every topic that has handlers."""
        results: dict[str, DispatchResult] = {}
        for topic in self._registry.list_topics():
            results[topic] = await self.dispatch_events(topic, options)
        return results
