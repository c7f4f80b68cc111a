"""Topic -> handlers registry with settle-all fan-out.

Several unrelated consumers (audit, notifications, order sync) subscribe to the same
topic from different modules. `get_event_handler()` composes them into one handler
that runs all of them concurrently; a failing handler is logged and never blocks or
cancels its siblings. Once every handler has settled, the composed handler raises
`HandlerGroupError` if any of them failed so the dispatcher can schedule a redelivery.
Handler order within a topic is registration order and must not be relied upon.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable

from loguru import logger

from shipsync.core import SERVICE_NAME
from shipsync.domain.models import QueuedEvent

EventHandler = Callable[[QueuedEvent], Awaitable[None] | None]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class HandlerGroupError(Exception):
    """One or more handlers failed for an event after all handlers settled."""

    def __init__(self, topic: str, failures: list[tuple[str, BaseException]], total: int) -> None:
        details = "; ".join(f"{name}: {exc}" for name, exc in failures)
        super().__init__(f"{len(failures)} of {total} handlers failed for {topic}: {details}")
        self.topic = topic
        self.failures = failures


class HandlerRegistry:
    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[str, EventHandler]]] = {}

    def register(self, topic: str, handler: EventHandler, *, name: str | None = None) -> Callable[[], None]:
        """Add `handler` to `topic`. Returns a function that removes it again."""
        entry = (name or getattr(handler, "__qualname__", repr(handler)), handler)
        self._handlers.setdefault(topic, []).append(entry)
        _log("event_handler_registered", topic=topic, handler=entry[0])

        def unregister() -> None:
            entries = self._handlers.get(topic)
            if entries is not None and entry in entries:
                entries.remove(entry)

        return unregister

    def has_handlers(self, topic: str) -> bool:
        return bool(self._handlers.get(topic))

    def list_topics(self) -> list[str]:
        return [topic for topic, entries in self._handlers.items() if entries]

    def get_event_handler(self, topic: str) -> Callable[[QueuedEvent], Awaitable[None]] | None:
        if not self.has_handlers(topic):
            return None

        async def handle(event: QueuedEvent) -> None:
            entries = list(self._handlers.get(topic, ()))
            results = await asyncio.gather(
                *(self._call(handler, event) for _, handler in entries),
                return_exceptions=True,
            )
            failures: list[tuple[str, BaseException]] = []
            for (name, _), result in zip(entries, results):
                if isinstance(result, BaseException):
                    logger.opt(exception=result).error(
                        "event handler {} failed for {} (event {}): {}", name, topic, event.id, result
                    )
                    failures.append((name, result))
            if failures:
                raise HandlerGroupError(topic, failures, total=len(entries))

        return handle

    @staticmethod
    async def _call(handler: EventHandler, event: QueuedEvent) -> None:
        result = handler(event)
        if inspect.isawaitable(result):
            await result
