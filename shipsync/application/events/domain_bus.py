"""In-process domain event bus.

Handlers register synchronously with `on()` and may be plain functions or coroutines.
`emit()` is fire-and-forget: every handler runs as its own task, errors are logged
and never reach the caller or sibling handlers. `emit_and_wait()` runs all handlers
and returns once every one of them has settled; no timeout is imposed here.

The bus is an ordinary object built by the composition root and injected where
needed, so independent instances never share handlers.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable

from loguru import logger

from shipsync.core import SERVICE_NAME

BusHandler = Callable[[Any], Awaitable[None] | None]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class DomainEventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[BusHandler]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def on(self, name: str, handler: BusHandler) -> Callable[[], None]:
        """Register `handler` for `name`. Returns a function that unsubscribes it."""
        handlers = self._handlers.setdefault(name, [])
        if handler not in handlers:
            handlers.append(handler)

        def unsubscribe() -> None:
            current = self._handlers.get(name)
            if current is not None and handler in current:
                current.remove(handler)

        return unsubscribe

    def handler_count(self, name: str) -> int:
        return len(self._handlers.get(name, ()))

    def emit(self, name: str, payload: Any) -> None:
        """Schedule all handlers without waiting. Must be called inside a running event loop."""
        handlers = list(self._handlers.get(name, ()))
        if not handlers:
            return

        _log("domain_event_emitted", name=name, handler_count=len(handlers))
        loop = asyncio.get_running_loop()
        for handler in handlers:
            task = loop.create_task(self._invoke(name, handler, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def emit_and_wait(self, name: str, payload: Any) -> None:
        handlers = list(self._handlers.get(name, ()))
        if not handlers:
            return

        _log("domain_event_emitted", name=name, handler_count=len(handlers), awaited=True)
        await asyncio.gather(*(self._invoke(name, handler, payload) for handler in handlers))

    async def wait_idle(self) -> None:
        """Wait for outstanding fire-and-forget handlers, including ones they schedule."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        self._handlers.clear()

    async def _invoke(self, name: str, handler: BusHandler, payload: Any) -> None:
        try:
            result = handler(payload)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.exception("domain event handler failed for {}: {}", name, exc)
