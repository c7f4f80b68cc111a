"""In-memory EventQueue for tests and local mode.

Same contract as the Mongo adapter: select-and-lock happens under one lock, so
concurrent claims on the same loop never overlap. State is lost on restart.
"""
from __future__ import annotations

import asyncio
import dataclasses
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from loguru import logger

from shipsync.constants import DEFAULT_CLAIM_BATCH_SIZE, EVENT_STATUS
from shipsync.core.backoff import retry_delay_seconds
from shipsync.domain.models import ClaimOptions, EventMessage, QueuedEvent

DEFAULT_VISIBILITY_TIMEOUT_MS = 60_000
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY_SECONDS = 30.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryEventQueue:
    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        default_visibility_timeout_ms: int = DEFAULT_VISIBILITY_TIMEOUT_MS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        max_retry_delay_seconds: float = 900.0,
        backoff_multiplier: float = 2.0,
    ) -> None:
        self._clock = clock
        self._default_max_attempts = int(default_max_attempts)
        self._default_visibility_timeout_ms = int(default_visibility_timeout_ms)
        self._retry_delay_seconds = float(retry_delay_seconds)
        self._max_retry_delay_seconds = float(max_retry_delay_seconds)
        self._backoff_multiplier = float(backoff_multiplier)
        self._events: dict[str, QueuedEvent] = {}
        self._active_dedupe_keys: dict[str, str] = {}
        self._sequence = 0
        self._order: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def enqueue(self, messages: Sequence[EventMessage]) -> list[str]:
        accepted: list[str] = []
        async with self._lock:
            now = self._clock()
            for message in messages:
                if message.dedupe_key and message.dedupe_key in self._active_dedupe_keys:
                    logger.info("skipping duplicate event for dedupe key {}", message.dedupe_key)
                    continue
                event_id = uuid.uuid4().hex
                self._events[event_id] = QueuedEvent(
                    id=event_id,
                    topic=message.topic,
                    payload=dict(message.payload),
                    attempts=0,
                    max_attempts=int(message.max_attempts or self._default_max_attempts),
                    available_at=message.scheduled_for or now,
                    status=EVENT_STATUS.PENDING,
                    dedupe_key=message.dedupe_key,
                    metadata=dict(message.metadata or {}),
                    created_at=now,
                )
                self._sequence += 1
                self._order[event_id] = self._sequence
                if message.dedupe_key:
                    self._active_dedupe_keys[message.dedupe_key] = event_id
                accepted.append(event_id)
        return accepted

    async def claim(self, topic: str, options: ClaimOptions | None = None) -> list[QueuedEvent]:
        batch_size = DEFAULT_CLAIM_BATCH_SIZE if options is None or options.batch_size is None else options.batch_size
        visibility_ms = (
            self._default_visibility_timeout_ms
            if options is None or options.visibility_timeout_ms is None
            else options.visibility_timeout_ms
        )
        if batch_size <= 0:
            return []

        async with self._lock:
            now = self._clock()
            lock_cutoff = now - timedelta(milliseconds=visibility_ms)
            candidates = [
                event
                for event in self._events.values()
                if event.topic == topic
                and event.status in EVENT_STATUS.ACTIVE
                and event.attempts < event.max_attempts
                and event.available_at <= now
                and (event.locked_at is None or event.locked_at <= lock_cutoff)
            ]
            candidates.sort(key=lambda event: (event.available_at, self._order[event.id]))
            claimed: list[QueuedEvent] = []
            for event in candidates[:batch_size]:
                event.locked_at = now
                event.status = EVENT_STATUS.PROCESSING
                claimed.append(dataclasses.replace(event, payload=dict(event.payload)))
            return claimed

    async def mark_completed(self, ids: Sequence[str], *, locked_at: datetime | None = None) -> None:
        async with self._lock:
            for event_id in ids:
                event = self._events.get(event_id)
                if event is None or event.status == EVENT_STATUS.DEAD:
                    continue
                if not self._owns_lock(event, locked_at):
                    logger.warning("event {} not completed: lock was taken over by another claim", event_id)
                    continue
                event.status = EVENT_STATUS.COMPLETED
                event.locked_at = None
                event.last_error = None
                self._release_dedupe_key(event)

    async def mark_failed(self, event_id: str, error: str, *, locked_at: datetime | None = None) -> None:
        async with self._lock:
            event = self._events.get(event_id)
            if event is None or event.status not in EVENT_STATUS.ACTIVE:
                return
            if not self._owns_lock(event, locked_at):
                logger.warning("event {} failure not recorded: lock was taken over by another claim", event_id)
                return
            now = self._clock()
            event.attempts += 1
            event.last_error = error
            event.locked_at = None
            if event.attempts >= event.max_attempts:
                event.status = EVENT_STATUS.DEAD
                self._release_dedupe_key(event)
                logger.warning("event {} on {} dead-lettered after {} attempts", event.id, event.topic, event.attempts)
                return
            event.status = EVENT_STATUS.PENDING
            event.available_at = now + timedelta(
                seconds=retry_delay_seconds(
                    event.attempts,
                    self._retry_delay_seconds,
                    self._max_retry_delay_seconds,
                    self._backoff_multiplier,
                )
            )

    async def get(self, event_id: str) -> QueuedEvent | None:
        event = self._events.get(event_id)
        return dataclasses.replace(event) if event is not None else None

    async def list_dead(self, topic: str | None = None, *, limit: int = 100) -> list[QueuedEvent]:
        dead = [
            dataclasses.replace(event)
            for event in self._events.values()
            if event.status == EVENT_STATUS.DEAD and (topic is None or event.topic == topic)
        ]
        return dead[:limit]

    async def requeue_dead(self, event_id: str) -> bool:
        async with self._lock:
            event = self._events.get(event_id)
            if event is None or event.status != EVENT_STATUS.DEAD:
                return False
            if event.dedupe_key and event.dedupe_key in self._active_dedupe_keys:
                return False
            event.status = EVENT_STATUS.PENDING
            event.attempts = 0
            event.locked_at = None
            event.available_at = self._clock()
            if event.dedupe_key:
                self._active_dedupe_keys[event.dedupe_key] = event.id
            return True

    async def close(self) -> None:
        return

    @staticmethod
    def _owns_lock(event: QueuedEvent, locked_at: datetime | None) -> bool:
        # No token means an unconditional update.
        return locked_at is None or event.locked_at == locked_at

    def _release_dedupe_key(self, event: QueuedEvent) -> None:
        if event.dedupe_key and self._active_dedupe_keys.get(event.dedupe_key) == event.id:
            del self._active_dedupe_keys[event.dedupe_key]
