"""Port: durable event queue (outbox). Implementations live in infrastructure."""
from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from shipsync.domain.models import ClaimOptions, EventMessage, QueuedEvent


class EventQueue(Protocol):
    """Durable queue with atomic claim-and-lock.

    Two concurrent claims must never return overlapping events; the select-and-lock
    happens in one atomic step at the storage layer.
    """

    async def enqueue(self, messages: Sequence[EventMessage]) -> list[str]:
        """Persist messages. Messages whose dedupe_key is held by an active event are skipped.

        Returns the ids of the accepted events.
        """
        ...

    async def claim(self, topic: str, options: ClaimOptions | None = None) -> list[QueuedEvent]:
        """Lock up to batch_size available events (DEFAULT_CLAIM_BATCH_SIZE when unset)."""
        ...

    async def mark_completed(self, ids: Sequence[str], *, locked_at: datetime | None = None) -> None:
        """Idempotent. Dead events stay dead.

        With `locked_at` (the value the claim returned) an event is only completed
        while that lock is still held; otherwise the call is a no-op for it.
        """
        ...

    async def mark_failed(self, event_id: str, error: str, *, locked_at: datetime | None = None) -> None:
        """Increment attempts, store the error and release the lock (dead-letters at max_attempts).

        `locked_at` guards the update the same way as in mark_completed.
        """
        ...

    async def get(self, event_id: str) -> QueuedEvent | None: ...

    async def list_dead(self, topic: str | None = None, *, limit: int = 100) -> list[QueuedEvent]: ...

    async def requeue_dead(self, event_id: str) -> bool:
        """Reset a dead event to pending with zero attempts. Returns False when not dead."""
        ...

    async def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
