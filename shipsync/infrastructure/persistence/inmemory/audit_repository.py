"""In-memory AuditRepository for tests and local mode."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable, Sequence

from shipsync.domain.audit import (
    AuditEntry,
    AuditHistoryQuery,
    CreateAuditEntryInput,
    HasActionQuery,
    matches_metadata,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryAuditRepository:
    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._entries: list[AuditEntry] = []

    @property
    def entries(self) -> list[AuditEntry]:
        return list(self._entries)

    async def create(self, entry: CreateAuditEntryInput) -> AuditEntry:
        stored = AuditEntry(
            id=uuid.uuid4().hex,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            action=entry.action,
            actor=entry.actor,
            metadata=dict(entry.metadata),
            status=entry.status,
            error=entry.error,
            created_at=self._clock(),
        )
        self._entries.append(stored)
        return stored

    async def create_many(self, entries: Sequence[CreateAuditEntryInput]) -> list[AuditEntry]:
        return [await self.create(entry) for entry in entries]

    async def get_history(self, query: AuditHistoryQuery) -> list[AuditEntry]:
        matching = self._matching(query.entity_type, query.entity_id, query.action)
        start = query.offset or 0
        end = start + query.limit if query.limit is not None else None
        return matching[start:end]

    async def has_action(self, query: HasActionQuery) -> bool:
        return any(
            (query.status is None or entry.status == query.status) and matches_metadata(entry.metadata, query.metadata)
            for entry in self._matching(query.entity_type, query.entity_id, query.action)
        )

    async def get_latest(self, entity_type: str, entity_id: str, action: str | None = None) -> AuditEntry | None:
        matching = self._matching(entity_type, entity_id, action)
        return matching[0] if matching else None

    async def count(self, entity_type: str, entity_id: str, action: str | None = None) -> int:
        return len(self._matching(entity_type, entity_id, action))

    async def close(self) -> None:
        return

    def _matching(self, entity_type: str, entity_id: str, action: str | None) -> list[AuditEntry]:
        """Newest first; insertion order breaks ties between equal timestamps."""
        selected = [
            (index, entry)
            for index, entry in enumerate(self._entries)
            if entry.entity_type == entity_type
            and entry.entity_id == str(entity_id)
            and (action is None or entry.action == action)
        ]
        selected.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        return [entry for _, entry in selected]
