"""Port: append-only audit history persistence."""
from __future__ import annotations

from typing import Protocol, Sequence

from shipsync.domain.audit import AuditEntry, AuditHistoryQuery, CreateAuditEntryInput, HasActionQuery


class AuditRepository(Protocol):
    """Entries are never updated or deleted once written."""

    async def create(self, entry: CreateAuditEntryInput) -> AuditEntry: ...

    async def create_many(self, entries: Sequence[CreateAuditEntryInput]) -> list[AuditEntry]: ...

    async def get_history(self, query: AuditHistoryQuery) -> list[AuditEntry]:
        """Newest first."""
        ...

    async def has_action(self, query: HasActionQuery) -> bool: ...

    async def get_latest(self, entity_type: str, entity_id: str, action: str | None = None) -> AuditEntry | None: ...

    async def count(self, entity_type: str, entity_id: str, action: str | None = None) -> int: ...

    async def close(self) -> None: ...
