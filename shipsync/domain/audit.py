"""Audit history domain types.

Entity-agnostic, append-only log: an actor performed an action on an entity,
with a status and free-form metadata.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

DEFAULT_ACTOR = "system"


@dataclass(frozen=True)
class CreateAuditEntryInput:
    entity_type: str
    entity_id: str
    action: str
    status: str
    actor: str = DEFAULT_ACTOR
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class AuditEntry:
    id: str
    entity_type: str
    entity_id: str
    action: str
    actor: str
    metadata: dict[str, Any]
    status: str
    error: str | None
    created_at: datetime


@dataclass(frozen=True)
class AuditHistoryQuery:
    entity_type: str
    entity_id: str
    action: str | None = None
    limit: int | None = None
    offset: int | None = None


@dataclass(frozen=True)
class HasActionQuery:
    """Idempotency lookup. `metadata` entries must all match exactly when given."""

    entity_type: str
    entity_id: str
    action: str
    status: str | None = None
    metadata: dict[str, Any] | None = None


def matches_metadata(entry_metadata: dict[str, Any], expected: dict[str, Any] | None) -> bool:
    if not expected:
        return True
    return all(entry_metadata.get(key) == value for key, value in expected.items())
