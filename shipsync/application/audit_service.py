"""Audit service: thin convenience layer over the AuditRepository port.

Recording never raises: a failed audit write is logged and returns None so that
audit problems cannot break the notification or sync work that triggered them.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from shipsync.constants import AuditStatus
from shipsync.domain.audit import (
    DEFAULT_ACTOR,
    AuditEntry,
    AuditHistoryQuery,
    CreateAuditEntryInput,
    HasActionQuery,
)
from shipsync.ports.audit_repository import AuditRepository


class AuditService:
    def __init__(self, repository: AuditRepository) -> None:
        self._repository = repository

    async def record(
        self,
        entity_type: str,
        entity_id: str | int,
        action: str,
        status: str,
        *,
        metadata: dict[str, Any] | None = None,
        error: str | None = None,
        actor: str = DEFAULT_ACTOR,
    ) -> AuditEntry | None:
        entry = CreateAuditEntryInput(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            status=status,
            actor=actor,
            metadata=dict(metadata or {}),
            error=error,
        )
        try:
            return await self._repository.create(entry)
        except Exception as exc:
            logger.warning("audit write failed for {} {} {}: {}", entity_type, entity_id, action, exc)
            return None

    async def record_success(
        self,
        entity_type: str,
        entity_id: str | int,
        action: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        return await self.record(entity_type, entity_id, action, AuditStatus.SUCCESS, metadata=metadata)

    async def record_failure(
        self,
        entity_type: str,
        entity_id: str | int,
        action: str,
        error: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        return await self.record(entity_type, entity_id, action, AuditStatus.FAILED, metadata=metadata, error=error)

    async def record_skipped(
        self,
        entity_type: str,
        entity_id: str | int,
        action: str,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        merged = dict(metadata or {})
        merged["skipReason"] = reason
        return await self.record(entity_type, entity_id, action, AuditStatus.SKIPPED, metadata=merged)

    async def get_history(
        self,
        entity_type: str,
        entity_id: str | int,
        *,
        action: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[AuditEntry]:
        return await self._repository.get_history(
            AuditHistoryQuery(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action,
                limit=limit,
                offset=offset,
            )
        )

    async def has_action(
        self,
        entity_type: str,
        entity_id: str | int,
        action: str,
        *,
        status: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        return await self._repository.has_action(
            HasActionQuery(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action,
                status=status,
                metadata=metadata,
            )
        )

    async def has_successful_action(
        self,
        entity_type: str,
        entity_id: str | int,
        action: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        return await self.has_action(entity_type, entity_id, action, status=AuditStatus.SUCCESS, metadata=metadata)

    async def get_latest(self, entity_type: str, entity_id: str | int, action: str | None = None) -> AuditEntry | None:
        return await self._repository.get_latest(entity_type, str(entity_id), action)

    async def count_entries(self, entity_type: str, entity_id: str | int, action: str | None = None) -> int:
        return await self._repository.count(entity_type, str(entity_id), action)
