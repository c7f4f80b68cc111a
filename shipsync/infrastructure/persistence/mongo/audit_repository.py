"""MongoDB implementation of AuditRepository. Insert-only; entries are never updated."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING

from shipsync.domain.audit import (
    AuditEntry,
    AuditHistoryQuery,
    CreateAuditEntryInput,
    HasActionQuery,
)
from shipsync.infrastructure.persistence.mongo.connection import close_mongo_client

_NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_entry(doc: dict[str, Any]) -> AuditEntry:
    return AuditEntry(
        id=str(doc["_id"]),
        entity_type=str(doc["entity_type"]),
        entity_id=str(doc["entity_id"]),
        action=str(doc["action"]),
        actor=str(doc.get("actor", "")),
        metadata=dict(doc.get("metadata") or {}),
        status=str(doc.get("status", "")),
        error=doc.get("error"),
        created_at=doc["created_at"],
    )


def _entity_filter(entity_type: str, entity_id: str, action: str | None) -> dict[str, Any]:
    query: dict[str, Any] = {"entity_type": entity_type, "entity_id": str(entity_id)}
    if action is not None:
        query["action"] = action
    return query


class MongoAuditRepository:
    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        *,
        client: Any | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._collection = collection
        self._client = client
        self._clock = clock

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._collection.create_index(
            [
                ("entity_type", ASCENDING),
                ("entity_id", ASCENDING),
                ("action", ASCENDING),
                ("created_at", DESCENDING),
            ],
            name="idx_audit_entity_action_created_at",
        )

    def _document(self, entry: CreateAuditEntryInput) -> dict[str, Any]:
        return {
            "entity_type": entry.entity_type,
            "entity_id": str(entry.entity_id),
            "action": entry.action,
            "actor": entry.actor,
            "metadata": dict(entry.metadata),
            "status": entry.status,
            "error": entry.error,
            "created_at": self._clock(),
        }

    async def create(self, entry: CreateAuditEntryInput) -> AuditEntry:
        doc = self._document(entry)
        result = await self._collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _to_entry(doc)

    async def create_many(self, entries: Sequence[CreateAuditEntryInput]) -> list[AuditEntry]:
        if not entries:
            return []
        docs = [self._document(entry) for entry in entries]
        result = await self._collection.insert_many(docs)
        for doc, inserted_id in zip(docs, result.inserted_ids):
            doc["_id"] = inserted_id
        return [_to_entry(doc) for doc in docs]

    async def get_history(self, query: AuditHistoryQuery) -> list[AuditEntry]:
        cursor = self._collection.find(_entity_filter(query.entity_type, query.entity_id, query.action)).sort(
            _NEWEST_FIRST
        )
        if query.offset:
            cursor = cursor.skip(int(query.offset))
        if query.limit is not None:
            cursor = cursor.limit(int(query.limit))
        return [_to_entry(doc) for doc in await cursor.to_list(length=query.limit)]

    async def has_action(self, query: HasActionQuery) -> bool:
        mongo_query = _entity_filter(query.entity_type, query.entity_id, query.action)
        if query.status is not None:
            mongo_query["status"] = query.status
        for key, value in (query.metadata or {}).items():
            mongo_query[f"metadata.{key}"] = value
        return await self._collection.find_one(mongo_query, projection={"_id": 1}) is not None

    async def get_latest(self, entity_type: str, entity_id: str, action: str | None = None) -> AuditEntry | None:
        doc = await self._collection.find_one(_entity_filter(entity_type, entity_id, action), sort=_NEWEST_FIRST)
        return _to_entry(doc) if doc else None

    async def count(self, entity_type: str, entity_id: str, action: str | None = None) -> int:
        return int(await self._collection.count_documents(_entity_filter(entity_type, entity_id, action)))

    async def close(self) -> None:
        """Close underlying Mongo client when owned by this adapter."""
        if self._client is not None:
            await close_mongo_client(self._client)
