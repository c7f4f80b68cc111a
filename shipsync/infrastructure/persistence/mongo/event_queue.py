"""MongoDB implementation of the EventQueue port.

Claims lock one document per `find_one_and_update`, which is atomic per document,
so concurrent claimers on any number of processes never receive the same event.
`active_dedupe_key` mirrors `dedupe_key` while the event is pending or processing
and is unset once it completes or dies; a sparse unique index on it rejects a
second active event for the same key. `locked_at` doubles as the claim token:
completion and failure updates given a token only match while that lock is held.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from shipsync.constants import DEFAULT_CLAIM_BATCH_SIZE, EVENT_STATUS
from shipsync.core import SERVICE_NAME
from shipsync.core.backoff import retry_delay_seconds
from shipsync.domain.models import ClaimOptions, EventMessage, QueuedEvent
from shipsync.infrastructure.persistence.mongo.connection import close_mongo_client

DEFAULT_VISIBILITY_TIMEOUT_MS = 60_000


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_event(doc: dict[str, Any]) -> QueuedEvent:
    return QueuedEvent(
        id=str(doc["_id"]),
        topic=str(doc["topic"]),
        payload=dict(doc.get("payload") or {}),
        attempts=int(doc.get("attempts", 0)),
        max_attempts=int(doc.get("max_attempts", 1)),
        available_at=doc["available_at"],
        locked_at=doc.get("locked_at"),
        last_error=doc.get("last_error"),
        status=str(doc.get("status", EVENT_STATUS.PENDING)),
        dedupe_key=doc.get("dedupe_key"),
        metadata=dict(doc.get("metadata") or {}),
        created_at=doc.get("created_at"),
    )


class MongoEventQueue:
    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        *,
        client: Any | None = None,
        clock: Callable[[], datetime] = _utcnow,
        default_max_attempts: int = 5,
        default_visibility_timeout_ms: int = DEFAULT_VISIBILITY_TIMEOUT_MS,
        retry_delay_seconds: float = 30.0,
        max_retry_delay_seconds: float = 900.0,
        backoff_multiplier: float = 2.0,
    ) -> None:
        self._collection = collection
        self._client = client
        self._clock = clock
        self._default_max_attempts = int(default_max_attempts)
        self._default_visibility_timeout_ms = int(default_visibility_timeout_ms)
        self._retry_delay_seconds = float(retry_delay_seconds)
        self._max_retry_delay_seconds = float(max_retry_delay_seconds)
        self._backoff_multiplier = float(backoff_multiplier)

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._collection.create_index(
            [("topic", ASCENDING), ("status", ASCENDING), ("available_at", ASCENDING)],
            name="idx_event_queue_claim",
        )
        await self._collection.create_index(
            "active_dedupe_key",
            unique=True,
            sparse=True,
            name="uq_event_queue_active_dedupe_key",
        )
        await self._collection.create_index(
            [("status", ASCENDING), ("dead_at", DESCENDING)],
            name="idx_event_queue_dead",
        )

    async def enqueue(self, messages: Sequence[EventMessage]) -> list[str]:
        accepted: list[str] = []
        for message in messages:
            now = self._clock()
            event_id = uuid.uuid4().hex
            doc: dict[str, Any] = {
                "_id": event_id,
                "topic": message.topic,
                "payload": dict(message.payload),
                "attempts": 0,
                "max_attempts": int(message.max_attempts or self._default_max_attempts),
                "available_at": message.scheduled_for or now,
                "locked_at": None,
                "last_error": None,
                "status": EVENT_STATUS.PENDING,
                "dedupe_key": message.dedupe_key,
                "metadata": dict(message.metadata or {}),
                "created_at": now,
                "updated_at": now,
            }
            if message.dedupe_key:
                doc["active_dedupe_key"] = message.dedupe_key
            try:
                await self._collection.insert_one(doc)
            except DuplicateKeyError:
                _log("event_enqueue_duplicate", topic=message.topic, dedupe_key=message.dedupe_key)
                continue
            accepted.append(event_id)
        return accepted

    async def claim(self, topic: str, options: ClaimOptions | None = None) -> list[QueuedEvent]:
        batch_size = DEFAULT_CLAIM_BATCH_SIZE if options is None or options.batch_size is None else options.batch_size
        visibility_ms = (
            self._default_visibility_timeout_ms
            if options is None or options.visibility_timeout_ms is None
            else options.visibility_timeout_ms
        )
        now = self._clock()
        lock_cutoff = now - timedelta(milliseconds=visibility_ms)
        claimable = {
            "topic": topic,
            "status": {"$in": list(EVENT_STATUS.ACTIVE)},
            "available_at": {"$lte": now},
            "$expr": {"$lt": ["$attempts", "$max_attempts"]},
            "$or": [{"locked_at": None}, {"locked_at": {"$lte": lock_cutoff}}],
        }

        claimed: list[QueuedEvent] = []
        for _ in range(max(0, batch_size)):
            doc = await self._collection.find_one_and_update(
                claimable,
                {"$set": {"locked_at": now, "status": EVENT_STATUS.PROCESSING, "updated_at": now}},
                sort=[("available_at", ASCENDING), ("created_at", ASCENDING)],
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                break
            claimed.append(_to_event(doc))
        return claimed

    async def mark_completed(self, ids: Sequence[str], *, locked_at: datetime | None = None) -> None:
        if not ids:
            return
        now = self._clock()
        query: dict[str, Any] = {"_id": {"$in": list(ids)}, "status": {"$ne": EVENT_STATUS.DEAD}}
        if locked_at is not None:
            query["locked_at"] = locked_at
        result = await self._collection.update_many(
            query,
            {
                "$set": {
                    "status": EVENT_STATUS.COMPLETED,
                    "locked_at": None,
                    "completed_at": now,
                    "updated_at": now,
                },
                "$unset": {"active_dedupe_key": ""},
            },
        )
        if locked_at is not None and result.matched_count < len(ids):
            _log("event_completion_skipped", ids=list(ids), reason="lock not held")

    async def mark_failed(self, event_id: str, error: str, *, locked_at: datetime | None = None) -> None:
        query: dict[str, Any] = {"_id": event_id, "status": {"$in": list(EVENT_STATUS.ACTIVE)}}
        if locked_at is not None:
            query["locked_at"] = locked_at
        doc = await self._collection.find_one(query)
        if not doc:
            if locked_at is not None:
                logger.warning("event {} failure not recorded: lock was taken over by another claim", event_id)
            return
        now = self._clock()
        previous_attempts = int(doc.get("attempts", 0))
        attempts = previous_attempts + 1
        max_attempts = int(doc.get("max_attempts", self._default_max_attempts))

        update: dict[str, Any]
        if attempts >= max_attempts:
            update = {
                "$set": {
                    "attempts": attempts,
                    "status": EVENT_STATUS.DEAD,
                    "last_error": error,
                    "locked_at": None,
                    "dead_at": now,
                    "updated_at": now,
                },
                "$unset": {"active_dedupe_key": ""},
            }
        else:
            delay = retry_delay_seconds(
                attempts,
                self._retry_delay_seconds,
                self._max_retry_delay_seconds,
                self._backoff_multiplier,
            )
            update = {
                "$set": {
                    "attempts": attempts,
                    "status": EVENT_STATUS.PENDING,
                    "last_error": error,
                    "locked_at": None,
                    "available_at": now + timedelta(seconds=delay),
                    "updated_at": now,
                },
            }

        result = await self._collection.update_one(
            {
                "_id": event_id,
                "attempts": previous_attempts,
                "locked_at": doc.get("locked_at"),
                "status": {"$in": list(EVENT_STATUS.ACTIVE)},
            },
            update,
        )
        if result.modified_count == 0:
            logger.warning("event {} changed concurrently; failure not recorded", event_id)
            return
        if attempts >= max_attempts:
            logger.warning("event {} on {} dead-lettered after {} attempts", event_id, doc.get("topic"), attempts)

    async def get(self, event_id: str) -> QueuedEvent | None:
        doc = await self._collection.find_one({"_id": event_id})
        return _to_event(doc) if doc else None

    async def list_dead(self, topic: str | None = None, *, limit: int = 100) -> list[QueuedEvent]:
        query: dict[str, Any] = {"status": EVENT_STATUS.DEAD}
        if topic is not None:
            query["topic"] = topic
        cursor = self._collection.find(query).sort("dead_at", DESCENDING).limit(int(limit))
        return [_to_event(doc) for doc in await cursor.to_list(length=int(limit))]

    async def requeue_dead(self, event_id: str) -> bool:
        doc = await self._collection.find_one({"_id": event_id, "status": EVENT_STATUS.DEAD})
        if not doc:
            return False
        now = self._clock()
        update: dict[str, Any] = {
            "status": EVENT_STATUS.PENDING,
            "attempts": 0,
            "locked_at": None,
            "available_at": now,
            "updated_at": now,
        }
        if doc.get("dedupe_key"):
            update["active_dedupe_key"] = doc["dedupe_key"]
        try:
            result = await self._collection.update_one(
                {"_id": event_id, "status": EVENT_STATUS.DEAD},
                {"$set": update, "$unset": {"dead_at": ""}},
            )
        except DuplicateKeyError:
            logger.warning("event {} not requeued: dedupe key {} is held by an active event", event_id, doc["dedupe_key"])
            return False
        if result.modified_count:
            _log("event_requeued", event_id=event_id, topic=doc.get("topic"))
        return bool(result.modified_count)

    async def close(self) -> None:
        """Close underlying Mongo client when owned by this adapter."""
        if self._client is not None:
            await close_mongo_client(self._client)
