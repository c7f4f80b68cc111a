from __future__ import annotations

import asyncio
import os
import uuid
from datetime import datetime, timezone

import pytest

from shipsync.config.settings import Settings
from shipsync.constants import EVENT_STATUS, AuditActions, AuditEntityTypes
from shipsync.domain.audit import CreateAuditEntryInput, HasActionQuery
from shipsync.domain.models import ClaimOptions, EventMessage
from shipsync.domain.order import CustomerThread, OrderAggregate, ThreadMatchStatus
from shipsync.infrastructure.persistence.mongo.audit_repository import MongoAuditRepository
from shipsync.infrastructure.persistence.mongo.connection import close_mongo_client, create_mongo_client
from shipsync.infrastructure.persistence.mongo.event_queue import MongoEventQueue
from shipsync.infrastructure.persistence.mongo.order_repository import MongoOrderRepository
from tests.conftest import FixedClock

TOPIC = "shipment.status.changed"


def _build_settings() -> Settings:
    return Settings(
        database_host=os.getenv("DATABASE_HOST", "localhost"),
        database_port=int(os.getenv("DATABASE_PORT", "27017")),
        database_user=os.getenv("DATABASE_USER", ""),
        database_password=os.getenv("DATABASE_PASSWORD", ""),
        database_name=os.getenv("DATABASE_NAME", "shipsync_test"),
        max_connection_attempts=int(os.getenv("MAX_CONNECTION_ATTEMPTS", "3")),
        database_connection_timeout_ms=int(os.getenv("DATABASE_CONNECTION_TIMEOUT_MS", "5000")),
    )


@pytest.mark.integration
def test_mongo_concurrent_claims_are_disjoint() -> None:
    async def _run() -> None:
        settings = _build_settings()
        client = await create_mongo_client(settings)
        collection = client[settings.database_name][f"event_queue_{uuid.uuid4().hex}"]
        try:
            queue = MongoEventQueue(collection)
            await queue.ensure_indexes()
            ids = await queue.enqueue([EventMessage(topic=TOPIC, payload={"n": n}) for n in range(8)])

            results = await asyncio.gather(
                *(queue.claim(TOPIC, ClaimOptions(batch_size=3)) for _ in range(4))
            )
            claimed = [event.id for batch in results for event in batch]

            assert len(claimed) == len(set(claimed))
            assert sorted(claimed) == sorted(ids)
        finally:
            await collection.drop()
            await close_mongo_client(client)

    asyncio.run(_run())


@pytest.mark.integration
def test_mongo_failed_event_dead_letters_at_max_attempts_and_requeues() -> None:
    async def _run() -> None:
        settings = _build_settings()
        client = await create_mongo_client(settings)
        collection = client[settings.database_name][f"event_queue_{uuid.uuid4().hex}"]
        try:
            queue = MongoEventQueue(collection, retry_delay_seconds=0)
            await queue.ensure_indexes()
            [event_id] = await queue.enqueue(
                [EventMessage(topic=TOPIC, payload={}, max_attempts=3, dedupe_key="shipment:1:delivered")]
            )
            assert await queue.enqueue([EventMessage(topic=TOPIC, payload={}, dedupe_key="shipment:1:delivered")]) == []

            for _ in range(3):
                claimed = await queue.claim(TOPIC)
                assert [event.id for event in claimed] == [event_id]
                await queue.mark_failed(event_id, "handler failed")

            assert await queue.claim(TOPIC) == []
            stored = await queue.get(event_id)
            assert stored.status == EVENT_STATUS.DEAD
            assert stored.attempts == 3
            assert [event.id for event in await queue.list_dead(TOPIC)] == [event_id]

            assert await queue.requeue_dead(event_id) is True
            reclaimed = await queue.claim(TOPIC)
            assert [event.id for event in reclaimed] == [event_id]
            await queue.mark_completed([event_id])
            await queue.mark_completed([event_id])
            assert (await queue.get(event_id)).status == EVENT_STATUS.COMPLETED
        finally:
            await collection.drop()
            await close_mongo_client(client)

    asyncio.run(_run())


@pytest.mark.integration
def test_mongo_stale_claim_cannot_fail_or_complete_reclaimed_event() -> None:
    async def _run() -> None:
        settings = _build_settings()
        client = await create_mongo_client(settings)
        collection = client[settings.database_name][f"event_queue_{uuid.uuid4().hex}"]
        clock = FixedClock()
        try:
            queue = MongoEventQueue(collection, clock=clock, retry_delay_seconds=0)
            await queue.ensure_indexes()
            [event_id] = await queue.enqueue([EventMessage(topic=TOPIC, payload={})])
            options = ClaimOptions(visibility_timeout_ms=1_000)
            [stale] = await queue.claim(TOPIC, options)
            clock.advance(milliseconds=1_500)
            [current] = await queue.claim(TOPIC, options)

            await queue.mark_failed(event_id, "slow handler", locked_at=stale.locked_at)
            await queue.mark_completed([event_id], locked_at=stale.locked_at)
            assert await queue.claim(TOPIC, options) == []
            stored = await queue.get(event_id)
            assert stored.status == EVENT_STATUS.PROCESSING
            assert stored.attempts == 0

            await queue.mark_completed([event_id], locked_at=current.locked_at)
            assert (await queue.get(event_id)).status == EVENT_STATUS.COMPLETED
        finally:
            await collection.drop()
            await close_mongo_client(client)

    asyncio.run(_run())


@pytest.mark.integration
def test_mongo_audit_repository_has_action_by_metadata() -> None:
    async def _run() -> None:
        settings = _build_settings()
        client = await create_mongo_client(settings)
        collection = client[settings.database_name][f"audit_{uuid.uuid4().hex}"]
        try:
            repository = MongoAuditRepository(collection)
            await repository.ensure_indexes()
            await repository.create_many(
                [
                    CreateAuditEntryInput(
                        AuditEntityTypes.SHIPMENT,
                        "1",
                        AuditActions.NOTIFICATION_SENT,
                        "success",
                        metadata={"notificationType": "delivered", "eventId": "evt-1"},
                    ),
                    CreateAuditEntryInput(AuditEntityTypes.SHIPMENT, "1", AuditActions.SHIPMENT_CREATED, "success"),
                ]
            )

            assert await repository.has_action(
                HasActionQuery(
                    AuditEntityTypes.SHIPMENT,
                    "1",
                    AuditActions.NOTIFICATION_SENT,
                    status="success",
                    metadata={"notificationType": "delivered"},
                )
            )
            assert not await repository.has_action(
                HasActionQuery(
                    AuditEntityTypes.SHIPMENT,
                    "1",
                    AuditActions.NOTIFICATION_SENT,
                    metadata={"notificationType": "shipped"},
                )
            )
            assert await repository.count(AuditEntityTypes.SHIPMENT, "1") == 2
        finally:
            await collection.drop()
            await close_mongo_client(client)

    asyncio.run(_run())


@pytest.mark.integration
def test_mongo_order_repository_resolves_shipments_through_purchase_orders() -> None:
    async def _run() -> None:
        settings = _build_settings()
        client = await create_mongo_client(settings)
        database = client[settings.database_name]
        suffix = uuid.uuid4().hex
        shipments = database[f"shipments_{suffix}"]
        purchase_orders = database[f"purchase_orders_{suffix}"]
        orders = database[f"orders_{suffix}"]
        threads = database[f"customer_threads_{suffix}"]
        try:
            repository = MongoOrderRepository(shipments, purchase_orders, orders, threads)
            await repository.ensure_indexes()
            await purchase_orders.insert_one({"po_number": "PO-1", "order_number": "ORD-1"})
            await shipments.insert_many(
                [
                    {"shipment_id": 1, "tracking_number": "T1", "status": "delivered", "po_number": "PO-1"},
                    {"shipment_id": 2, "tracking_number": "T2", "status": "in_transit", "po_number": "PO-1"},
                ]
            )

            assert await repository.find_order_number_for_shipment(2) == "ORD-1"
            assert [s.shipment_id for s in await repository.list_shipments_for_order("ORD-1")] == [1, 2]

            aggregate = OrderAggregate("ORD-1", "partially_delivered", 2, 1, 1, 0, 0, datetime.now(timezone.utc))
            await repository.upsert_order(aggregate)
            await repository.upsert_order(aggregate)
            assert (await repository.get_order("ORD-1")).computed_status == "partially_delivered"
            assert await orders.count_documents({}) == 1

            assert await repository.find_customer_thread("ORD-1") is None
            await repository.link_customer_thread(
                CustomerThread("ORD-1", "conv-1", ThreadMatchStatus.PENDING_REVIEW)
            )
            await repository.link_customer_thread(
                CustomerThread("ORD-1", "conv-2", ThreadMatchStatus.MANUALLY_LINKED)
            )
            thread = await repository.find_customer_thread("ORD-1")
            assert thread.conversation_id == "conv-2"
            assert thread.confirmed
            assert await threads.count_documents({}) == 1
        finally:
            for collection in (shipments, purchase_orders, orders, threads):
                await collection.drop()
            await close_mongo_client(client)

    asyncio.run(_run())
