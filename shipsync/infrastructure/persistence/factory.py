"""Repository factory: selects and assembles persistence adapters."""
from __future__ import annotations

from dataclasses import dataclass

from shipsync.config.settings import Settings
from shipsync.infrastructure.persistence.inmemory.audit_repository import InMemoryAuditRepository
from shipsync.infrastructure.persistence.inmemory.event_queue import InMemoryEventQueue
from shipsync.infrastructure.persistence.inmemory.order_repository import InMemoryOrderRepository
from shipsync.infrastructure.persistence.mongo.audit_repository import MongoAuditRepository
from shipsync.infrastructure.persistence.mongo.connection import create_mongo_client
from shipsync.infrastructure.persistence.mongo.event_queue import MongoEventQueue
from shipsync.infrastructure.persistence.mongo.order_repository import MongoOrderRepository
from shipsync.ports.audit_repository import AuditRepository
from shipsync.ports.event_queue import EventQueue
from shipsync.ports.order_repository import OrderRepository


@dataclass(frozen=True)
class PersistenceAdapters:
    """The event queue owns the shared client, so it is closed last."""

    event_queue: EventQueue
    audit_repository: AuditRepository
    order_repository: OrderRepository


async def create_persistence(settings: Settings) -> PersistenceAdapters:
    """Select persistence adapters from configuration and return port types."""
    backend = settings.repository_backend.strip().lower()

    if backend in ("mongo", ):
        mongo_client = await create_mongo_client(settings)
        database = mongo_client[settings.database_name]
        event_queue = MongoEventQueue(
            database[settings.event_queue_collection],
            client=mongo_client,
            default_max_attempts=settings.event_max_attempts,
            default_visibility_timeout_ms=settings.visibility_timeout_ms,
            retry_delay_seconds=settings.retry_delay_seconds,
            max_retry_delay_seconds=settings.max_retry_delay_seconds,
            backoff_multiplier=settings.backoff_multiplier,
        )
        audit_repository = MongoAuditRepository(database[settings.audit_collection])
        order_repository = MongoOrderRepository(
            database[settings.shipments_collection],
            database[settings.purchase_orders_collection],
            database[settings.orders_collection],
            database[settings.customer_threads_collection],
        )
        await event_queue.ensure_indexes()
        await audit_repository.ensure_indexes()
        await order_repository.ensure_indexes()
        return PersistenceAdapters(event_queue, audit_repository, order_repository)

    if backend in ("memory", "inmemory"):
        return PersistenceAdapters(
            InMemoryEventQueue(
                default_max_attempts=settings.event_max_attempts,
                default_visibility_timeout_ms=settings.visibility_timeout_ms,
                retry_delay_seconds=settings.retry_delay_seconds,
                max_retry_delay_seconds=settings.max_retry_delay_seconds,
                backoff_multiplier=settings.backoff_multiplier,
            ),
            InMemoryAuditRepository(),
            InMemoryOrderRepository(),
        )
    raise ValueError(f"Unsupported repository backend: {backend}")
