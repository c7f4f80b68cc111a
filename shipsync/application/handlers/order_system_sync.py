"""Pushes shipment data to the external order-management system when a PO is linked.

A failed push is audited and raised so the queue retries it; pushing the same
shipment twice is harmless.
"""
from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from shipsync.application.audit_service import AuditService
from shipsync.application.events.router import EventRouter
from shipsync.constants import AuditActions, AuditEntityTypes, ShipmentTopics
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import QueuedEvent
from shipsync.domain.shipment_events import parse_event_payload
from shipsync.ports.order_sync import OrderSystemSync


class OrderSystemSyncError(Exception):
    pass


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class OrderSystemSyncHandlers:
    def __init__(self, order_system: OrderSystemSync, audit: AuditService) -> None:
        self._order_system = order_system
        self._audit = audit

    async def on_updated(self, event: QueuedEvent) -> None:
        current, previous = parse_event_payload(event.payload)
        if not current.po_number:
            return
        if previous is not None and previous.po_number == current.po_number:
            return

        result = await self._order_system.sync_shipment(current.shipment_id)
        metadata = {"eventId": event.id, "poNumber": current.po_number}
        if result.success:
            await self._audit.record_success(
                AuditEntityTypes.SYNC, current.shipment_id, AuditActions.ORDER_SYSTEM_SYNCED, metadata
            )
            _log("order_system_synced", shipment_id=current.shipment_id, po_number=current.po_number)
            return

        error = result.error or "order system sync failed"
        await self._audit.record_failure(
            AuditEntityTypes.SYNC, current.shipment_id, AuditActions.ORDER_SYSTEM_SYNC_FAILED, error, metadata
        )
        raise OrderSystemSyncError(f"order system sync failed for shipment {current.shipment_id}: {error}")


def register_order_system_sync(
    router: EventRouter,
    order_system: OrderSystemSync,
    audit: AuditService,
) -> list[Callable[[], None]]:
    handlers = OrderSystemSyncHandlers(order_system, audit)
    return [router.subscribe(ShipmentTopics.UPDATED, handlers.on_updated, name="order_system_sync.updated")]
