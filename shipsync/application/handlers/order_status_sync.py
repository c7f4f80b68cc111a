"""Keeps the denormalized order aggregate in step with its shipments.

Recomputation is full, so it runs on every relevant event without dedupe.
"""
from __future__ import annotations

from typing import Any, Callable

from shipsync.application.events.router import DeliveryMode, EventRouter
from shipsync.constants import DomainEvents, ShipmentTopics
from shipsync.domain.models import QueuedEvent
from shipsync.domain.shipment_events import parse_event_payload
from shipsync.ports.order_sync import OrderSyncService


class OrderStatusSyncHandlers:
    def __init__(self, order_sync: OrderSyncService) -> None:
        self._order_sync = order_sync

    async def on_status_changed(self, event: QueuedEvent) -> None:
        current, _ = parse_event_payload(event.payload)
        await self._order_sync.sync_by_shipment_id(current.shipment_id)

    async def on_created(self, event: QueuedEvent) -> None:
        current, _ = parse_event_payload(event.payload)
        if not current.po_number:
            return
        await self._order_sync.sync_by_shipment_id(current.shipment_id)

    async def on_po_linked(self, event: QueuedEvent) -> None:
        payload: dict[str, Any] = event.payload
        await self._order_sync.sync_by_shipment_id(int(payload["shipmentId"]))


def register_order_status_sync(router: EventRouter, order_sync: OrderSyncService) -> list[Callable[[], None]]:
    handlers = OrderStatusSyncHandlers(order_sync)
    return [
        router.subscribe(ShipmentTopics.STATUS_CHANGED, handlers.on_status_changed, name="order_sync.status_changed"),
        router.subscribe(ShipmentTopics.CREATED, handlers.on_created, name="order_sync.shipment_created"),
        router.subscribe(
            DomainEvents.SHIPMENT_PO_LINKED,
            handlers.on_po_linked,
            mode=DeliveryMode.IMMEDIATE,
            name="order_sync.po_linked",
        ),
    ]
