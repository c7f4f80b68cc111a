"""Audit trail handlers for shipment and order events.

Durable handlers are keyed by the queue event id: a redelivered event finds its
own entry and writes nothing. A failed write raises so the event is retried.
"""
from __future__ import annotations

from typing import Any, Callable

from shipsync.application.audit_service import AuditService
from shipsync.application.events.router import DeliveryMode, EventRouter
from shipsync.constants import AuditActions, AuditEntityTypes, AuditStatus, DomainEvents, ShipmentTopics
from shipsync.domain.models import QueuedEvent
from shipsync.domain.shipment_events import parse_event_payload


class AuditWriteError(Exception):
    pass


class ShipmentAuditHandlers:
    def __init__(self, audit: AuditService) -> None:
        self._audit = audit

    async def on_created(self, event: QueuedEvent) -> None:
        current, _ = parse_event_payload(event.payload)
        await self._record_once(
            AuditEntityTypes.SHIPMENT,
            current.shipment_id,
            AuditActions.SHIPMENT_CREATED,
            event,
            {
                "trackingNumber": current.tracking_number,
                "carrier": current.carrier,
                "status": current.status,
                "poNumber": current.po_number,
            },
        )

    async def on_status_changed(self, event: QueuedEvent) -> None:
        current, previous = parse_event_payload(event.payload)
        await self._record_once(
            AuditEntityTypes.SHIPMENT,
            current.shipment_id,
            AuditActions.SHIPMENT_STATUS_CHANGED,
            event,
            {
                "trackingNumber": current.tracking_number,
                "fromStatus": previous.status if previous is not None else None,
                "toStatus": current.status,
            },
        )

    async def on_order_status_changed(self, event: QueuedEvent) -> None:
        payload = event.payload
        entry = await self._audit.record(
            AuditEntityTypes.ORDER,
            payload["orderNumber"],
            AuditActions.ORDER_STATUS_CHANGED,
            AuditStatus.SUCCESS,
            metadata={
                "oldStatus": payload.get("oldStatus"),
                "newStatus": payload.get("newStatus"),
                "trigger": payload.get("trigger"),
            },
        )
        if entry is None:
            raise AuditWriteError(f"audit write failed for order {payload['orderNumber']}")

    async def _record_once(
        self,
        entity_type: str,
        entity_id: int,
        action: str,
        event: QueuedEvent,
        metadata: dict[str, Any],
    ) -> None:
        if await self._audit.has_action(entity_type, entity_id, action, metadata={"eventId": event.id}):
            return
        entry = await self._audit.record(
            entity_type,
            entity_id,
            action,
            AuditStatus.SUCCESS,
            metadata={**metadata, "eventId": event.id},
        )
        if entry is None:
            raise AuditWriteError(f"audit write failed for {entity_type} {entity_id} {action}")


def register_audit_logging(router: EventRouter, audit: AuditService) -> list[Callable[[], None]]:
    handlers = ShipmentAuditHandlers(audit)
    return [
        router.subscribe(ShipmentTopics.CREATED, handlers.on_created, name="audit.shipment_created"),
        router.subscribe(ShipmentTopics.STATUS_CHANGED, handlers.on_status_changed, name="audit.status_changed"),
        router.subscribe(
            DomainEvents.ORDER_STATUS_CHANGED,
            handlers.on_order_status_changed,
            mode=DeliveryMode.IMMEDIATE,
            name="audit.order_status_changed",
        ),
    ]
