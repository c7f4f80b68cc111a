"""Entry point for shipment mutations: validate, diff and publish.

Callers pass the snapshot they loaded before the write and the one they persisted.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from shipsync.application.events.router import EventRouter, PublishResult
from shipsync.constants import DomainEvents
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import EventMessage, ShipmentSnapshot
from shipsync.domain.shipment_events import build_shipment_events
from shipsync.domain.shipment_status import validate_transition


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ShipmentChangeService:
    def __init__(self, router: EventRouter) -> None:
        self._router = router

    async def record_change(
        self,
        previous: ShipmentSnapshot | None,
        current: ShipmentSnapshot,
        *,
        wait: bool = False,
    ) -> PublishResult:
        """Publish the events for one persisted shipment mutation.

        Raises InvalidStatusTransitionError before anything is published when the
        status change is not allowed.
        """
        if previous is not None:
            validate_transition(previous.status, current.status)

        messages = build_shipment_events(previous, current)
        po_linked = self._po_linked_message(previous, current)
        if po_linked is not None:
            messages.append(po_linked)

        _log(
            "shipment_change_recorded",
            shipment_id=current.shipment_id,
            status=current.status,
            previous_status=previous.status if previous is not None else None,
            topics=[message.topic for message in messages],
        )
        return await self._router.publish(messages, wait=wait)

    @staticmethod
    def _po_linked_message(previous: ShipmentSnapshot | None, current: ShipmentSnapshot) -> EventMessage | None:
        previous_po = previous.po_number if previous is not None else None
        if not current.po_number or current.po_number == previous_po:
            return None
        return EventMessage(
            topic=DomainEvents.SHIPMENT_PO_LINKED,
            payload={
                "shipmentId": current.shipment_id,
                "poNumber": current.po_number,
                "previousPoNumber": previous_po,
            },
        )
