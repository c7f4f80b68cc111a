"""Customer notification handlers.

`status.changed` covers the progress stages (shipped, out_for_delivery). Delivered
and exception have dedicated edge topics, so the status.changed handler leaves
them alone and each terminal notification is triggered from exactly one topic.
"""
from __future__ import annotations

from typing import Callable

from shipsync.application.customer_notifier import CustomerNotifier, customer_idempotency_key
from shipsync.application.events.router import EventRouter
from shipsync.constants import NotificationTypes, ShipmentTopics
from shipsync.domain.models import QueuedEvent
from shipsync.domain.notifications import notification_type_for_transition
from shipsync.domain.shipment_events import parse_event_payload

_EDGE_TYPES = frozenset({NotificationTypes.DELIVERED, NotificationTypes.EXCEPTION})


class CustomerNotificationHandlers:
    def __init__(self, notifier: CustomerNotifier) -> None:
        self._notifier = notifier

    async def on_status_changed(self, event: QueuedEvent) -> None:
        current, previous = parse_event_payload(event.payload)
        notification_type = notification_type_for_transition(
            current.status, previous.status if previous is not None else None
        )
        if notification_type is None or notification_type in _EDGE_TYPES:
            return
        await self._send(event, notification_type)

    async def on_delivered(self, event: QueuedEvent) -> None:
        await self._send(event, NotificationTypes.DELIVERED)

    async def on_exception(self, event: QueuedEvent) -> None:
        await self._send(event, NotificationTypes.EXCEPTION)

    async def _send(self, event: QueuedEvent, notification_type: str) -> None:
        current, _ = parse_event_payload(event.payload)
        await self._notifier.notify(
            current,
            notification_type,
            idempotency_key=customer_idempotency_key(event.id, current.shipment_id, notification_type),
            event_id=event.id,
        )


def register_customer_notifications(router: EventRouter, notifier: CustomerNotifier) -> list[Callable[[], None]]:
    handlers = CustomerNotificationHandlers(notifier)
    return [
        router.subscribe(
            ShipmentTopics.STATUS_CHANGED, handlers.on_status_changed, name="customer_notifications.status_changed"
        ),
        router.subscribe(ShipmentTopics.DELIVERED, handlers.on_delivered, name="customer_notifications.delivered"),
        router.subscribe(ShipmentTopics.EXCEPTION, handlers.on_exception, name="customer_notifications.exception"),
    ]
