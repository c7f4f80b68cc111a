"""Alerts the internal team when a shipment is delivered or hits an exception."""
from __future__ import annotations

from typing import Any, Callable, Sequence

from loguru import logger

from shipsync.application.audit_service import AuditService
from shipsync.application.customer_notifier import build_notification_data
from shipsync.application.events.router import EventRouter
from shipsync.constants import AuditActions, AuditEntityTypes, NotificationTypes, ShipmentTopics
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import QueuedEvent
from shipsync.domain.notifications import TriggerOptions
from shipsync.domain.shipment_events import parse_event_payload
from shipsync.ports.notification_service import NotificationService


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class InternalNotificationHandlers:
    def __init__(
        self,
        notifications: NotificationService,
        audit: AuditService,
        *,
        workflow: str,
        recipient_ids: Sequence[str],
    ) -> None:
        self._notifications = notifications
        self._audit = audit
        self._workflow = workflow
        self._recipient_ids = list(recipient_ids)

    async def on_delivered(self, event: QueuedEvent) -> None:
        await self._send(event, NotificationTypes.DELIVERED)

    async def on_exception(self, event: QueuedEvent) -> None:
        await self._send(event, NotificationTypes.EXCEPTION)

    async def _send(self, event: QueuedEvent, notification_type: str) -> None:
        current, _ = parse_event_payload(event.payload)
        idempotency_key = f"internal:{event.id}:{current.shipment_id}:{notification_type}"
        if await self._audit.has_successful_action(
            AuditEntityTypes.NOTIFICATION,
            current.shipment_id,
            AuditActions.NOTIFICATION_SENT,
            {"idempotencyKey": idempotency_key},
        ):
            _log("internal_notification_already_sent", shipment_id=current.shipment_id, idempotency_key=idempotency_key)
            return
        result = await self._notifications.trigger_for_users(
            self._workflow,
            self._recipient_ids,
            build_notification_data(current, notification_type),
            TriggerOptions(idempotency_key=idempotency_key),
        )
        metadata = {
            "notificationType": notification_type,
            "idempotencyKey": idempotency_key,
            "eventId": event.id,
            "audience": "internal",
        }
        if result.success:
            await self._audit.record_success(
                AuditEntityTypes.NOTIFICATION, current.shipment_id, AuditActions.NOTIFICATION_SENT, metadata
            )
            _log("internal_notification_sent", shipment_id=current.shipment_id, notification_type=notification_type)
            return
        await self._audit.record_failure(
            AuditEntityTypes.NOTIFICATION,
            current.shipment_id,
            AuditActions.NOTIFICATION_FAILED,
            result.error or "notification trigger failed",
            metadata,
        )
        logger.warning("internal notification for shipment {} failed: {}", current.shipment_id, result.error)


def register_internal_notifications(
    router: EventRouter,
    notifications: NotificationService,
    audit: AuditService,
    *,
    workflow: str,
    recipient_ids: Sequence[str],
) -> list[Callable[[], None]]:
    if not recipient_ids:
        _log("internal_notifications_disabled")
        return []
    handlers = InternalNotificationHandlers(notifications, audit, workflow=workflow, recipient_ids=recipient_ids)
    return [
        router.subscribe(ShipmentTopics.DELIVERED, handlers.on_delivered, name="internal_notifications.delivered"),
        router.subscribe(ShipmentTopics.EXCEPTION, handlers.on_exception, name="internal_notifications.exception"),
    ]
