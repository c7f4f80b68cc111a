"""Customer-facing shipment notifications.

A notification is only delivered into a confirmed customer thread. Without one
the attempt is audited as skipped, never as sent, so the catch-up flow can
backfill it once a thread is linked.

Each trigger carries an idempotency key derived from the causing event, so a
redelivered event never produces a second notification. A successful send is also
recorded in audit history, which is checked first and which the catch-up flow uses
to decide whether a notification was ever sent.

Staged notifications (shipped < out_for_delivery < delivered) share one
cancellation key per shipment: a later stage cancels an outstanding earlier run,
and an earlier stage is skipped once a later one has been sent.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from shipsync.application.audit_service import AuditService
from shipsync.constants import (
    SHIPMENT_RECIPIENT_COLLECTION,
    AuditActions,
    AuditEntityTypes,
    NotificationTypes,
)
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import ShipmentSnapshot
from shipsync.domain.notifications import TriggerOptions, superseding_types
from shipsync.ports.notification_service import NotificationService
from shipsync.ports.order_repository import OrderRepository

NO_LINKED_THREAD = "no linked customer thread"


class NotificationOutcomeStatus:
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    ALREADY_SENT = "already_sent"


@dataclass(frozen=True)
class NotificationOutcome:
    status: str
    notification_type: str
    idempotency_key: str
    workflow_run_id: str | None = None
    error: str | None = None
    skip_reason: str | None = None

    @property
    def sent(self) -> bool:
        return self.status == NotificationOutcomeStatus.SENT


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def customer_idempotency_key(event_id: str, shipment_id: int, notification_type: str) -> str:
    return f"customer:{event_id}:{shipment_id}:{notification_type}"


def customer_cancellation_key(shipment_id: int) -> str:
    return f"customer:shipment:{shipment_id}"


def build_notification_data(
    shipment: ShipmentSnapshot,
    notification_type: str,
    *,
    is_catchup: bool = False,
) -> dict[str, Any]:
    current = shipment.to_dict()
    return {
        "shipmentId": shipment.shipment_id,
        "trackingNumber": shipment.tracking_number,
        "carrier": shipment.carrier,
        "status": shipment.status,
        "poNumber": shipment.po_number,
        "supplier": shipment.supplier,
        "estimatedDelivery": current["estimated_delivery"],
        "deliveredDate": current["delivered_date"],
        "notificationType": notification_type,
        "isCatchup": is_catchup,
    }


class CustomerNotifier:
    def __init__(
        self,
        notifications: NotificationService,
        audit: AuditService,
        orders: OrderRepository,
        *,
        workflow: str,
    ) -> None:
        self._notifications = notifications
        self._audit = audit
        self._orders = orders
        self._workflow = workflow

    async def notify(
        self,
        shipment: ShipmentSnapshot,
        notification_type: str,
        *,
        idempotency_key: str,
        event_id: str | None = None,
        is_catchup: bool = False,
    ) -> NotificationOutcome:
        shipment_id = shipment.shipment_id
        audit_metadata: dict[str, Any] = {
            "notificationType": notification_type,
            "idempotencyKey": idempotency_key,
            "eventId": event_id,
        }
        if is_catchup:
            audit_metadata["isCatchup"] = True

        if await self._audit.has_successful_action(
            AuditEntityTypes.SHIPMENT,
            shipment_id,
            AuditActions.NOTIFICATION_SENT,
            {"idempotencyKey": idempotency_key},
        ):
            _log("customer_notification_already_sent", shipment_id=shipment_id, idempotency_key=idempotency_key)
            return NotificationOutcome(NotificationOutcomeStatus.ALREADY_SENT, notification_type, idempotency_key)

        thread_problem = await self._thread_problem(shipment_id)
        if thread_problem is not None:
            return await self._skip(shipment_id, notification_type, idempotency_key, thread_problem, audit_metadata)

        superseded_by = await self._sent_superseding_type(shipment_id, notification_type)
        if superseded_by is not None:
            return await self._skip(
                shipment_id, notification_type, idempotency_key, f"superseded by {superseded_by}", audit_metadata
            )

        cancellation_key = customer_cancellation_key(shipment_id)
        if notification_type in (NotificationTypes.OUT_FOR_DELIVERY, NotificationTypes.DELIVERED):
            cancelled = await self._notifications.cancel_workflow(
                self._workflow, cancellation_key, [str(shipment_id)]
            )
            if not cancelled.success:
                logger.warning("cancel of earlier notification for shipment {} failed: {}", shipment_id, cancelled.error)

        result = await self._notifications.trigger_for_object(
            self._workflow,
            SHIPMENT_RECIPIENT_COLLECTION,
            str(shipment_id),
            build_notification_data(shipment, notification_type, is_catchup=is_catchup),
            TriggerOptions(idempotency_key=idempotency_key, cancellation_key=cancellation_key),
        )

        if not result.success:
            await self._audit.record_failure(
                AuditEntityTypes.SHIPMENT,
                shipment_id,
                AuditActions.NOTIFICATION_FAILED,
                result.error or "notification trigger failed",
                audit_metadata,
            )
            logger.warning(
                "customer notification {} for shipment {} failed: {}", notification_type, shipment_id, result.error
            )
            return NotificationOutcome(
                NotificationOutcomeStatus.FAILED, notification_type, idempotency_key, error=result.error
            )

        if result.workflow_run_id:
            audit_metadata["workflowRunId"] = result.workflow_run_id
        await self._audit.record_success(
            AuditEntityTypes.SHIPMENT, shipment_id, AuditActions.NOTIFICATION_SENT, audit_metadata
        )
        _log(
            "customer_notification_sent",
            shipment_id=shipment_id,
            notification_type=notification_type,
            idempotency_key=idempotency_key,
            is_catchup=is_catchup,
        )
        return NotificationOutcome(
            NotificationOutcomeStatus.SENT,
            notification_type,
            idempotency_key,
            workflow_run_id=result.workflow_run_id,
        )

    async def _sent_superseding_type(self, shipment_id: int, notification_type: str) -> str | None:
        for later in superseding_types(notification_type):
            if await self._audit.has_successful_action(
                AuditEntityTypes.SHIPMENT,
                shipment_id,
                AuditActions.NOTIFICATION_SENT,
                {"notificationType": later},
            ):
                return later
        return None

    async def _thread_problem(self, shipment_id: int) -> str | None:
        order_number = await self._orders.find_order_number_for_shipment(shipment_id)
        if order_number is None:
            return NO_LINKED_THREAD
        thread = await self._orders.find_customer_thread(order_number)
        if thread is None or not thread.conversation_id:
            return NO_LINKED_THREAD
        if not thread.confirmed:
            return f"thread status is {thread.match_status}, not confirmed"
        return None

    async def _skip(
        self,
        shipment_id: int,
        notification_type: str,
        idempotency_key: str,
        reason: str,
        audit_metadata: dict[str, Any],
    ) -> NotificationOutcome:
        await self._audit.record_skipped(
            AuditEntityTypes.SHIPMENT,
            shipment_id,
            AuditActions.NOTIFICATION_SKIPPED,
            reason,
            audit_metadata,
        )
        _log(
            "customer_notification_skipped",
            shipment_id=shipment_id,
            notification_type=notification_type,
            reason=reason,
        )
        return NotificationOutcome(
            NotificationOutcomeStatus.SKIPPED, notification_type, idempotency_key, skip_reason=reason
        )
