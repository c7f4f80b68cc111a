"""Catch-up notifications for orders whose customer thread was linked late.

Status changes that happened before a thread existed were audited as skipped,
not sent. When a thread is linked it is recorded first, then each shipment of
the order gets at most one backfilled notification for its current status.
Whether it is still needed is decided by audit history, since there is no
original queue event to dedupe against.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from shipsync.application.audit_service import AuditService
from shipsync.application.customer_notifier import CustomerNotifier
from shipsync.application.events.router import DeliveryMode, EventRouter
from shipsync.constants import AuditActions, AuditEntityTypes, DomainEvents
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import EventMessage, QueuedEvent
from shipsync.domain.notifications import catchup_notification_type
from shipsync.domain.order import CustomerThread, thread_match_status
from shipsync.ports.order_repository import OrderRepository


@dataclass(frozen=True)
class CatchupResult:
    order_number: str
    triggered: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def thread_linked_message(order_number: str, conversation_id: str, match_type: str) -> EventMessage:
    return EventMessage(
        topic=DomainEvents.THREAD_LINKED,
        payload={"orderNumber": order_number, "conversationId": conversation_id, "matchType": match_type},
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatchupNotifier:
    def __init__(
        self,
        orders: OrderRepository,
        audit: AuditService,
        notifier: CustomerNotifier,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._orders = orders
        self._audit = audit
        self._notifier = notifier
        self._clock = clock

    async def on_thread_linked(self, event: QueuedEvent) -> None:
        payload = event.payload
        order_number = str(payload["orderNumber"])
        await self._orders.link_customer_thread(
            CustomerThread(
                order_number=order_number,
                conversation_id=str(payload["conversationId"]),
                match_status=thread_match_status(str(payload.get("matchType", ""))),
                linked_at=self._clock(),
            )
        )
        await self.notify_order(order_number)

    async def notify_order(self, order_number: str) -> CatchupResult:
        result = CatchupResult(order_number=order_number)
        for shipment in await self._orders.list_shipments_for_order(order_number):
            notification_type = catchup_notification_type(shipment.status)
            if notification_type is None:
                result.skipped.append(shipment.shipment_id)
                continue

            if await self._audit.has_successful_action(
                AuditEntityTypes.SHIPMENT,
                shipment.shipment_id,
                AuditActions.NOTIFICATION_SENT,
                {"notificationType": notification_type},
            ):
                result.skipped.append(shipment.shipment_id)
                continue

            idempotency_key = (
                f"catchup:{order_number}:{shipment.shipment_id}:{notification_type}:{uuid.uuid4().hex}"
            )
            outcome = await self._notifier.notify(
                shipment,
                notification_type,
                idempotency_key=idempotency_key,
                is_catchup=True,
            )
            if outcome.sent:
                result.triggered.append(shipment.shipment_id)
            elif outcome.error is not None:
                result.failed.append(shipment.shipment_id)
            else:
                result.skipped.append(shipment.shipment_id)

        _log(
            "catchup_notifications_completed",
            order_number=order_number,
            triggered=len(result.triggered),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result


def register_catchup_notifications(router: EventRouter, catchup: CatchupNotifier) -> list[Callable[[], None]]:
    return [
        router.subscribe(
            DomainEvents.THREAD_LINKED,
            catchup.on_thread_linked,
            mode=DeliveryMode.IMMEDIATE,
            name="catchup_notifications.thread_linked",
        )
    ]
