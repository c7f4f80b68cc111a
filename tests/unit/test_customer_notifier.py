"""Unit tests for CustomerNotifier idempotency, supersession and audit recording."""
from __future__ import annotations

import asyncio

from shipsync.application.audit_service import AuditService
from shipsync.application.customer_notifier import (
    NO_LINKED_THREAD,
    CustomerNotifier,
    NotificationOutcomeStatus,
    customer_cancellation_key,
)
from shipsync.constants import (
    SHIPMENT_RECIPIENT_COLLECTION,
    AuditActions,
    AuditEntityTypes,
    AuditStatus,
    NotificationTypes,
)
from shipsync.domain.notifications import TriggerOptions
from shipsync.domain.order import ThreadMatchStatus
from shipsync.domain.shipment_status import ShipmentStatus
from shipsync.infrastructure.persistence.inmemory.audit_repository import InMemoryAuditRepository
from shipsync.infrastructure.persistence.inmemory.order_repository import InMemoryOrderRepository
from tests.conftest import FixedClock, RecordingNotificationService, make_snapshot

WORKFLOW = "customer-tracking-update"


def _orders(thread_status: str | None = ThreadMatchStatus.AUTO_MATCHED) -> InMemoryOrderRepository:
    orders = InMemoryOrderRepository()
    orders.link_purchase_order("PO-100", "ORD-1")
    for shipment_id in (1, 7):
        orders.put_shipment(make_snapshot(ShipmentStatus.PENDING, shipment_id=shipment_id))
    if thread_status is not None:
        orders.put_thread("ORD-1", "conv-1", thread_status)
    return orders


def _notifier(
    notifications: RecordingNotificationService,
    clock: FixedClock,
    orders: InMemoryOrderRepository | None = None,
):
    repository = InMemoryAuditRepository(clock=clock)
    notifier = CustomerNotifier(notifications, AuditService(repository), orders or _orders(), workflow=WORKFLOW)
    return notifier, repository


def test_same_idempotency_key_twice_records_one_outbound_notification(notifications):
    async def _run() -> None:
        options = TriggerOptions(idempotency_key="customer:evt-1:1:shipped")
        await notifications.trigger_for_object(WORKFLOW, SHIPMENT_RECIPIENT_COLLECTION, "1", {"x": 1}, options)
        await notifications.trigger_for_object(WORKFLOW, SHIPMENT_RECIPIENT_COLLECTION, "1", {"x": 1}, options)

    asyncio.run(_run())

    assert len(notifications.calls) == 2
    assert len(notifications.sent) == 1


def test_replayed_event_does_not_trigger_twice(notifications, clock):
    async def _run():
        notifier, _ = _notifier(notifications, clock)
        shipment = make_snapshot(ShipmentStatus.IN_TRANSIT)
        first = await notifier.notify(
            shipment, NotificationTypes.SHIPPED, idempotency_key="customer:evt-1:1:shipped", event_id="evt-1"
        )
        second = await notifier.notify(
            shipment, NotificationTypes.SHIPPED, idempotency_key="customer:evt-1:1:shipped", event_id="evt-1"
        )
        return first, second

    first, second = asyncio.run(_run())

    assert first.status == NotificationOutcomeStatus.SENT
    assert second.status == NotificationOutcomeStatus.ALREADY_SENT
    assert len(notifications.calls) == 1


def test_sent_notification_is_audited_with_type_and_key(notifications, clock):
    async def _run():
        notifier, repository = _notifier(notifications, clock)
        await notifier.notify(
            make_snapshot(ShipmentStatus.IN_TRANSIT, shipment_id=7),
            NotificationTypes.SHIPPED,
            idempotency_key="customer:evt-9:7:shipped",
            event_id="evt-9",
        )
        return repository.entries

    [entry] = asyncio.run(_run())

    assert entry.entity_type == AuditEntityTypes.SHIPMENT
    assert entry.entity_id == "7"
    assert entry.action == AuditActions.NOTIFICATION_SENT
    assert entry.status == AuditStatus.SUCCESS
    assert entry.metadata["notificationType"] == NotificationTypes.SHIPPED
    assert entry.metadata["idempotencyKey"] == "customer:evt-9:7:shipped"
    assert entry.metadata["eventId"] == "evt-9"
    call = notifications.calls[0]
    assert call.recipients == [f"{SHIPMENT_RECIPIENT_COLLECTION}:7"]
    assert call.options.cancellation_key == customer_cancellation_key(7)
    assert call.data["isCatchup"] is False


def test_later_stage_cancels_outstanding_earlier_run(notifications, clock):
    async def _run() -> None:
        notifier, _ = _notifier(notifications, clock)
        await notifier.notify(
            make_snapshot(ShipmentStatus.OUT_FOR_DELIVERY),
            NotificationTypes.OUT_FOR_DELIVERY,
            idempotency_key="customer:evt-2:1:out_for_delivery",
        )

    asyncio.run(_run())

    [cancel] = notifications.cancellations
    assert cancel.cancellation_key == customer_cancellation_key(1)
    assert cancel.workflow == WORKFLOW


def test_earlier_stage_is_skipped_once_later_stage_was_sent(notifications, clock):
    async def _run():
        notifier, repository = _notifier(notifications, clock)
        await notifier.notify(
            make_snapshot(ShipmentStatus.DELIVERED), NotificationTypes.DELIVERED, idempotency_key="k-delivered"
        )
        late = await notifier.notify(
            make_snapshot(ShipmentStatus.IN_TRANSIT), NotificationTypes.SHIPPED, idempotency_key="k-shipped"
        )
        return late, repository.entries

    late, entries = asyncio.run(_run())

    assert late.status == NotificationOutcomeStatus.SKIPPED
    assert notifications.sent_types() == [NotificationTypes.DELIVERED]
    skipped = [entry for entry in entries if entry.action == AuditActions.NOTIFICATION_SKIPPED]
    assert len(skipped) == 1
    assert skipped[0].metadata["skipReason"] == "superseded by delivered"


def test_provider_failure_is_returned_and_audited_not_raised(clock):
    notifications = RecordingNotificationService(fail_with="provider returned 503")

    async def _run():
        notifier, repository = _notifier(notifications, clock)
        outcome = await notifier.notify(
            make_snapshot(ShipmentStatus.EXCEPTION), NotificationTypes.EXCEPTION, idempotency_key="k-exception"
        )
        return outcome, repository.entries

    outcome, entries = asyncio.run(_run())

    assert outcome.status == NotificationOutcomeStatus.FAILED
    assert outcome.error == "provider returned 503"
    assert [entry.action for entry in entries] == [AuditActions.NOTIFICATION_FAILED]
    assert entries[0].error == "provider returned 503"


def test_no_linked_thread_is_audited_as_skipped_not_sent(notifications, clock):
    async def _run():
        notifier, repository = _notifier(notifications, clock, _orders(thread_status=None))
        outcome = await notifier.notify(
            make_snapshot(ShipmentStatus.DELIVERED), NotificationTypes.DELIVERED, idempotency_key="k-delivered"
        )
        return outcome, repository.entries

    outcome, entries = asyncio.run(_run())

    assert outcome.status == NotificationOutcomeStatus.SKIPPED
    assert outcome.skip_reason == NO_LINKED_THREAD
    assert notifications.calls == []
    assert notifications.cancellations == []
    [entry] = entries
    assert entry.action == AuditActions.NOTIFICATION_SKIPPED
    assert entry.status == AuditStatus.SKIPPED
    assert entry.metadata["skipReason"] == NO_LINKED_THREAD
    assert entry.metadata["notificationType"] == NotificationTypes.DELIVERED


def test_unconfirmed_thread_is_skipped(notifications, clock):
    async def _run():
        notifier, _ = _notifier(notifications, clock, _orders(thread_status=ThreadMatchStatus.PENDING_REVIEW))
        return await notifier.notify(
            make_snapshot(ShipmentStatus.IN_TRANSIT), NotificationTypes.SHIPPED, idempotency_key="k-shipped"
        )

    outcome = asyncio.run(_run())

    assert outcome.status == NotificationOutcomeStatus.SKIPPED
    assert outcome.skip_reason == "thread status is pending_review, not confirmed"
    assert notifications.calls == []


def test_shipment_without_order_is_skipped(notifications, clock):
    async def _run():
        notifier, _ = _notifier(notifications, clock)
        return await notifier.notify(
            make_snapshot(ShipmentStatus.IN_TRANSIT, shipment_id=99, po_number=None),
            NotificationTypes.SHIPPED,
            idempotency_key="k-orphan",
        )

    outcome = asyncio.run(_run())

    assert outcome.skip_reason == NO_LINKED_THREAD
    assert notifications.calls == []
