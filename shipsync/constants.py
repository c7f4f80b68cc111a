"""Pipeline-level constants shared across modules."""
from __future__ import annotations


class ShipmentTopics:
    """Fixed topic vocabulary for shipment events (durable and immediate)."""

    CREATED = "shipment.created"
    UPDATED = "shipment.updated"
    STATUS_CHANGED = "shipment.status.changed"
    DELIVERED = "shipment.delivered"
    EXCEPTION = "shipment.exception"

    ALL = (CREATED, UPDATED, STATUS_CHANGED, DELIVERED, EXCEPTION)


class DomainEvents:
    """Bus-only event names. These never go through the durable queue."""

    SHIPMENT_PO_LINKED = "shipment.po_linked"
    THREAD_LINKED = "order.thread_linked"
    ORDER_STATUS_CHANGED = "order.status_changed"


class EVENT_STATUS:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    DEAD = "DEAD"

    ACTIVE = (PENDING, PROCESSING)


# Events returned by one claim when the caller does not set a batch size.
DEFAULT_CLAIM_BATCH_SIZE = 25


class AuditEntityTypes:
    SHIPMENT = "shipment"
    ORDER = "order"
    CUSTOMER_THREAD = "customer_thread"
    NOTIFICATION = "notification"
    SYNC = "sync"


class AuditActions:
    SHIPMENT_CREATED = "shipment.created"
    SHIPMENT_STATUS_CHANGED = "shipment.status_changed"

    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_SYSTEM_SYNCED = "order_system.synced"
    ORDER_SYSTEM_SYNC_FAILED = "order_system.sync_failed"

    NOTIFICATION_SENT = "notification.sent"
    NOTIFICATION_FAILED = "notification.failed"
    NOTIFICATION_SKIPPED = "notification.skipped"


class AuditStatus:
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"


class NotificationTypes:
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    EXCEPTION = "exception"


# Recipient collection used when triggering provider workflows for a shipment object.
SHIPMENT_RECIPIENT_COLLECTION = "shipments"
