"""Customer notification types and their mapping from shipment statuses."""
from __future__ import annotations

from dataclasses import dataclass

from shipsync.constants import NotificationTypes
from shipsync.domain.shipment_status import ShipmentStatus, normalize_status


@dataclass(frozen=True)
class TriggerOptions:
    """Per-trigger options passed to the notification provider.

    idempotency_key: replaying the same key triggers at most one notification.
    cancellation_key: lets a newer trigger supersede an outstanding run for the same shipment.
    """

    idempotency_key: str | None = None
    cancellation_key: str | None = None
    tenant: str | None = None
    actor: str | None = None


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    workflow_run_id: str | None = None
    error: str | None = None


# Delivery progress stages. A later stage supersedes every earlier one; exception is not staged.
_STAGES = {
    NotificationTypes.SHIPPED: 1,
    NotificationTypes.OUT_FOR_DELIVERY: 2,
    NotificationTypes.DELIVERED: 3,
}

# Highest relevance first.
CATCHUP_PRIORITY: tuple[tuple[str, frozenset[str]], ...] = (
    (NotificationTypes.EXCEPTION, frozenset({ShipmentStatus.EXCEPTION})),
    (NotificationTypes.DELIVERED, frozenset({ShipmentStatus.DELIVERED})),
    (NotificationTypes.OUT_FOR_DELIVERY, frozenset({ShipmentStatus.OUT_FOR_DELIVERY})),
    (NotificationTypes.SHIPPED, frozenset({ShipmentStatus.IN_TRANSIT, "shipped"})),
)


def notification_type_for_transition(status: str, previous_status: str | None) -> str | None:
    """Notification for a status change, or None when the change is not customer-facing.

    `shipped` is only sent for the first movement out of pending (or for a new shipment).
    """
    current = normalize_status(status)
    previous = normalize_status(previous_status) if previous_status else None

    if current == ShipmentStatus.DELIVERED:
        return NotificationTypes.DELIVERED
    if current == ShipmentStatus.OUT_FOR_DELIVERY:
        return NotificationTypes.OUT_FOR_DELIVERY
    if current == ShipmentStatus.EXCEPTION:
        return NotificationTypes.EXCEPTION
    if current in (ShipmentStatus.IN_TRANSIT, "shipped") and previous in (None, ShipmentStatus.PENDING):
        return NotificationTypes.SHIPPED
    return None


def catchup_notification_type(status: str) -> str | None:
    """Highest-relevance notification for a shipment's current status; None for pending."""
    current = normalize_status(status)
    for notification_type, statuses in CATCHUP_PRIORITY:
        if current in statuses:
            return notification_type
    return None


def superseding_types(notification_type: str) -> tuple[str, ...]:
    """Stages that, once sent, make `notification_type` obsolete."""
    stage = _STAGES.get(notification_type)
    if stage is None:
        return ()
    return tuple(name for name, other in _STAGES.items() if other > stage)
