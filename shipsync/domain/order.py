"""Order aggregate domain types.

An order groups shipments (through its purchase-order numbers). Its status is
derived from the shipment statuses and stored denormalized; it is always
recomputed from scratch, never patched incrementally.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from shipsync.domain.shipment_status import ShipmentStatus, normalize_status


class OrderStatus:
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    PARTIALLY_DELIVERED = "partially_delivered"
    DELIVERED = "delivered"
    EXCEPTION = "exception"


@dataclass(frozen=True)
class OrderShipmentStats:
    total: int = 0
    delivered: int = 0
    in_transit: int = 0
    pending: int = 0
    exception: int = 0


@dataclass(frozen=True)
class OrderAggregate:
    order_number: str
    computed_status: str
    shipment_count: int
    delivered_count: int
    in_transit_count: int
    pending_count: int
    exception_count: int
    updated_at: datetime | None = None

    @staticmethod
    def from_stats(order_number: str, stats: OrderShipmentStats, updated_at: datetime | None = None) -> "OrderAggregate":
        return OrderAggregate(
            order_number=order_number,
            computed_status=compute_order_status(stats),
            shipment_count=stats.total,
            delivered_count=stats.delivered,
            in_transit_count=stats.in_transit,
            pending_count=stats.pending,
            exception_count=stats.exception,
            updated_at=updated_at,
        )


def categorize_shipment_status(status: str) -> str:
    """Map a shipment status to its stats bucket: delivered, in_transit, exception or pending."""
    normalized = normalize_status(status)
    if normalized == ShipmentStatus.DELIVERED:
        return "delivered"
    if normalized in (ShipmentStatus.IN_TRANSIT, ShipmentStatus.OUT_FOR_DELIVERY):
        return "in_transit"
    if normalized in (ShipmentStatus.EXCEPTION, ShipmentStatus.FAILED_ATTEMPT):
        return "exception"
    return "pending"


def build_shipment_stats(statuses: Iterable[str]) -> OrderShipmentStats:
    counts = {"delivered": 0, "in_transit": 0, "pending": 0, "exception": 0}
    total = 0
    for status in statuses:
        total += 1
        counts[categorize_shipment_status(status)] += 1
    return OrderShipmentStats(total=total, **counts)


def compute_order_status(stats: OrderShipmentStats) -> str:
    """Priority: exception > delivered > partially_delivered > in_transit > pending."""
    if stats.exception > 0:
        return OrderStatus.EXCEPTION
    if stats.total > 0 and stats.delivered == stats.total:
        return OrderStatus.DELIVERED
    if stats.delivered > 0:
        return OrderStatus.PARTIALLY_DELIVERED
    if stats.in_transit > 0:
        return OrderStatus.IN_TRANSIT
    return OrderStatus.PENDING


class ThreadMatchStatus:
    AUTO_MATCHED = "auto_matched"
    MANUALLY_LINKED = "manually_linked"
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"

    CONFIRMED = (AUTO_MATCHED, MANUALLY_LINKED)


@dataclass(frozen=True)
class CustomerThread:
    """The customer conversation an order's notifications are delivered into."""

    order_number: str
    conversation_id: str
    match_status: str
    linked_at: datetime | None = None

    @property
    def confirmed(self) -> bool:
        return bool(self.conversation_id) and self.match_status in ThreadMatchStatus.CONFIRMED


def thread_match_status(match_type: str) -> str:
    """A link made by hand is manually_linked; any automatic match type is auto_matched."""
    if match_type == "manual":
        return ThreadMatchStatus.MANUALLY_LINKED
    return ThreadMatchStatus.AUTO_MATCHED
