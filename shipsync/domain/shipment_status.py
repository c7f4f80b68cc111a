"""Shipment status vocabulary and the transition state machine.

`delivered` is terminal: once reached, no further transition is accepted.
`exception` is reachable from every non-terminal status. Re-observing the same
status is always allowed (metadata-only updates).
"""
from __future__ import annotations


class ShipmentStatus:
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    EXCEPTION = "exception"
    FAILED_ATTEMPT = "failed_attempt"

    ALL = (PENDING, IN_TRANSIT, OUT_FOR_DELIVERY, DELIVERED, EXCEPTION, FAILED_ATTEMPT)


TERMINAL_STATUSES = frozenset({ShipmentStatus.DELIVERED})

_TRANSITIONS: dict[str, frozenset[str]] = {
    ShipmentStatus.PENDING: frozenset({ShipmentStatus.IN_TRANSIT, ShipmentStatus.EXCEPTION}),
    ShipmentStatus.IN_TRANSIT: frozenset(
        {ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.EXCEPTION, ShipmentStatus.DELIVERED}
    ),
    ShipmentStatus.OUT_FOR_DELIVERY: frozenset(
        {ShipmentStatus.DELIVERED, ShipmentStatus.EXCEPTION, ShipmentStatus.FAILED_ATTEMPT}
    ),
    ShipmentStatus.FAILED_ATTEMPT: frozenset({ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.EXCEPTION}),
    # Recovery once the carrier resolves the exception.
    ShipmentStatus.EXCEPTION: frozenset(
        {ShipmentStatus.IN_TRANSIT, ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.DELIVERED}
    ),
    ShipmentStatus.DELIVERED: frozenset(),
}

_ALIASES = {
    "out for delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "delivery_exception": ShipmentStatus.EXCEPTION,
    "in transit": ShipmentStatus.IN_TRANSIT,
}


class InvalidStatusTransitionError(Exception):
    """Raised when a shipment status change is not allowed by the state machine."""

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"invalid shipment status transition: {from_status} -> {to_status}")
        self.from_status = from_status
        self.to_status = to_status


def normalize_status(value: str | None) -> str:
    """Lower-case and resolve known carrier aliases. Unknown values are returned lower-cased."""
    normalized = (value or "").strip().lower()
    return _ALIASES.get(normalized, normalized)


def is_terminal(status: str) -> bool:
    return normalize_status(status) in TERMINAL_STATUSES


def can_transition(from_status: str, to_status: str) -> bool:
    source = normalize_status(from_status)
    target = normalize_status(to_status)
    if source == target:
        return True
    if source in TERMINAL_STATUSES:
        return False
    if target == ShipmentStatus.EXCEPTION:
        return True
    return target in _TRANSITIONS.get(source, frozenset())


def validate_transition(from_status: str, to_status: str) -> None:
    if not can_transition(from_status, to_status):
        raise InvalidStatusTransitionError(normalize_status(from_status), normalize_status(to_status))
