"""Status diff engine: turns a (previous, current) snapshot pair into shipment events.

Pure function, no I/O. Emission rules:
- created: only when there is no previous snapshot.
- updated: always, so downstream sync sees every metadata change.
- status.changed: previous exists and its status differs. Never on creation.
- delivered / exception: only on the edge into that status, never on a repeat.
"""
from __future__ import annotations

from typing import Any

from shipsync.constants import ShipmentTopics
from shipsync.domain.models import EventMessage, ShipmentSnapshot
from shipsync.domain.shipment_status import ShipmentStatus, normalize_status


def build_event_payload(current: ShipmentSnapshot, previous: ShipmentSnapshot | None) -> dict[str, Any]:
    return {
        "current": current.to_dict(),
        "previous": previous.to_dict() if previous is not None else None,
    }


def build_shipment_events(
    previous: ShipmentSnapshot | None,
    current: ShipmentSnapshot,
) -> list[EventMessage]:
    payload = build_event_payload(current, previous)
    events: list[EventMessage] = []

    if previous is None:
        events.append(EventMessage(topic=ShipmentTopics.CREATED, payload=payload))

    events.append(EventMessage(topic=ShipmentTopics.UPDATED, payload=payload))

    previous_status = normalize_status(previous.status) if previous is not None else None
    current_status = normalize_status(current.status)

    if previous_status is not None and previous_status != current_status:
        events.append(EventMessage(topic=ShipmentTopics.STATUS_CHANGED, payload=payload))

    if current_status == ShipmentStatus.DELIVERED and previous_status != ShipmentStatus.DELIVERED:
        events.append(EventMessage(topic=ShipmentTopics.DELIVERED, payload=payload))

    if current_status == ShipmentStatus.EXCEPTION and previous_status != ShipmentStatus.EXCEPTION:
        events.append(EventMessage(topic=ShipmentTopics.EXCEPTION, payload=payload))

    return events


def parse_event_payload(payload: dict[str, Any]) -> tuple[ShipmentSnapshot, ShipmentSnapshot | None]:
    """Inverse of build_event_payload: (current, previous)."""
    previous = payload.get("previous")
    return (
        ShipmentSnapshot.from_dict(payload["current"]),
        ShipmentSnapshot.from_dict(previous) if previous else None,
    )
