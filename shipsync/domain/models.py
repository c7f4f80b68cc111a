"""Domain models for shipment snapshots and queued events."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from shipsync.constants import EVENT_STATUS


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class ShipmentSnapshot:
    """Immutable projection of a shipment, used only for diffing."""

    shipment_id: int
    tracking_number: str
    status: str
    carrier: str | None = None
    po_number: str | None = None
    supplier: str | None = None
    shipped_date: datetime | None = None
    delivered_date: datetime | None = None
    estimated_delivery: datetime | None = None
    last_checked: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dict for event payloads (dates as ISO-8601 strings)."""
        return {
            "shipment_id": int(self.shipment_id),
            "tracking_number": self.tracking_number,
            "status": self.status,
            "carrier": self.carrier,
            "po_number": self.po_number,
            "supplier": self.supplier,
            "shipped_date": _iso(self.shipped_date),
            "delivered_date": _iso(self.delivered_date),
            "estimated_delivery": _iso(self.estimated_delivery),
            "last_checked": _iso(self.last_checked),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ShipmentSnapshot":
        return ShipmentSnapshot(
            shipment_id=int(data["shipment_id"]),
            tracking_number=str(data.get("tracking_number", "")),
            status=str(data.get("status", "")),
            carrier=data.get("carrier"),
            po_number=data.get("po_number"),
            supplier=data.get("supplier"),
            shipped_date=_parse_iso(data.get("shipped_date")),
            delivered_date=_parse_iso(data.get("delivered_date")),
            estimated_delivery=_parse_iso(data.get("estimated_delivery")),
            last_checked=_parse_iso(data.get("last_checked")),
        )


@dataclass(frozen=True)
class EventMessage:
    """Producer-created event, not yet persisted."""

    topic: str
    payload: dict[str, Any]
    scheduled_for: datetime | None = None
    dedupe_key: str | None = None
    max_attempts: int | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class QueuedEvent:
    """Persisted event. Only the queue mutates attempts, locks and status."""

    id: str
    topic: str
    payload: dict[str, Any]
    attempts: int
    max_attempts: int
    available_at: datetime
    locked_at: datetime | None = None
    last_error: str | None = None
    status: str = EVENT_STATUS.PENDING
    dedupe_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(frozen=True)
class ClaimOptions:
    """batch_size defaults to DEFAULT_CLAIM_BATCH_SIZE; visibility_timeout_ms to the queue default."""

    batch_size: int | None = None
    visibility_timeout_ms: int | None = None


@dataclass(frozen=True)
class DispatchResult:
    processed: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "skipped": self.skipped, "errors": self.errors}
