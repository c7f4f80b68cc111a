from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import pytest

from shipsync.domain.models import ShipmentSnapshot
from shipsync.domain.notifications import NotificationResult, TriggerOptions
from shipsync.ports.order_sync import OrderSystemSyncResult


class FixedClock:
    """Injectable clock; time only moves when advance() is called."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, *, seconds: float = 0, milliseconds: float = 0) -> None:
        self.now = self.now + timedelta(seconds=seconds, milliseconds=milliseconds)


@dataclass
class TriggerCall:
    workflow: str
    recipients: list[str]
    data: dict[str, Any]
    options: TriggerOptions | None


@dataclass
class CancelCall:
    workflow: str
    cancellation_key: str
    recipient_ids: list[str]


class RecordingNotificationService:
    """Implements NotificationService for tests.

    Mirrors a provider honouring idempotency keys: every call lands in `calls`, but
    only the first call per key is recorded as an outbound notification in `sent`.
    """

    def __init__(self, *, fail_with: str | None = None) -> None:
        self.fail_with = fail_with
        self.calls: list[TriggerCall] = []
        self.sent: list[TriggerCall] = []
        self.cancellations: list[CancelCall] = []
        self._seen_keys: set[str] = set()
        self.closed = False

    async def trigger_for_object(
        self,
        workflow: str,
        collection: str,
        object_id: str,
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult:
        return self._record(TriggerCall(workflow, [f"{collection}:{object_id}"], data, options))

    async def trigger_for_users(
        self,
        workflow: str,
        user_ids: Sequence[str],
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult:
        return self._record(TriggerCall(workflow, list(user_ids), data, options))

    async def cancel_workflow(
        self,
        workflow: str,
        cancellation_key: str,
        recipient_ids: Sequence[str],
    ) -> NotificationResult:
        self.cancellations.append(CancelCall(workflow, cancellation_key, list(recipient_ids)))
        return NotificationResult(success=True)

    async def close(self) -> None:
        self.closed = True

    def sent_types(self, workflow: str | None = None) -> list[str]:
        return [
            call.data["notificationType"]
            for call in self.sent
            if workflow is None or call.workflow == workflow
        ]

    def _record(self, call: TriggerCall) -> NotificationResult:
        self.calls.append(call)
        if self.fail_with is not None:
            return NotificationResult(success=False, error=self.fail_with)
        key = call.options.idempotency_key if call.options else None
        if key is None or key not in self._seen_keys:
            if key is not None:
                self._seen_keys.add(key)
            self.sent.append(call)
        return NotificationResult(success=True, workflow_run_id=f"run-{len(self.calls)}")


@dataclass
class FakeOrderSystemSync:
    """Implements OrderSystemSync; fails the first `failures` calls."""

    failures: int = 0
    synced: list[int] = field(default_factory=list)

    async def sync_shipment(self, shipment_id: int) -> OrderSystemSyncResult:
        if self.failures > 0:
            self.failures -= 1
            return OrderSystemSyncResult(success=False, error="order system unavailable")
        self.synced.append(shipment_id)
        return OrderSystemSyncResult(success=True)


def make_snapshot(
    status: str,
    *,
    shipment_id: int = 1,
    tracking_number: str = "1Z999AA10123456784",
    carrier: str | None = "ups",
    po_number: str | None = "PO-100",
    supplier: str | None = "Acme Supply",
) -> ShipmentSnapshot:
    return ShipmentSnapshot(
        shipment_id=shipment_id,
        tracking_number=tracking_number,
        status=status,
        carrier=carrier,
        po_number=po_number,
        supplier=supplier,
    )


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def notifications() -> RecordingNotificationService:
    return RecordingNotificationService()
