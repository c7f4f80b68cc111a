"""Ports: order aggregate recomputation and the third-party order system."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from shipsync.domain.order import OrderAggregate


@dataclass(frozen=True)
class OrderSyncResult:
    created: int
    updated: int
    total: int


@dataclass(frozen=True)
class OrderSystemSyncResult:
    success: bool
    error: str | None = None


class OrderSyncService(Protocol):
    """Full recomputation only, so redundant and concurrent calls are safe."""

    async def sync_by_shipment_id(self, shipment_id: int) -> OrderAggregate | None: ...

    async def sync_order(self, order_number: str) -> OrderAggregate | None: ...

    async def sync_all(self) -> OrderSyncResult: ...


class OrderSystemSync(Protocol):
    """Pushes a shipment's data to the external order-management system."""

    async def sync_shipment(self, shipment_id: int) -> OrderSystemSyncResult: ...
