"""Port: read shipments by order, persist the denormalized order aggregate and
track the customer thread each order is linked to."""
from __future__ import annotations

from typing import Protocol

from shipsync.domain.models import ShipmentSnapshot
from shipsync.domain.order import CustomerThread, OrderAggregate


class OrderRepository(Protocol):
    async def find_order_number_for_shipment(self, shipment_id: int) -> str | None: ...

    async def list_shipments_for_order(self, order_number: str) -> list[ShipmentSnapshot]: ...

    async def list_order_numbers(self) -> list[str]: ...

    async def get_order(self, order_number: str) -> OrderAggregate | None: ...

    async def upsert_order(self, order: OrderAggregate) -> None: ...

    async def find_customer_thread(self, order_number: str) -> CustomerThread | None: ...

    async def link_customer_thread(self, thread: CustomerThread) -> None:
        """Upsert by order number; linking again replaces the previous thread."""
        ...

    async def close(self) -> None: ...
