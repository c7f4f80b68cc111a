"""In-memory OrderRepository for tests and local mode.

Shipments belong to an order through their PO number: shipment.po_number ->
purchase order -> order number.
"""
from __future__ import annotations

import dataclasses

from shipsync.domain.models import ShipmentSnapshot
from shipsync.domain.order import CustomerThread, OrderAggregate, ThreadMatchStatus


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self._shipments: dict[int, ShipmentSnapshot] = {}
        self._purchase_orders: dict[str, str] = {}
        self._orders: dict[str, OrderAggregate] = {}
        self._threads: dict[str, CustomerThread] = {}

    def put_shipment(self, shipment: ShipmentSnapshot) -> None:
        self._shipments[int(shipment.shipment_id)] = shipment

    def link_purchase_order(self, po_number: str, order_number: str) -> None:
        self._purchase_orders[po_number] = order_number

    def put_thread(
        self,
        order_number: str,
        conversation_id: str,
        match_status: str = ThreadMatchStatus.AUTO_MATCHED,
    ) -> None:
        self._threads[order_number] = CustomerThread(order_number, conversation_id, match_status)

    async def find_order_number_for_shipment(self, shipment_id: int) -> str | None:
        shipment = self._shipments.get(int(shipment_id))
        if shipment is None or not shipment.po_number:
            return None
        return self._purchase_orders.get(shipment.po_number)

    async def list_shipments_for_order(self, order_number: str) -> list[ShipmentSnapshot]:
        po_numbers = {po for po, order in self._purchase_orders.items() if order == order_number}
        return [
            shipment
            for _, shipment in sorted(self._shipments.items())
            if shipment.po_number in po_numbers
        ]

    async def list_order_numbers(self) -> list[str]:
        return sorted(set(self._purchase_orders.values()))

    async def get_order(self, order_number: str) -> OrderAggregate | None:
        return self._orders.get(order_number)

    async def upsert_order(self, order: OrderAggregate) -> None:
        self._orders[order.order_number] = dataclasses.replace(order)

    async def find_customer_thread(self, order_number: str) -> CustomerThread | None:
        return self._threads.get(order_number)

    async def link_customer_thread(self, thread: CustomerThread) -> None:
        self._threads[thread.order_number] = dataclasses.replace(thread)

    async def close(self) -> None:
        return
