"""MongoDB implementation of OrderRepository.

Reads shipments and purchase orders written by the rest of the dashboard and
owns the denormalized `orders` and `customer_threads` collections.
"""
from __future__ import annotations

from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING

from shipsync.domain.models import ShipmentSnapshot
from shipsync.domain.order import CustomerThread, OrderAggregate
from shipsync.infrastructure.persistence.mongo.connection import close_mongo_client


def _to_snapshot(doc: dict[str, Any]) -> ShipmentSnapshot:
    return ShipmentSnapshot(
        shipment_id=int(doc["shipment_id"]),
        tracking_number=str(doc.get("tracking_number", "")),
        status=str(doc.get("status", "")),
        carrier=doc.get("carrier"),
        po_number=doc.get("po_number"),
        supplier=doc.get("supplier"),
        shipped_date=doc.get("shipped_date"),
        delivered_date=doc.get("delivered_date"),
        estimated_delivery=doc.get("estimated_delivery"),
        last_checked=doc.get("last_checked"),
    )


def _to_order(doc: dict[str, Any]) -> OrderAggregate:
    return OrderAggregate(
        order_number=str(doc["order_number"]),
        computed_status=str(doc["computed_status"]),
        shipment_count=int(doc.get("shipment_count", 0)),
        delivered_count=int(doc.get("delivered_count", 0)),
        in_transit_count=int(doc.get("in_transit_count", 0)),
        pending_count=int(doc.get("pending_count", 0)),
        exception_count=int(doc.get("exception_count", 0)),
        updated_at=doc.get("updated_at"),
    )


def _to_thread(doc: dict[str, Any]) -> CustomerThread:
    return CustomerThread(
        order_number=str(doc["order_number"]),
        conversation_id=str(doc.get("conversation_id") or ""),
        match_status=str(doc.get("match_status", "")),
        linked_at=doc.get("linked_at"),
    )


class MongoOrderRepository:
    def __init__(
        self,
        shipments: AsyncIOMotorCollection,
        purchase_orders: AsyncIOMotorCollection,
        orders: AsyncIOMotorCollection,
        threads: AsyncIOMotorCollection,
        *,
        client: Any | None = None,
    ) -> None:
        self._shipments = shipments
        self._purchase_orders = purchase_orders
        self._orders = orders
        self._threads = threads
        self._client = client

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._orders.create_index("order_number", unique=True, name="uq_orders_order_number")
        await self._threads.create_index("order_number", unique=True, name="uq_customer_threads_order_number")
        await self._purchase_orders.create_index("order_number", name="idx_purchase_orders_order_number")
        await self._shipments.create_index("po_number", name="idx_shipments_po_number")

    async def find_order_number_for_shipment(self, shipment_id: int) -> str | None:
        shipment = await self._shipments.find_one({"shipment_id": int(shipment_id)}, projection={"po_number": 1})
        if not shipment or not shipment.get("po_number"):
            return None
        purchase_order = await self._purchase_orders.find_one(
            {"po_number": shipment["po_number"]}, projection={"order_number": 1}
        )
        if not purchase_order or not purchase_order.get("order_number"):
            return None
        return str(purchase_order["order_number"])

    async def list_shipments_for_order(self, order_number: str) -> list[ShipmentSnapshot]:
        po_numbers = await self._purchase_orders.distinct("po_number", {"order_number": order_number})
        if not po_numbers:
            return []
        cursor = self._shipments.find({"po_number": {"$in": po_numbers}}).sort("shipment_id", ASCENDING)
        return [_to_snapshot(doc) for doc in await cursor.to_list(length=None)]

    async def list_order_numbers(self) -> list[str]:
        values = await self._purchase_orders.distinct("order_number", {"order_number": {"$nin": [None, ""]}})
        return sorted(str(value) for value in values)

    async def get_order(self, order_number: str) -> OrderAggregate | None:
        doc = await self._orders.find_one({"order_number": order_number})
        return _to_order(doc) if doc else None

    async def upsert_order(self, order: OrderAggregate) -> None:
        await self._orders.update_one(
            {"order_number": order.order_number},
            {
                "$set": {
                    "computed_status": order.computed_status,
                    "shipment_count": order.shipment_count,
                    "delivered_count": order.delivered_count,
                    "in_transit_count": order.in_transit_count,
                    "pending_count": order.pending_count,
                    "exception_count": order.exception_count,
                    "updated_at": order.updated_at,
                },
                "$setOnInsert": {"order_number": order.order_number, "created_at": order.updated_at},
            },
            upsert=True,
        )

    async def find_customer_thread(self, order_number: str) -> CustomerThread | None:
        doc = await self._threads.find_one({"order_number": order_number})
        return _to_thread(doc) if doc else None

    async def link_customer_thread(self, thread: CustomerThread) -> None:
        await self._threads.update_one(
            {"order_number": thread.order_number},
            {
                "$set": {
                    "conversation_id": thread.conversation_id,
                    "match_status": thread.match_status,
                    "linked_at": thread.linked_at,
                },
                "$setOnInsert": {"order_number": thread.order_number},
            },
            upsert=True,
        )

    async def close(self) -> None:
        """Close underlying Mongo client when owned by this adapter."""
        if self._client is not None:
            await close_mongo_client(self._client)
