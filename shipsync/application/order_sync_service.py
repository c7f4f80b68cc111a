"""Recomputes the denormalized order aggregate from its shipments.

Every call rebuilds the aggregate from the current shipment statuses and upserts
it, so redundant or concurrent calls converge on the same result. A change of the
computed status is published as `order.status_changed`.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from shipsync.constants import DomainEvents
from shipsync.core import SERVICE_NAME
from shipsync.domain.models import EventMessage
from shipsync.domain.order import OrderAggregate, build_shipment_stats
from shipsync.ports.order_repository import OrderRepository
from shipsync.ports.order_sync import OrderSyncResult

if TYPE_CHECKING:
    from shipsync.application.events.router import EventRouter


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecomputingOrderSyncService:
    def __init__(
        self,
        repository: OrderRepository,
        *,
        router: "EventRouter | None" = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._router = router
        self._clock = clock

    async def sync_by_shipment_id(self, shipment_id: int) -> OrderAggregate | None:
        order_number = await self._repository.find_order_number_for_shipment(int(shipment_id))
        if order_number is None:
            _log("order_sync_no_order", shipment_id=shipment_id)
            return None
        return await self.sync_order(order_number)

    async def sync_order(self, order_number: str, *, trigger: str = "shipment_update") -> OrderAggregate | None:
        shipments = await self._repository.list_shipments_for_order(order_number)
        if not shipments:
            return None

        existing = await self._repository.get_order(order_number)
        aggregate = OrderAggregate.from_stats(
            order_number,
            build_shipment_stats(shipment.status for shipment in shipments),
            updated_at=self._clock(),
        )
        await self._repository.upsert_order(aggregate)

        old_status = existing.computed_status if existing is not None else None
        if old_status != aggregate.computed_status:
            _log(
                "order_status_changed",
                order_number=order_number,
                old_status=old_status,
                new_status=aggregate.computed_status,
            )
            if self._router is not None:
                await self._router.publish(
                    [
                        EventMessage(
                            topic=DomainEvents.ORDER_STATUS_CHANGED,
                            payload={
                                "orderNumber": order_number,
                                "oldStatus": old_status,
                                "newStatus": aggregate.computed_status,
                                "trigger": trigger,
                            },
                        )
                    ]
                )
        return aggregate

    async def sync_all(self) -> OrderSyncResult:
        created = 0
        updated = 0
        total = 0
        for order_number in await self._repository.list_order_numbers():
            existed = await self._repository.get_order(order_number) is not None
            aggregate = await self.sync_order(order_number, trigger="full_sync")
            if aggregate is None:
                continue
            total += 1
            if existed:
                updated += 1
            else:
                created += 1
        _log("order_sync_all_completed", created=created, updated=updated, total=total)
        return OrderSyncResult(created=created, updated=updated, total=total)
