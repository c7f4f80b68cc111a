"""Pipeline composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle, register event handlers.
"""
from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from shipsync.application.audit_service import AuditService
from shipsync.application.customer_notifier import CustomerNotifier
from shipsync.application.events.dispatcher import EventDispatcher
from shipsync.application.events.domain_bus import DomainEventBus
from shipsync.application.events.registry import HandlerRegistry
from shipsync.application.events.router import EventRouter
from shipsync.application.handlers.audit_logging import register_audit_logging
from shipsync.application.handlers.catchup_notifications import CatchupNotifier, register_catchup_notifications
from shipsync.application.handlers.customer_notifications import register_customer_notifications
from shipsync.application.handlers.internal_notifications import register_internal_notifications
from shipsync.application.handlers.order_status_sync import register_order_status_sync
from shipsync.application.handlers.order_system_sync import register_order_system_sync
from shipsync.application.order_sync_service import RecomputingOrderSyncService
from shipsync.application.shipment_change_service import ShipmentChangeService
from shipsync.config.settings import Settings
from shipsync.core import SERVICE_NAME
from shipsync.infrastructure.notifications.factory import create_notification_service
from shipsync.infrastructure.persistence.factory import PersistenceAdapters, create_persistence
from shipsync.ports.notification_service import NotificationService
from shipsync.ports.order_sync import OrderSystemSync


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class PipelineDependencies:
    """Holds wired pipeline dependencies and their lifecycle.

    `persistence` and `notification_service` override the settings-selected adapters.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        persistence: PersistenceAdapters | None = None,
        notification_service: NotificationService | None = None,
        order_system_sync: OrderSystemSync | None = None,
    ) -> None:
        self._settings = settings
        self._persistence = persistence
        self._notification_service = notification_service
        self._order_system_sync = order_system_sync
        self._bus: DomainEventBus | None = None
        self._registry: HandlerRegistry | None = None
        self._router: EventRouter | None = None
        self._dispatcher: EventDispatcher | None = None
        self._audit_service: AuditService | None = None
        self._order_sync: RecomputingOrderSyncService | None = None
        self._shipment_changes: ShipmentChangeService | None = None
        self._catchup: CatchupNotifier | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def persistence(self) -> PersistenceAdapters:
        if self._persistence is None:
            raise RuntimeError("persistence is not initialized")
        return self._persistence

    @property
    def notification_service(self) -> NotificationService:
        if self._notification_service is None:
            raise RuntimeError("notification_service is not initialized")
        return self._notification_service

    @property
    def bus(self) -> DomainEventBus:
        if self._bus is None:
            raise RuntimeError("bus is not initialized")
        return self._bus

    @property
    def router(self) -> EventRouter:
        if self._router is None:
            raise RuntimeError("router is not initialized")
        return self._router

    @property
    def dispatcher(self) -> EventDispatcher:
        if self._dispatcher is None:
            raise RuntimeError("dispatcher is not initialized")
        return self._dispatcher

    @property
    def audit_service(self) -> AuditService:
        if self._audit_service is None:
            raise RuntimeError("audit_service is not initialized")
        return self._audit_service

    @property
    def order_sync(self) -> RecomputingOrderSyncService:
        if self._order_sync is None:
            raise RuntimeError("order_sync is not initialized")
        return self._order_sync

    @property
    def shipment_changes(self) -> ShipmentChangeService:
        if self._shipment_changes is None:
            raise RuntimeError("shipment_changes is not initialized")
        return self._shipment_changes

    @property
    def catchup(self) -> CatchupNotifier:
        if self._catchup is None:
            raise RuntimeError("catchup is not initialized")
        return self._catchup

    async def connect(self) -> None:
        settings = self._settings
        if self._persistence is None:
            self._persistence = await create_persistence(settings)
        if self._notification_service is None:
            self._notification_service = create_notification_service(settings)

        self._bus = DomainEventBus()
        self._registry = HandlerRegistry()
        self._router = EventRouter(self._bus, self._registry, self._persistence.event_queue)
        self._dispatcher = EventDispatcher(
            self._persistence.event_queue,
            self._registry,
            batch_size=settings.dispatch_batch_size,
            visibility_timeout_ms=settings.visibility_timeout_ms,
        )

        self._audit_service = AuditService(self._persistence.audit_repository)
        self._order_sync = RecomputingOrderSyncService(self._persistence.order_repository, router=self._router)
        self._shipment_changes = ShipmentChangeService(self._router)
        customer_notifier = CustomerNotifier(
            self._notification_service,
            self._audit_service,
            self._persistence.order_repository,
            workflow=settings.customer_notification_workflow,
        )
        self._catchup = CatchupNotifier(self._persistence.order_repository, self._audit_service, customer_notifier)

        self._unsubscribers = [
            *register_audit_logging(self._router, self._audit_service),
            *register_customer_notifications(self._router, customer_notifier),
            *register_internal_notifications(
                self._router,
                self._notification_service,
                self._audit_service,
                workflow=settings.internal_notification_workflow,
                recipient_ids=settings.internal_recipient_ids,
            ),
            *register_order_status_sync(self._router, self._order_sync),
            *register_catchup_notifications(self._router, self._catchup),
        ]
        if self._order_system_sync is not None:
            self._unsubscribers.extend(
                register_order_system_sync(self._router, self._order_system_sync, self._audit_service)
            )

        self._connected = True
        _log("pipeline_connected", topics=self._registry.list_topics())

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if self._bus is not None:
            await self._bus.wait_idle()
            self._bus.clear()

        if self._notification_service is not None:
            try:
                await self._notification_service.close()
            except Exception as exc:
                logger.warning("notification service close failed: {}", exc)
            self._notification_service = None

        if self._persistence is not None:
            for name, adapter in (
                ("order repository", self._persistence.order_repository),
                ("audit repository", self._persistence.audit_repository),
                ("event queue", self._persistence.event_queue),
            ):
                try:
                    await adapter.close()
                except Exception as exc:
                    logger.warning("{} close failed: {}", name, exc)

        self._persistence = None
        self._bus = None
        self._registry = None
        self._router = None
        self._dispatcher = None
        self._audit_service = None
        self._order_sync = None
        self._shipment_changes = None
        self._catchup = None
        self._connected = False


def create_pipeline_dependencies(
    settings: Settings | None = None,
    *,
    order_system_sync: OrderSystemSync | None = None,
) -> PipelineDependencies:
    return PipelineDependencies(settings=settings or Settings(), order_system_sync=order_system_sync)
