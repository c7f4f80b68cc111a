"""Notification factory: selects the NotificationService adapter from settings."""
from __future__ import annotations

from loguru import logger

from shipsync.config.settings import Settings
from shipsync.infrastructure.http.factory import create_http_client
from shipsync.infrastructure.notifications.knock import KnockNotificationService
from shipsync.infrastructure.notifications.logging_service import LoggingNotificationService
from shipsync.ports.notification_service import NotificationService


def create_notification_service(settings: Settings) -> NotificationService:
    backend = settings.notification_backend.strip().lower()

    if backend == "knock":
        if not settings.knock_api_key:
            logger.warning("KNOCK_API_KEY is not set; notifications will only be logged")
            return LoggingNotificationService()
        return KnockNotificationService(
            create_http_client(settings),
            api_key=settings.knock_api_key,
            base_url=settings.knock_base_url,
            connect_timeout_seconds=settings.notification_connect_timeout_seconds,
            read_timeout_seconds=settings.notification_read_timeout_seconds,
        )
    if backend == "logging":
        return LoggingNotificationService()
    raise ValueError(f"Unsupported notification backend: {backend}")
