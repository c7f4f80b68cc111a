"""NotificationService that only logs. Used for local runs and when no provider key is set.

Repeated idempotency keys are reported as success without logging a second send.
"""
from __future__ import annotations

import uuid
from typing import Any, Sequence

from loguru import logger

from shipsync.core import SERVICE_NAME
from shipsync.domain.notifications import NotificationResult, TriggerOptions


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class LoggingNotificationService:
    def __init__(self) -> None:
        self._runs_by_key: dict[str, str] = {}

    async def trigger_for_object(
        self,
        workflow: str,
        collection: str,
        object_id: str,
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult:
        return self._record(workflow, [f"{collection}:{object_id}"], data, options)

    async def trigger_for_users(
        self,
        workflow: str,
        user_ids: Sequence[str],
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult:
        return self._record(workflow, [str(user_id) for user_id in user_ids], data, options)

    async def cancel_workflow(
        self,
        workflow: str,
        cancellation_key: str,
        recipient_ids: Sequence[str],
    ) -> NotificationResult:
        _log("notification_cancel_logged", workflow=workflow, cancellation_key=cancellation_key)
        return NotificationResult(success=True)

    async def close(self) -> None:
        return

    def _record(
        self,
        workflow: str,
        recipients: list[str],
        data: dict[str, Any],
        options: TriggerOptions | None,
    ) -> NotificationResult:
        key = options.idempotency_key if options else None
        if key and key in self._runs_by_key:
            return NotificationResult(success=True, workflow_run_id=self._runs_by_key[key])
        run_id = uuid.uuid4().hex
        if key:
            self._runs_by_key[key] = run_id
        _log(
            "notification_logged",
            workflow=workflow,
            recipients=recipients,
            idempotency_key=key,
            notification_type=data.get("notificationType"),
            workflow_run_id=run_id,
        )
        return NotificationResult(success=True, workflow_run_id=run_id)
