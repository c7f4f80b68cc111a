"""Knock implementation of the NotificationService port.

Provider failures are returned as a failed NotificationResult, never raised, so a
notification problem cannot stop audit or sync work running for the same event.
"""
from __future__ import annotations

from typing import Any, Sequence

from loguru import logger

from shipsync.core import SERVICE_NAME
from shipsync.domain.notifications import NotificationResult, TriggerOptions
from shipsync.ports.http_client import AbstractHttpClient, HttpClientError, RequestTimeout


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class KnockNotificationService:
    def __init__(
        self,
        http_client: AbstractHttpClient,
        *,
        api_key: str,
        base_url: str = "https://api.knock.app/v1",
        connect_timeout_seconds: float = 5.0,
        read_timeout_seconds: float = 15.0,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = RequestTimeout(connect_seconds=connect_timeout_seconds, read_seconds=read_timeout_seconds)

    async def trigger_for_object(
        self,
        workflow: str,
        collection: str,
        object_id: str,
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult:
        return await self._trigger(workflow, [{"id": str(object_id), "collection": collection}], data, options)

    async def trigger_for_users(
        self,
        workflow: str,
        user_ids: Sequence[str],
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult:
        if not user_ids:
            return NotificationResult(success=False, error="no recipients")
        return await self._trigger(workflow, [str(user_id) for user_id in user_ids], data, options)

    async def cancel_workflow(
        self,
        workflow: str,
        cancellation_key: str,
        recipient_ids: Sequence[str],
    ) -> NotificationResult:
        body: dict[str, Any] = {"cancellation_key": cancellation_key}
        if recipient_ids:
            body["recipients"] = [str(recipient) for recipient in recipient_ids]
        try:
            response = await self._http.post(
                f"{self._base_url}/workflows/{workflow}/cancel",
                json=body,
                timeout=self._timeout,
                headers=self._headers(None),
            )
            response.raise_for_status()
        except HttpClientError as exc:
            return NotificationResult(success=False, error=str(exc))
        _log("notification_workflow_cancelled", workflow=workflow, cancellation_key=cancellation_key)
        return NotificationResult(success=True)

    async def close(self) -> None:
        await self._http.close()

    async def _trigger(
        self,
        workflow: str,
        recipients: list[Any],
        data: dict[str, Any],
        options: TriggerOptions | None,
    ) -> NotificationResult:
        options = options or TriggerOptions()
        body: dict[str, Any] = {"recipients": recipients, "data": data}
        if options.cancellation_key:
            body["cancellation_key"] = options.cancellation_key
        if options.tenant:
            body["tenant"] = options.tenant
        if options.actor:
            body["actor"] = options.actor

        try:
            response = await self._http.post(
                f"{self._base_url}/workflows/{workflow}/trigger",
                json=body,
                timeout=self._timeout,
                headers=self._headers(options.idempotency_key),
            )
            response.raise_for_status()
            payload = response.json()
        except (HttpClientError, ValueError) as exc:
            logger.warning("knock trigger failed for workflow {}: {}", workflow, exc)
            return NotificationResult(success=False, error=str(exc))

        run_id = payload.get("workflow_run_id") if isinstance(payload, dict) else None
        _log(
            "notification_triggered",
            workflow=workflow,
            recipient_count=len(recipients),
            idempotency_key=options.idempotency_key,
            workflow_run_id=run_id,
        )
        return NotificationResult(success=True, workflow_run_id=run_id)

    def _headers(self, idempotency_key: str | None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers
