"""Port: notification provider. Implementations live in infrastructure.

Implementations never raise for provider failures; they return a failed NotificationResult.
"""
from __future__ import annotations

from typing import Any, Protocol, Sequence

from shipsync.domain.notifications import NotificationResult, TriggerOptions


class NotificationService(Protocol):
    async def trigger_for_object(
        self,
        workflow: str,
        collection: str,
        object_id: str,
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult:
        """Trigger a workflow for an object; the provider fans out to its subscribers."""
        ...

    async def trigger_for_users(
        self,
        workflow: str,
        user_ids: Sequence[str],
        data: dict[str, Any],
        options: TriggerOptions | None = None,
    ) -> NotificationResult: ...

    async def cancel_workflow(
        self,
        workflow: str,
        cancellation_key: str,
        recipient_ids: Sequence[str],
    ) -> NotificationResult: ...

    async def close(self) -> None: ...
