"""Shared run wrapper that drives an operation record through its statuses."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING

from backstat.orchestrator.errors import PersistenceError
from backstat.orchestrator.models import OperationStatus, normalize_datetime, utc_now

if TYPE_CHECKING:
    from backstat.orchestrator.contracts import OperationLog
    from backstat.orchestrator.models import Operation

logger = logging.getLogger(__name__)

TimeProvider = Callable[[], datetime]
OperationAction = Callable[["Operation"], Awaitable["Operation"]]

CANCELLED_MESSAGE = "operation cancelled"


class OperationRunner:
    """Persist IN_PROGRESS, run an action, then persist SUCCESS or ERROR."""

    _log: OperationLog
    _time_provider: TimeProvider

    def __init__(
        self,
        *,
        log: OperationLog,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """Create runner writing status transitions to ``log``."""
        self._log = log
        self._time_provider = time_provider or utc_now

    async def run(self, operation: Operation, action: OperationAction) -> Operation:
        """Run ``action`` against ``operation`` and return the settled record.

        The action's exception is re-raised after the ERROR status is written.
        Cancellation is recorded the same way and then propagated. A failed
        SUCCESS write is retried as an ERROR write before it is raised.
        """
        current = await self._write(operation.with_status(OperationStatus.IN_PROGRESS))
        try:
            current = await action(current)
        except asyncio.CancelledError:
            await self._record_failure(current, message=CANCELLED_MESSAGE)
            raise
        except Exception as exc:
            await self._record_failure(current, message=str(exc))
            raise
        try:
            return await self._write(
                current.with_status(OperationStatus.SUCCESS, ended_at=self._now()),
            )
        except PersistenceError as exc:
            # The row must not stay IN_PROGRESS.
            await self._record_failure(current, message=str(exc))
            raise

    async def _record_failure(self, operation: Operation, *, message: str) -> None:
        failed = operation.with_status(
            OperationStatus.ERROR,
            display_message=message,
            ended_at=self._now(),
        )
        try:
            _ = await self._write(failed)
        except PersistenceError:
            # The action's own error stays authoritative.
            logger.exception(
                "Failed to record error status for operation %s",
                operation.operation_id,
            )

    async def _write(self, operation: Operation) -> Operation:
        try:
            return await self._log.update(operation)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            msg = (
                f"Failed to update operation {operation.operation_id} "
                f"to {operation.status.value}: {exc}"
            )
            raise PersistenceError(msg) from exc

    def _now(self) -> datetime:
        return normalize_datetime(self._time_provider())
