"""Scheduler tick loop and lifecycle service driving recurring stats tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import uuid4

from backstat.config.logging import bind_task_context
from backstat.orchestrator import Operation, StatsTask
from backstat.orchestrator.models import normalize_datetime, utc_now

logger = logging.getLogger(__name__)

TimeProvider = Callable[[], datetime]
CorrelationIdFactory = Callable[[], str]

DEFAULT_TICK_INTERVAL_SECONDS = 1.0


def _default_correlation_id() -> str:
    return str(uuid4())


class TaskRunStatus(StrEnum):
    """What happened to one task during one tick."""

    SKIPPED = "skipped"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class TaskRunOutcome:
    """Result of polling, and possibly executing, one task."""

    task_name: str
    status: TaskRunStatus
    operation: Operation | None = None
    error: str | None = None


@dataclass(slots=True)
class StatsSchedulerLoop:
    """Poll armed tasks whose instant has passed and execute the due ones."""

    tasks: list[StatsTask] = field(default_factory=list)
    execute_timeout_seconds: float | None = None
    time_provider: TimeProvider = utc_now
    correlation_id_factory: CorrelationIdFactory = _default_correlation_id

    def register(self, task: StatsTask) -> None:
        """Add a task to be polled on every tick."""
        self.tasks.append(task)

    async def run_once(self) -> list[TaskRunOutcome]:
        """Run one tick over every registered task whose instant has passed."""
        now = normalize_datetime(self.time_provider())
        return [
            await self._run_task(task, now=now)
            for task in list(self.tasks)
            if _is_armed(task, now=now)
        ]

    async def _run_task(self, task: StatsTask, *, now: datetime) -> TaskRunOutcome:
        with bind_task_context(task.name, run_id=self.correlation_id_factory()):
            poll = await task.poll_due(now)
            if poll.error is not None:
                return TaskRunOutcome(
                    task_name=task.name,
                    status=TaskRunStatus.ERROR,
                    error=str(poll.error),
                )
            if not poll.due or poll.operation is None:
                logger.debug("Task %s not due", task.name)
                return TaskRunOutcome(task_name=task.name, status=TaskRunStatus.SKIPPED)
            try:
                operation = await task.execute(
                    poll.operation,
                    timeout=self.execute_timeout_seconds,
                )
            except Exception as exc:
                logger.exception("Task %s failed", task.name)
                return TaskRunOutcome(
                    task_name=task.name,
                    status=TaskRunStatus.ERROR,
                    operation=poll.operation,
                    error=str(exc),
                )
            logger.info("Task %s completed", task.name)
            return TaskRunOutcome(
                task_name=task.name,
                status=TaskRunStatus.SUCCESS,
                operation=operation,
            )


def _is_armed(task: StatsTask, *, now: datetime) -> bool:
    scheduled_at = task.scheduled_at
    return scheduled_at is not None and scheduled_at <= now


@dataclass(slots=True)
class StatsSchedulerService:
    """Lifecycle-managed background loop around ``StatsSchedulerLoop``."""

    core_loop: StatsSchedulerLoop
    tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS
    _task: asyncio.Task[None] | None = None
    _stop_event: asyncio.Event | None = None

    async def startup(self) -> None:
        """Start the scheduler background loop."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())

    async def shutdown(self) -> None:
        """Stop the scheduler background loop after the current tick."""
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await self._task
        self._task = None
        self._stop_event = None

    @property
    def is_running(self) -> bool:
        """Return True when the scheduler loop task is active."""
        return self._task is not None and not self._task.done()

    async def _run_loop(self) -> None:
        stop_event = self._stop_event
        if stop_event is None:
            return
        while not stop_event.is_set():
            try:
                _ = await self.core_loop.run_once()
            except Exception:
                logger.exception("Scheduler loop tick failed")
            try:
                _ = await asyncio.wait_for(
                    stop_event.wait(),
                    timeout=self.tick_interval_seconds,
                )
            except TimeoutError:
                continue
