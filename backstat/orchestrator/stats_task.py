"""Recurring repository stats task: decide, materialize, execute, report."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from backstat.orchestrator.contracts import HookVars
from backstat.orchestrator.decision import StatsDecisionEngine
from backstat.orchestrator.errors import (
    BackstatError,
    ConfigurationError,
    LogIterationError,
    PersistenceError,
    RepoResolutionError,
    StatisticsCollectionError,
)
from backstat.orchestrator.models import (
    HookCondition,
    Operation,
    OperationStatus,
    RepoConfig,
    StatsPayload,
    normalize_datetime,
)
from backstat.orchestrator.task_base import CANCELLED_MESSAGE, OperationRunner

if TYPE_CHECKING:
    from datetime import datetime

    from backstat.orchestrator.contracts import (
        HookDispatcher,
        OperationLog,
        RepoAccessor,
        RepoHandle,
    )
    from backstat.orchestrator.models import Plan, RepoStats
    from backstat.orchestrator.task_base import TimeProvider

logger = logging.getLogger(__name__)


class ScheduledSlot:
    """Single nullable slot holding the next instant a task is due."""

    __slots__ = ("_instant",)

    _instant: datetime | None

    def __init__(self, instant: datetime | None = None) -> None:
        self._instant = instant

    @property
    def instant(self) -> datetime | None:
        """Return the scheduled instant without consuming it."""
        return self._instant

    @property
    def is_set(self) -> bool:
        return self._instant is not None

    def set(self, instant: datetime) -> None:
        """Store ``instant``, replacing any unconsumed one."""
        self._instant = normalize_datetime(instant)

    def consume(self) -> datetime | None:
        """Return the stored instant and clear the slot."""
        instant, self._instant = self._instant, None
        return instant


@dataclass(slots=True, frozen=True)
class PollResult:
    """Outcome of one poll of a recurring task."""

    due: bool
    run_at: datetime | None = None
    operation: Operation | None = None
    error: BackstatError | None = None

    @classmethod
    def not_due(
        cls,
        run_at: datetime | None = None,
        *,
        error: BackstatError | None = None,
    ) -> PollResult:
        return cls(due=False, run_at=run_at, error=error)


class StatsTask:
    """Gather repository statistics once enough has changed since the last run.

    ``schedule`` arms the task; ``poll_due`` consumes the armed instant,
    asks the decision engine and writes a PENDING stats operation when a
    run is due; ``execute`` performs the run and records its outcome.
    Calls on one instance must not overlap.
    """

    _plan: Plan
    _log: OperationLog
    _repos: RepoAccessor
    _hooks: HookDispatcher
    _engine: StatsDecisionEngine
    _runner: OperationRunner
    _slot: ScheduledSlot
    _snapshot_id: str | None

    def __init__(  # noqa: PLR0913
        self,
        *,
        plan: Plan,
        log: OperationLog,
        repos: RepoAccessor,
        hooks: HookDispatcher,
        engine: StatsDecisionEngine | None = None,
        snapshot_id: str | None = None,
        at: datetime | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """Create a stats task for ``plan``, optionally armed for ``at``."""
        self._plan = plan
        self._log = log
        self._repos = repos
        self._hooks = hooks
        self._engine = engine or StatsDecisionEngine()
        self._runner = OperationRunner(log=log, time_provider=time_provider)
        self._slot = ScheduledSlot()
        self._snapshot_id = snapshot_id
        if at is not None:
            self._slot.set(at)

    @property
    def name(self) -> str:
        return f"stats for plan {self._plan.plan_id!r}"

    @property
    def plan(self) -> Plan:
        return self._plan

    @property
    def scheduled_at(self) -> datetime | None:
        """Return the armed instant, if any, without consuming it."""
        return self._slot.instant

    def schedule(self, instant: datetime) -> None:
        """Arm the task for ``instant``, overwriting an unconsumed schedule."""
        self._slot.set(instant)

    async def poll_due(self, now: datetime) -> PollResult:
        """Consume the armed instant and materialize an operation if a run is due.

        The slot is cleared on every call that finds it set, whatever the
        outcome. Decision and persistence failures are logged, the cycle is
        skipped and the failure is returned on the result. Nothing is
        rescheduled here.
        """
        _ = now
        run_at = self._slot.consume()
        if run_at is None:
            return PollResult.not_due()

        try:
            should_run = await self._engine.evaluate(self._plan.repo_id, self._log)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Task %s failed to check if it should run", self.name)
            error = (
                exc
                if isinstance(exc, BackstatError)
                else LogIterationError.for_repo(self._plan.repo_id, details=str(exc))
            )
            return PollResult.not_due(run_at, error=error)
        if not should_run:
            return PollResult.not_due(run_at)

        pending = Operation(
            plan_id=self._plan.plan_id,
            repo_id=self._plan.repo_id,
            snapshot_id=self._snapshot_id,
            started_at=run_at,
            status=OperationStatus.PENDING,
            payload=StatsPayload(),
        )
        try:
            persisted = await self._log.append(pending)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = PersistenceError.for_append(self._plan.plan_id, details=str(exc))
            logger.error("Task %s abandoned: %s", self.name, error, exc_info=exc)
            return PollResult.not_due(run_at, error=error)
        return PollResult(due=True, run_at=run_at, operation=persisted)

    async def execute(
        self,
        operation: Operation,
        *,
        timeout: float | None = None,
    ) -> Operation:
        """Gather stats for the plan's repository and settle ``operation``.

        Raises ``ConfigurationError`` before touching anything when the plan
        has no retention policy. Any later failure marks the operation ERROR
        and fires the any-error hook before the failure is re-raised.
        """
        if self._plan.retention is None:
            raise ConfigurationError.for_missing_retention(self._plan.plan_id)

        handle: RepoHandle | None = None

        async def _gather(current: Operation) -> Operation:
            nonlocal handle
            handle = self._resolve_repo()
            stats = await self._gather_statistics(handle, timeout=timeout)
            return current.with_payload(StatsPayload(stats=stats))

        try:
            return await self._runner.run(operation, _gather)
        except asyncio.CancelledError:
            await self._dispatch_error_hook(handle, error_text=CANCELLED_MESSAGE)
            raise
        except Exception as exc:
            await self._dispatch_error_hook(handle, error_text=str(exc))
            raise

    def _resolve_repo(self) -> RepoHandle:
        repo_id = self._plan.repo_id
        try:
            return self._repos.resolve(repo_id)
        except RepoResolutionError:
            raise
        except Exception as exc:
            raise RepoResolutionError.for_repo(repo_id, details=str(exc)) from exc

    async def _gather_statistics(
        self,
        handle: RepoHandle,
        *,
        timeout: float | None,
    ) -> RepoStats:
        repo_id = self._plan.repo_id
        try:
            async with asyncio.timeout(timeout):
                return await handle.gather_statistics()
        except asyncio.CancelledError:
            raise
        except StatisticsCollectionError:
            raise
        except TimeoutError as exc:
            if timeout is None:
                raise StatisticsCollectionError.for_repo(
                    repo_id,
                    details=str(exc) or "timed out",
                ) from exc
            raise StatisticsCollectionError.for_timeout(
                repo_id,
                timeout_seconds=timeout,
            ) from exc
        except Exception as exc:
            raise StatisticsCollectionError.for_repo(repo_id, details=str(exc)) from exc

    async def _dispatch_error_hook(
        self,
        handle: RepoHandle | None,
        *,
        error_text: str,
    ) -> None:
        config = self._hook_config(handle)
        try:
            await self._hooks.dispatch(
                config,
                self._plan,
                None,
                frozenset({HookCondition.ANY_ERROR}),
                HookVars(task=self.name, error=error_text),
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Task %s failed to dispatch error hooks", self.name)

    def _hook_config(self, handle: RepoHandle | None) -> RepoConfig:
        if handle is None:
            return RepoConfig.unresolved(self._plan.repo_id)
        try:
            return handle.config()
        except Exception:
            logger.exception("Task %s could not read repo config", self.name)
            return RepoConfig.unresolved(self._plan.repo_id)
