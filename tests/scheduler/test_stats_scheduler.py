"""Tests for the scheduler tick loop and its background service."""

from __future__ import annotations

import asyncio
import itertools
from datetime import timedelta

import pytest

from backstat.orchestrator import OperationStatus, Plan, RepoConfig, StatsTask
from backstat.scheduler import (
    StatsSchedulerLoop,
    StatsSchedulerService,
    TaskRunStatus,
)
from tests.mocks.fake_collaborators import (
    BASE_TIME,
    FakeRepoAccessor,
    FakeRepoHandle,
    InMemoryOperationLog,
    RecordingHookDispatcher,
    seed,
    stats_operation,
)

NOW = BASE_TIME + timedelta(hours=2)


def _task(
    plan: Plan,
    operation_log: InMemoryOperationLog,
    repo_accessor: FakeRepoAccessor,
    hook_dispatcher: RecordingHookDispatcher,
) -> StatsTask:
    return StatsTask(
        plan=plan,
        log=operation_log,
        repos=repo_accessor,
        hooks=hook_dispatcher,
        time_provider=lambda: NOW,
    )


def _loop(*tasks: StatsTask) -> StatsSchedulerLoop:
    counter = itertools.count(1)
    return StatsSchedulerLoop(
        tasks=list(tasks),
        time_provider=lambda: NOW,
        correlation_id_factory=lambda: f"run-{next(counter)}",
    )


@pytest.mark.asyncio
async def test_run_once_executes_due_task(
    plan: Plan,
    operation_log: InMemoryOperationLog,
    repo_accessor: FakeRepoAccessor,
    hook_dispatcher: RecordingHookDispatcher,
) -> None:
    """An armed task with no stats history runs to SUCCESS."""
    task = _task(plan, operation_log, repo_accessor, hook_dispatcher)
    task.schedule(NOW - timedelta(minutes=1))

    outcomes = await _loop(task).run_once()

    if [outcome.status for outcome in outcomes] != [TaskRunStatus.SUCCESS]:
        raise AssertionError
    operation = outcomes[0].operation
    if operation is None or operation.status is not OperationStatus.SUCCESS:
        raise AssertionError


@pytest.mark.asyncio
async def test_run_once_ignores_future_and_unarmed_tasks(
    plan: Plan,
    operation_log: InMemoryOperationLog,
    repo_accessor: FakeRepoAccessor,
    hook_dispatcher: RecordingHookDispatcher,
) -> None:
    """Tasks armed for later keep their schedule; unarmed tasks are skipped."""
    future = _task(plan, operation_log, repo_accessor, hook_dispatcher)
    future.schedule(NOW + timedelta(minutes=10))
    idle = _task(plan, operation_log, repo_accessor, hook_dispatcher)

    outcomes = await _loop(future, idle).run_once()

    if outcomes:
        raise AssertionError
    if future.scheduled_at != NOW + timedelta(minutes=10):
        raise AssertionError
    if operation_log.iterate_calls != 0:
        raise AssertionError


@pytest.mark.asyncio
async def test_run_once_reports_skipped_when_not_due(
    plan: Plan,
    operation_log: InMemoryOperationLog,
    repo_accessor: FakeRepoAccessor,
    hook_dispatcher: RecordingHookDispatcher,
) -> None:
    """A recent stats run turns the tick into a skip."""
    await seed(operation_log, [stats_operation()])
    task = _task(plan, operation_log, repo_accessor, hook_dispatcher)
    task.schedule(NOW)

    outcomes = await _loop(task).run_once()

    if [outcome.status for outcome in outcomes] != [TaskRunStatus.SKIPPED]:
        raise AssertionError
    if len(operation_log.operations) != 1:
        raise AssertionError


@pytest.mark.asyncio
async def test_run_once_reports_poll_failure_as_error_not_skip(
    plan: Plan,
    operation_log: InMemoryOperationLog,
    repo_accessor: FakeRepoAccessor,
    hook_dispatcher: RecordingHookDispatcher,
) -> None:
    """An unreadable operation log is an ERROR outcome, not a quiet skip."""
    operation_log.iterate_error = OSError("oplog unreadable")
    task = _task(plan, operation_log, repo_accessor, hook_dispatcher)
    task.schedule(NOW)

    outcomes = await _loop(task).run_once()

    if [outcome.status for outcome in outcomes] != [TaskRunStatus.ERROR]:
        raise AssertionError
    if outcomes[0].error is None or "oplog unreadable" not in outcomes[0].error:
        raise AssertionError
    if outcomes[0].operation is not None or operation_log.operations:
        raise AssertionError
    if hook_dispatcher.calls:
        raise AssertionError


@pytest.mark.asyncio
async def test_execution_failure_is_reported_and_loop_continues(
    plan: Plan,
    operation_log: InMemoryOperationLog,
    hook_dispatcher: RecordingHookDispatcher,
) -> None:
    """One failing task does not stop later tasks from being polled in the same tick."""
    config = RepoConfig(repo_id=plan.repo_id)
    failing_handle = FakeRepoHandle(
        repo_config=config,
        error=RuntimeError("repository locked"),
    )
    failing = _task(
        plan,
        operation_log,
        FakeRepoAccessor(handles={plan.repo_id: failing_handle}),
        hook_dispatcher,
    )
    healthy = _task(
        plan,
        operation_log,
        FakeRepoAccessor(handles={plan.repo_id: FakeRepoHandle(repo_config=config)}),
        hook_dispatcher,
    )
    failing.schedule(NOW)
    healthy.schedule(NOW)

    outcomes = await _loop(failing, healthy).run_once()

    statuses = [outcome.status for outcome in outcomes]
    if statuses != [TaskRunStatus.ERROR, TaskRunStatus.SKIPPED]:
        raise AssertionError
    if outcomes[0].error is None or "repository locked" not in outcomes[0].error:
        raise AssertionError
    if len(hook_dispatcher.calls) != 1:
        raise AssertionError


@pytest.mark.asyncio
async def test_service_runs_ticks_until_shutdown(
    plan: Plan,
    operation_log: InMemoryOperationLog,
    repo_accessor: FakeRepoAccessor,
    hook_dispatcher: RecordingHookDispatcher,
) -> None:
    """The background service picks up armed tasks and stops cleanly."""
    task = _task(plan, operation_log, repo_accessor, hook_dispatcher)
    task.schedule(NOW)
    service = StatsSchedulerService(core_loop=_loop(task), tick_interval_seconds=0.01)

    await service.startup()
    if not service.is_running:
        raise AssertionError
    for _ in range(100):
        if operation_log.updates:
            break
        await asyncio.sleep(0.01)
    await service.shutdown()

    if service.is_running:
        raise AssertionError
    statuses = [update.status for update in operation_log.updates]
    if statuses != [OperationStatus.IN_PROGRESS, OperationStatus.SUCCESS]:
        raise AssertionError
