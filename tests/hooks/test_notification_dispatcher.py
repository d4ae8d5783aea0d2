"""Tests for hook dispatch into notification rows."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest

from backstat.hooks import NotificationHookDispatcher
from backstat.orchestrator import (
    HookCondition,
    HookConfig,
    HookVars,
    Plan,
    RepoConfig,
)
from backstat.storage import HookNotification, NotificationsRepository, StorageRuntime

FIRED_AT = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)


def _dispatcher(runtime: StorageRuntime) -> tuple[
    NotificationHookDispatcher,
    NotificationsRepository,
]:
    notifications = NotificationsRepository(
        read_session_factory=runtime.read_session_factory,
        write_session_factory=runtime.write_session_factory,
    )
    dispatcher = NotificationHookDispatcher(
        notifications=notifications,
        time_provider=lambda: FIRED_AT,
    )
    return dispatcher, notifications


PLAN = Plan(plan_id="plan-1", repo_id="repo-1")
TASK_VARS = HookVars(task="stats for plan 'plan-1'", error="disk full")


@pytest.mark.asyncio
async def test_unconfigured_repo_uses_default_error_hook(
    storage_runtime: StorageRuntime,
) -> None:
    """Repos without hooks still record any-error notifications."""
    dispatcher, notifications = _dispatcher(storage_runtime)

    await dispatcher.dispatch(
        RepoConfig.unresolved("repo-1"),
        PLAN,
        None,
        {HookCondition.ANY_ERROR},
        TASK_VARS,
    )

    records = await notifications.list_for_repo("repo-1")
    if len(records) != 1:
        raise AssertionError
    expected = HookNotification(
        notification_id=records[0].notification_id,
        condition=HookCondition.ANY_ERROR,
        severity="high",
        hook_name="default-error",
        task="stats for plan 'plan-1'",
        error="disk full",
        plan_id="plan-1",
        repo_id="repo-1",
        snapshot_id=None,
        message="stats for plan 'plan-1' failed: disk full",
        created_at=FIRED_AT,
    )
    if records[0] != expected:
        raise AssertionError


@pytest.mark.asyncio
async def test_only_hooks_matching_fired_conditions_run(
    storage_runtime: StorageRuntime,
) -> None:
    """Hooks registered for other conditions stay quiet."""
    dispatcher, notifications = _dispatcher(storage_runtime)
    config = RepoConfig(
        repo_id="repo-1",
        hooks=(
            HookConfig(
                conditions=frozenset({HookCondition.SNAPSHOT_END}),
                severity="low",
                name="snapshot-done",
            ),
            HookConfig(
                conditions=frozenset(
                    {HookCondition.ANY_ERROR, HookCondition.CHECK_ERROR},
                ),
                severity="critical",
                name="pager",
            ),
        ),
    )

    await dispatcher.dispatch(
        config,
        PLAN,
        "snap-1",
        {HookCondition.ANY_ERROR},
        TASK_VARS,
    )

    records = await notifications.list_for_repo("repo-1")
    if [
        (record.condition, record.severity, record.hook_name, record.snapshot_id)
        for record in records
    ] != [(HookCondition.ANY_ERROR, "critical", "pager", "snap-1")]:
        raise AssertionError


@pytest.mark.asyncio
async def test_failing_hook_is_logged_and_does_not_raise(
    storage_runtime: StorageRuntime,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Storage errors inside a hook never escape dispatch."""
    dispatcher, _ = _dispatcher(storage_runtime)
    async with storage_runtime.write_engine.begin() as connection:
        _ = await connection.exec_driver_sql("DROP TABLE notifications")

    with caplog.at_level(logging.ERROR):
        await dispatcher.dispatch(
            RepoConfig.unresolved("repo-1"),
            PLAN,
            None,
            {HookCondition.ANY_ERROR},
            TASK_VARS,
        )

    if "Hook default-error failed for condition any_error" not in caplog.text:
        raise AssertionError
