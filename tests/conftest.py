"""Shared pytest fixtures for storage-backed and in-memory task tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from backstat.config.settings import load_settings
from backstat.orchestrator import Plan, RepoConfig, RetentionPolicy
from backstat.storage import (
    StorageRuntime,
    create_storage_runtime,
    dispose_storage_runtime,
)
from tests.mocks.fake_collaborators import (
    FakeRepoAccessor,
    FakeRepoHandle,
    InMemoryOperationLog,
    RecordingHookDispatcher,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

OPERATIONS_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS operations (
        id INTEGER PRIMARY KEY,
        plan_id VARCHAR(255) NOT NULL,
        repo_id VARCHAR(255) NOT NULL,
        snapshot_id VARCHAR(255) NULL,
        kind VARCHAR(16) NOT NULL,
        status VARCHAR(32) NOT NULL,
        unix_time_start_ms BIGINT NOT NULL,
        unix_time_end_ms BIGINT NULL,
        display_message TEXT NULL,
        payload_json TEXT NULL
    )
"""

NOTIFICATIONS_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY,
        condition VARCHAR(32) NOT NULL,
        severity VARCHAR(16) NOT NULL,
        hook_name VARCHAR(128) NULL,
        task VARCHAR(255) NOT NULL,
        error TEXT NULL,
        plan_id VARCHAR(255) NOT NULL,
        repo_id VARCHAR(255) NOT NULL,
        snapshot_id VARCHAR(255) NULL,
        message TEXT NOT NULL,
        created_at_ms BIGINT NOT NULL
    )
"""


@pytest.fixture
async def storage_runtime(tmp_path: Path) -> AsyncIterator[StorageRuntime]:
    """Build a SQLite runtime containing operations and notifications tables."""
    db_path = tmp_path / "backstat-storage.sqlite3"
    settings = load_settings({"BACKSTAT_DB_PATH": db_path.as_posix()})
    runtime = create_storage_runtime(settings)

    async with runtime.write_engine.begin() as connection:
        _ = await connection.exec_driver_sql(OPERATIONS_TABLE_DDL)
        _ = await connection.exec_driver_sql(NOTIFICATIONS_TABLE_DDL)

    try:
        yield runtime
    finally:
        await dispose_storage_runtime(runtime)


@pytest.fixture
def operation_log() -> InMemoryOperationLog:
    """Provide an empty in-memory operation log."""
    return InMemoryOperationLog()


@pytest.fixture
def repo_handle() -> FakeRepoHandle:
    """Provide a repo handle for `repo-1` returning canned stats."""
    return FakeRepoHandle(repo_config=RepoConfig(repo_id="repo-1", uri="/srv/repo-1"))


@pytest.fixture
def repo_accessor(repo_handle: FakeRepoHandle) -> FakeRepoAccessor:
    """Provide an accessor that resolves `repo-1`."""
    return FakeRepoAccessor(handles={"repo-1": repo_handle})


@pytest.fixture
def hook_dispatcher() -> RecordingHookDispatcher:
    """Provide a dispatcher that records hook calls."""
    return RecordingHookDispatcher()


@pytest.fixture
def plan() -> Plan:
    """Provide a plan with a retention policy bound to `repo-1`."""
    return Plan(
        plan_id="plan-1",
        repo_id="repo-1",
        retention=RetentionPolicy(keep_last_n=10),
    )
