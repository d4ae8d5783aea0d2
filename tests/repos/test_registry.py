"""Tests for repository resolution and thread-offloaded stats collection."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from backstat.orchestrator import RepoConfig, RepoResolutionError, RepoStats
from backstat.repos import RepoRegistry, ThreadedRepoHandle

if TYPE_CHECKING:
    from collections.abc import Callable


def _collector_returning(
    stats: RepoStats,
    seen: list[str],
) -> Callable[[RepoConfig], RepoStats]:
    def _collect(config: RepoConfig) -> RepoStats:
        seen.append(f"{config.repo_id}@{threading.current_thread().name}")
        return stats

    return _collect


def test_registry_resolves_registered_handles() -> None:
    """Registered ids resolve; unregistered ids raise."""
    config = RepoConfig(repo_id="repo-1", uri="/srv/repo-1")
    handle = ThreadedRepoHandle(
        config=config,
        collector=_collector_returning(RepoStats(total_size=1), []),
    )
    registry = RepoRegistry()
    registry.register("repo-1", handle)

    if registry.resolve("repo-1") is not handle:
        raise AssertionError
    if "repo-1" not in registry:
        raise AssertionError

    registry.unregister("repo-1")
    with pytest.raises(RepoResolutionError, match="repo not found"):
        _ = registry.resolve("repo-1")


@pytest.mark.asyncio
async def test_threaded_handle_runs_collector_off_the_event_loop() -> None:
    """Blocking collectors execute in a worker thread."""
    seen: list[str] = []
    stats = RepoStats(total_size=42, snapshot_count=2)
    handle = ThreadedRepoHandle(
        config=RepoConfig(repo_id="repo-1"),
        collector=_collector_returning(stats, seen),
    )

    result = await handle.gather_statistics()

    if result != stats:
        raise AssertionError
    if len(seen) != 1 or not seen[0].startswith("repo-1@"):
        raise AssertionError
    if seen[0] == f"repo-1@{threading.main_thread().name}":
        raise AssertionError
    if handle.config() != RepoConfig(repo_id="repo-1"):
        raise AssertionError
