"""In-process repository registry and thread-offloaded repo handles."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from backstat.orchestrator.errors import RepoResolutionError

if TYPE_CHECKING:
    from collections.abc import Callable

    from backstat.orchestrator.contracts import RepoHandle
    from backstat.orchestrator.models import RepoConfig, RepoStats


class ThreadedRepoHandle:
    """Run a blocking statistics collector in a worker thread.

    Cancelling the awaiting task returns control immediately; the worker
    thread is left to finish on its own.
    """

    _config: RepoConfig
    _collector: Callable[[RepoConfig], RepoStats]

    def __init__(
        self,
        *,
        config: RepoConfig,
        collector: Callable[[RepoConfig], RepoStats],
    ) -> None:
        self._config = config
        self._collector = collector

    async def gather_statistics(self) -> RepoStats:
        """Collect repository statistics without blocking the event loop."""
        return await asyncio.to_thread(self._collector, self._config)

    def config(self) -> RepoConfig:
        return self._config


class RepoRegistry:
    """Map repository ids to handles registered at startup."""

    _handles: dict[str, RepoHandle]

    def __init__(self, handles: dict[str, RepoHandle] | None = None) -> None:
        self._handles = dict(handles or {})

    def register(self, repo_id: str, handle: RepoHandle) -> None:
        """Register or replace the handle for ``repo_id``."""
        self._handles[repo_id] = handle

    def unregister(self, repo_id: str) -> None:
        _ = self._handles.pop(repo_id, None)

    def resolve(self, repo_id: str) -> RepoHandle:
        """Return the handle for ``repo_id`` or raise ``RepoResolutionError``."""
        handle = self._handles.get(repo_id)
        if handle is None:
            raise RepoResolutionError.for_repo(repo_id, details="repo not found")
        return handle

    def __contains__(self, repo_id: object) -> bool:
        return repo_id in self._handles
