"""Collaborator protocols consumed by recurring orchestrator tasks."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Collection

    from backstat.orchestrator.models import (
        HookCondition,
        Operation,
        Plan,
        RepoConfig,
        RepoStats,
    )


class IterationDirection(StrEnum):
    """Order in which an operation log is walked."""

    FORWARD = "forward"
    REVERSE = "reverse"


class VisitResult(StrEnum):
    """Control signal returned by a log visitor for each operation."""

    CONTINUE = "continue"
    STOP = "stop"


OperationVisitor = Callable[["Operation"], VisitResult]


@dataclass(slots=True, frozen=True)
class HookVars:
    """Context variables exposed to dispatched hooks."""

    task: str
    error: str | None = None


class OperationLog(Protocol):
    """Append-only per-repository history of operations."""

    async def iterate(
        self,
        repo_id: str,
        *,
        direction: IterationDirection,
        visitor: OperationVisitor,
    ) -> None:
        """Visit operations for ``repo_id`` until exhausted or told to stop."""
        ...

    async def append(self, operation: Operation) -> Operation:
        """Persist a new operation and return it with its assigned id."""
        ...

    async def update(self, operation: Operation) -> Operation:
        """Persist status and payload changes for an existing operation."""
        ...


class RepoHandle(Protocol):
    """Resolved repository capable of gathering statistics."""

    async def gather_statistics(self) -> RepoStats:
        """Compute repository statistics; may block for a long time."""
        ...

    def config(self) -> RepoConfig:
        """Return repository configuration for hook context."""
        ...


class RepoAccessor(Protocol):
    """Resolve repository ids to handles."""

    def resolve(self, repo_id: str) -> RepoHandle:
        """Return a handle or raise ``RepoResolutionError``."""
        ...


class HookDispatcher(Protocol):
    """Fire notification hooks for a set of trigger conditions."""

    async def dispatch(  # noqa: PLR0913
        self,
        config: RepoConfig,
        plan: Plan,
        snapshot_id: str | None,
        conditions: Collection[HookCondition],
        hook_vars: HookVars,
    ) -> None:
        """Run every hook registered for one of ``conditions``."""
        ...
