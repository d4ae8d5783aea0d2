"""Exception hierarchy for recurring orchestrator tasks."""

from __future__ import annotations


class BackstatError(RuntimeError):
    """Base exception for task decision and execution failures."""


class ConfigurationError(BackstatError):
    """Raised when a plan is missing configuration a task requires."""

    @classmethod
    def for_missing_retention(cls, plan_id: str) -> ConfigurationError:
        """Build error for plans without a retention policy."""
        message = f"Plan {plan_id!r} does not have a retention policy."
        return cls(message)


class LogIterationError(BackstatError):
    """Raised when the backward operation-log scan fails."""

    @classmethod
    def for_repo(cls, repo_id: str, *, details: str) -> LogIterationError:
        """Build error for a failed scan of one repository's operations."""
        message = f"Failed to iterate operation log for repo {repo_id!r}: {details}"
        return cls(message)


class RepoResolutionError(BackstatError):
    """Raised when a repository id cannot be resolved to a handle."""

    @classmethod
    def for_repo(cls, repo_id: str, *, details: str) -> RepoResolutionError:
        """Build error for an unknown or unavailable repository."""
        message = f"Failed to resolve repo {repo_id!r}: {details}"
        return cls(message)


class StatisticsCollectionError(BackstatError):
    """Raised when gathering repository statistics fails."""

    @classmethod
    def for_repo(cls, repo_id: str, *, details: str) -> StatisticsCollectionError:
        """Build error for a failed statistics call."""
        message = f"Failed to gather stats for repo {repo_id!r}: {details}"
        return cls(message)

    @classmethod
    def for_timeout(
        cls,
        repo_id: str,
        *,
        timeout_seconds: float,
    ) -> StatisticsCollectionError:
        """Build error for a statistics call that exceeded its deadline."""
        message = (
            f"Gathering stats for repo {repo_id!r} timed out "
            f"after {timeout_seconds:g}s."
        )
        return cls(message)


class PersistenceError(BackstatError):
    """Raised when a new or updated operation cannot be written."""

    @classmethod
    def for_append(cls, plan_id: str, *, details: str) -> PersistenceError:
        """Build error for a failed append of a pending operation."""
        message = f"Failed to add operation for plan {plan_id!r} to oplog: {details}"
        return cls(message)
