"""Recurring task decision and execution for backstat."""

from .contracts import (
    HookDispatcher,
    HookVars,
    IterationDirection,
    OperationLog,
    OperationVisitor,
    RepoAccessor,
    RepoHandle,
    VisitResult,
)
from .decision import StatsDecisionEngine, StatsDistance, StatsThresholds
from .errors import (
    BackstatError,
    ConfigurationError,
    LogIterationError,
    PersistenceError,
    RepoResolutionError,
    StatisticsCollectionError,
)
from .models import (
    BackupPayload,
    BackupProgressEntry,
    BackupProgressStatus,
    BackupProgressSummary,
    HookCondition,
    HookConfig,
    Operation,
    OperationKind,
    OperationPayload,
    OperationStatus,
    PayloadKindChangeError,
    Plan,
    RepoConfig,
    RepoStats,
    RetentionPolicy,
    StatsPayload,
)
from .stats_task import PollResult, ScheduledSlot, StatsTask
from .task_base import OperationRunner

__all__ = [
    "BackstatError",
    "BackupPayload",
    "BackupProgressEntry",
    "BackupProgressStatus",
    "BackupProgressSummary",
    "ConfigurationError",
    "HookCondition",
    "HookConfig",
    "HookDispatcher",
    "HookVars",
    "IterationDirection",
    "LogIterationError",
    "Operation",
    "OperationKind",
    "OperationLog",
    "OperationPayload",
    "OperationRunner",
    "OperationStatus",
    "OperationVisitor",
    "PayloadKindChangeError",
    "PersistenceError",
    "Plan",
    "PollResult",
    "RepoAccessor",
    "RepoConfig",
    "RepoHandle",
    "RepoResolutionError",
    "RepoStats",
    "RetentionPolicy",
    "ScheduledSlot",
    "StatisticsCollectionError",
    "StatsDecisionEngine",
    "StatsDistance",
    "StatsPayload",
    "StatsTask",
    "StatsThresholds",
    "VisitResult",
]
