"""Scheduler loop for backstat tasks."""

from .service import (
    StatsSchedulerLoop,
    StatsSchedulerService,
    TaskRunOutcome,
    TaskRunStatus,
)

__all__ = [
    "StatsSchedulerLoop",
    "StatsSchedulerService",
    "TaskRunOutcome",
    "TaskRunStatus",
]
