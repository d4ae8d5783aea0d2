"""Decide whether a repository is due for a new stats run."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from backstat.orchestrator.contracts import IterationDirection, VisitResult
from backstat.orchestrator.errors import LogIterationError
from backstat.orchestrator.models import (
    BackupPayload,
    BackupProgressSummary,
    StatsPayload,
)

if TYPE_CHECKING:
    from backstat.orchestrator.contracts import OperationLog
    from backstat.orchestrator.models import Operation

logger = logging.getLogger(__name__)

DEFAULT_STATS_BYTES_THRESHOLD = 10 * 1024 * 1024 * 1024
DEFAULT_STATS_OPERATIONS_THRESHOLD = 100


@dataclass(slots=True, frozen=True)
class StatsThresholds:
    """Volume and distance limits after which a stats run is due."""

    bytes_threshold: int = DEFAULT_STATS_BYTES_THRESHOLD
    operations_threshold: int = DEFAULT_STATS_OPERATIONS_THRESHOLD


@dataclass(slots=True, frozen=True)
class StatsDistance:
    """How far the newest operations are from the last stats baseline.

    ``bytes_since_last_stat`` stays None (unknown) only when the scanned
    window held neither a stats operation nor a finished backup summary.
    Summaries seen before any stats operation accumulate from zero.
    """

    bytes_since_last_stat: int | None
    operations_scanned: int

    @property
    def is_measured(self) -> bool:
        return self.bytes_since_last_stat is not None


@dataclass(slots=True)
class _DistanceAccumulator:
    limit: int
    bytes_since_last_stat: int | None = None
    scanned: int = 0

    def visit(self, operation: Operation) -> VisitResult:
        if not operation.status.is_settled:
            return VisitResult.CONTINUE
        self.scanned += 1
        match operation.payload:
            case StatsPayload():
                if self.bytes_since_last_stat is None:
                    self.bytes_since_last_stat = 0
                return VisitResult.STOP
            case BackupPayload(last_status=BackupProgressSummary() as summary):
                self.bytes_since_last_stat = (
                    self.bytes_since_last_stat or 0
                ) + summary.data_added
            case BackupPayload():
                pass
        if self.scanned >= self.limit:
            return VisitResult.STOP
        return VisitResult.CONTINUE


class StatsDecisionEngine:
    """Scan a repository's operation history backward to decide on stats runs.

    A run is due when either limit trips first: too many settled operations
    since the last stats run, or too many bytes added by backups since then.
    A window with nothing measurable at all also triggers a run.
    """

    _thresholds: StatsThresholds

    def __init__(self, thresholds: StatsThresholds | None = None) -> None:
        """Create engine with per-instance thresholds."""
        self._thresholds = thresholds or StatsThresholds()

    @property
    def thresholds(self) -> StatsThresholds:
        """Return thresholds used by this engine."""
        return self._thresholds

    async def measure(self, repo_id: str, log: OperationLog) -> StatsDistance:
        """Walk newest-first until the latest stats baseline or the scan bound."""
        accumulator = _DistanceAccumulator(
            limit=self._thresholds.operations_threshold,
        )
        try:
            await log.iterate(
                repo_id,
                direction=IterationDirection.REVERSE,
                visitor=accumulator.visit,
            )
        except asyncio.CancelledError:
            raise
        except LogIterationError:
            raise
        except Exception as exc:
            raise LogIterationError.for_repo(repo_id, details=str(exc)) from exc
        return StatsDistance(
            bytes_since_last_stat=accumulator.bytes_since_last_stat,
            operations_scanned=accumulator.scanned,
        )

    async def evaluate(self, repo_id: str, log: OperationLog) -> bool:
        """Return True when a new stats run should start for ``repo_id``."""
        distance = await self.measure(repo_id, log)
        logger.debug(
            "Distance since last stat (repo=%s)",
            repo_id,
            extra={
                "repo_id": repo_id,
                "bytes_since_last_stat": distance.bytes_since_last_stat,
                "operations_scanned": distance.operations_scanned,
            },
        )
        return self.is_due(distance)

    def is_due(self, distance: StatsDistance) -> bool:
        """Apply thresholds to a measured distance."""
        if distance.operations_scanned >= self._thresholds.operations_threshold:
            logger.debug(
                "Operations since last stat (%d) reached threshold (%d)",
                distance.operations_scanned,
                self._thresholds.operations_threshold,
            )
            return True
        if distance.bytes_since_last_stat is None:
            logger.debug("Bytes since last stat are unknown")
            return True
        if distance.bytes_since_last_stat > self._thresholds.bytes_threshold:
            logger.debug(
                "Bytes since last stat (%d) exceeds threshold (%d)",
                distance.bytes_since_last_stat,
                self._thresholds.bytes_threshold,
            )
            return True
        return False
