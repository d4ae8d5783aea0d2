"""Operation, plan and repository value types shared by orchestrator tasks."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum


class OperationStatus(StrEnum):
    """Persisted lifecycle status of one operation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    USER_CANCELLED = "user_cancelled"
    SYSTEM_CANCELLED = "system_cancelled"

    @property
    def is_settled(self) -> bool:
        """Return True once the operation can no longer change."""
        return self not in _UNSETTLED_STATUSES


_UNSETTLED_STATUSES = frozenset({OperationStatus.PENDING, OperationStatus.IN_PROGRESS})


class HookCondition(StrEnum):
    """Conditions a hook can be registered for."""

    ANY_ERROR = "any_error"
    SNAPSHOT_START = "snapshot_start"
    SNAPSHOT_END = "snapshot_end"
    SNAPSHOT_ERROR = "snapshot_error"
    PRUNE_ERROR = "prune_error"
    CHECK_ERROR = "check_error"


class OperationKind(StrEnum):
    """Payload variant tag fixed when the operation is created."""

    BACKUP = "backup"
    STATS = "stats"


@dataclass(slots=True, frozen=True)
class BackupProgressStatus:
    """Intermediate progress sample reported while a backup runs."""

    percent_done: float
    bytes_done: int
    total_bytes: int


@dataclass(slots=True, frozen=True)
class BackupProgressSummary:
    """Terminal summary written once a backup finishes."""

    data_added: int
    files_new: int = 0
    files_changed: int = 0
    snapshot_id: str | None = None


BackupProgressEntry = BackupProgressStatus | BackupProgressSummary


@dataclass(slots=True, frozen=True)
class RepoStats:
    """Repository statistics produced by one stats run."""

    total_size: int
    total_uncompressed_size: int = 0
    compression_ratio: float = 0.0
    total_blob_count: int = 0
    snapshot_count: int = 0


@dataclass(slots=True, frozen=True)
class BackupPayload:
    """Backup operation payload with the most recent progress entry."""

    last_status: BackupProgressEntry | None = None

    @property
    def kind(self) -> OperationKind:
        return OperationKind.BACKUP


@dataclass(slots=True, frozen=True)
class StatsPayload:
    """Stats operation payload; stats stay empty until the run succeeds."""

    stats: RepoStats | None = None

    @property
    def kind(self) -> OperationKind:
        return OperationKind.STATS


OperationPayload = BackupPayload | StatsPayload


class PayloadKindChangeError(ValueError):
    """Raised when a payload update would switch the operation kind."""

    @classmethod
    def for_kinds(
        cls,
        current: OperationKind,
        requested: OperationKind,
    ) -> PayloadKindChangeError:
        """Build error naming both payload kinds."""
        message = (
            f"Operation payload kind is fixed at {current.value!r}; "
            f"cannot change to {requested.value!r}."
        )
        return cls(message)


@dataclass(slots=True, frozen=True)
class Operation:
    """One persisted unit of scheduled work and its outcome."""

    plan_id: str
    repo_id: str
    started_at: datetime
    status: OperationStatus
    payload: OperationPayload
    snapshot_id: str | None = None
    operation_id: int | None = None
    ended_at: datetime | None = None
    display_message: str | None = None

    @property
    def kind(self) -> OperationKind:
        """Return the fixed payload variant tag."""
        return self.payload.kind

    def with_payload(self, payload: OperationPayload) -> Operation:
        """Return a copy carrying new payload content of the same kind."""
        if payload.kind is not self.kind:
            raise PayloadKindChangeError.for_kinds(self.kind, payload.kind)
        return replace(self, payload=payload)

    def with_status(
        self,
        status: OperationStatus,
        *,
        display_message: str | None = None,
        ended_at: datetime | None = None,
    ) -> Operation:
        """Return a copy moved to ``status``."""
        return replace(
            self,
            status=status,
            display_message=display_message,
            ended_at=ended_at,
        )


@dataclass(slots=True, frozen=True)
class RetentionPolicy:
    """Snapshot retention counts; only presence matters to stats runs."""

    keep_last_n: int | None = None
    keep_hourly: int = 0
    keep_daily: int = 0
    keep_weekly: int = 0
    keep_monthly: int = 0
    keep_yearly: int = 0


@dataclass(slots=True, frozen=True)
class Plan:
    """Backup plan bound to one repository."""

    plan_id: str
    repo_id: str
    retention: RetentionPolicy | None = None


@dataclass(slots=True, frozen=True)
class HookConfig:
    """Notification hook attached to a repository configuration."""

    conditions: frozenset[HookCondition]
    severity: str = "high"
    name: str | None = None


@dataclass(slots=True, frozen=True)
class RepoConfig:
    """Repository configuration exposed to hook dispatch."""

    repo_id: str
    uri: str | None = None
    hooks: tuple[HookConfig, ...] = field(default_factory=tuple)

    @classmethod
    def unresolved(cls, repo_id: str) -> RepoConfig:
        """Build the empty config used when the repository cannot be resolved."""
        return cls(repo_id=repo_id)


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
