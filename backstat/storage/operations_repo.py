"""Repository for the `operations` table backing the per-repo operation log."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, cast

from sqlalchemy import text

from backstat.orchestrator.contracts import IterationDirection, VisitResult
from backstat.orchestrator.models import (
    BackupPayload,
    BackupProgressStatus,
    BackupProgressSummary,
    Operation,
    OperationKind,
    OperationStatus,
    RepoStats,
    StatsPayload,
)

if TYPE_CHECKING:
    from backstat.orchestrator.contracts import OperationVisitor
    from backstat.orchestrator.models import BackupProgressEntry, OperationPayload
    from backstat.storage.db import SessionFactory

DEFAULT_PAGE_SIZE = 50

_OPERATION_COLUMNS = """
    id,
    plan_id,
    repo_id,
    snapshot_id,
    kind,
    status,
    unix_time_start_ms,
    unix_time_end_ms,
    display_message,
    payload_json
"""


class OperationsRepositoryError(RuntimeError):
    """Base exception for operation log repository failures."""


class OperationDecodeError(OperationsRepositoryError):
    """Raised when a stored operation row cannot be decoded."""

    @classmethod
    def for_field(cls, field: str, *, operation_id: object) -> OperationDecodeError:
        """Build decode error naming the invalid column."""
        message = f"Operation row {operation_id!r} has invalid {field}."
        return cls(message)


class OperationNotUpdatableError(OperationsRepositoryError):
    """Raised when an update targets a missing, settled or re-kinded operation."""

    @classmethod
    def for_operation(cls, operation: Operation) -> OperationNotUpdatableError:
        """Build error for an update that matched no unsettled row."""
        message = (
            f"Operation {operation.operation_id!r} is missing, already settled, "
            f"or not a {operation.kind.value!r} operation."
        )
        return cls(message)


class OperationsRepository:
    """Append, update and walk operation rows for the decision engine."""

    _read_session_factory: SessionFactory
    _write_session_factory: SessionFactory
    _page_size: int

    def __init__(
        self,
        *,
        read_session_factory: SessionFactory,
        write_session_factory: SessionFactory,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        """Create repository with explicit read/write session dependencies."""
        self._read_session_factory = read_session_factory
        self._write_session_factory = write_session_factory
        self._page_size = page_size

    async def append(self, operation: Operation) -> Operation:
        """Insert a new operation row and return it with the assigned id."""
        if operation.operation_id is not None:
            msg = f"Operation {operation.operation_id} is already persisted."
            raise OperationsRepositoryError(msg)
        statement = text(
            f"""
            INSERT INTO operations (
                plan_id,
                repo_id,
                snapshot_id,
                kind,
                status,
                unix_time_start_ms,
                unix_time_end_ms,
                display_message,
                payload_json
            )
            VALUES (
                :plan_id,
                :repo_id,
                :snapshot_id,
                :kind,
                :status,
                :unix_time_start_ms,
                :unix_time_end_ms,
                :display_message,
                :payload_json
            )
            RETURNING {_OPERATION_COLUMNS}
            """,  # noqa: S608
        )
        async with self._write_session_factory() as session:
            result = await session.execute(statement, _encode_operation(operation))
            row = result.mappings().one()
            await session.commit()
        return _decode_operation_row(row)

    async def update(self, operation: Operation) -> Operation:
        """Persist status, end time, message and payload of an unsettled row."""
        statement = text(
            f"""
            UPDATE operations
            SET status = :status,
                unix_time_end_ms = :unix_time_end_ms,
                display_message = :display_message,
                payload_json = :payload_json
            WHERE id = :id
              AND kind = :kind
              AND status IN ('pending', 'in_progress')
            RETURNING {_OPERATION_COLUMNS}
            """,  # noqa: S608
        )
        params = _encode_operation(operation)
        params["id"] = operation.operation_id
        async with self._write_session_factory() as session:
            result = await session.execute(statement, params)
            row = result.mappings().one_or_none()
            if row is None:
                await session.rollback()
                raise OperationNotUpdatableError.for_operation(operation)
            await session.commit()
        return _decode_operation_row(row)

    async def get_by_id(self, *, operation_id: int) -> Operation | None:
        """Return one operation by id, or None when absent."""
        statement = text(
            f"SELECT {_OPERATION_COLUMNS} FROM operations WHERE id = :id",  # noqa: S608
        )
        async with self._read_session_factory() as session:
            result = await session.execute(statement, {"id": operation_id})
            row = result.mappings().one_or_none()
        if row is None:
            return None
        return _decode_operation_row(row)

    async def iterate(
        self,
        repo_id: str,
        *,
        direction: IterationDirection,
        visitor: OperationVisitor,
    ) -> None:
        """Visit a repository's operations page by page in id order.

        Pages are read in short sessions; the visitor runs outside them and
        may stop the walk by returning ``VisitResult.STOP``.
        """
        cursor: int | None = None
        while True:
            page = await self._read_page(repo_id, direction=direction, cursor=cursor)
            for operation in page:
                if visitor(operation) is VisitResult.STOP:
                    return
            if len(page) < self._page_size:
                return
            cursor = page[-1].operation_id

    async def _read_page(
        self,
        repo_id: str,
        *,
        direction: IterationDirection,
        cursor: int | None,
    ) -> list[Operation]:
        conditions = ["repo_id = :repo_id"]
        params: dict[str, object] = {"repo_id": repo_id, "limit": self._page_size}
        if direction is IterationDirection.REVERSE:
            order = "DESC"
            if cursor is not None:
                conditions.append("id < :cursor")
        else:
            order = "ASC"
            if cursor is not None:
                conditions.append("id > :cursor")
        if cursor is not None:
            params["cursor"] = cursor
        statement = text(
            f"""
            SELECT {_OPERATION_COLUMNS}
            FROM operations
            WHERE {" AND ".join(conditions)}
            ORDER BY id {order}
            LIMIT :limit
            """,  # noqa: S608
        )
        async with self._read_session_factory() as session:
            result = await session.execute(statement, params)
            rows = result.mappings().all()
        return [_decode_operation_row(row) for row in rows]


def _encode_operation(operation: Operation) -> dict[str, object]:
    return {
        "plan_id": operation.plan_id,
        "repo_id": operation.repo_id,
        "snapshot_id": operation.snapshot_id,
        "kind": operation.kind.value,
        "status": operation.status.value,
        "unix_time_start_ms": _to_unix_millis(operation.started_at),
        "unix_time_end_ms": (
            _to_unix_millis(operation.ended_at)
            if operation.ended_at is not None
            else None
        ),
        "display_message": operation.display_message,
        "payload_json": json.dumps(
            _encode_payload(operation.payload),
            separators=(",", ":"),
            sort_keys=True,
        ),
    }


def _encode_payload(payload: OperationPayload) -> dict[str, object]:
    match payload:
        case BackupPayload(last_status=last_status):
            return {"last_status": _encode_progress_entry(last_status)}
        case StatsPayload(stats=None):
            return {"stats": None}
        case StatsPayload(stats=RepoStats() as stats):
            return {
                "stats": {
                    "total_size": stats.total_size,
                    "total_uncompressed_size": stats.total_uncompressed_size,
                    "compression_ratio": stats.compression_ratio,
                    "total_blob_count": stats.total_blob_count,
                    "snapshot_count": stats.snapshot_count,
                },
            }


def _encode_progress_entry(entry: BackupProgressEntry | None) -> object:
    match entry:
        case None:
            return None
        case BackupProgressSummary():
            return {
                "type": "summary",
                "data_added": entry.data_added,
                "files_new": entry.files_new,
                "files_changed": entry.files_changed,
                "snapshot_id": entry.snapshot_id,
            }
        case BackupProgressStatus():
            return {
                "type": "status",
                "percent_done": entry.percent_done,
                "bytes_done": entry.bytes_done,
                "total_bytes": entry.total_bytes,
            }


def _decode_operation_row(row: object) -> Operation:
    row_map = cast("dict[str, object]", row)
    operation_id = row_map.get("id")
    plan_id = row_map.get("plan_id")
    repo_id = row_map.get("repo_id")
    snapshot_id = row_map.get("snapshot_id")
    kind = row_map.get("kind")
    status = row_map.get("status")
    start_ms = row_map.get("unix_time_start_ms")
    end_ms = row_map.get("unix_time_end_ms")
    display_message = row_map.get("display_message")
    payload_json = row_map.get("payload_json")

    if not isinstance(operation_id, int):
        raise OperationsRepositoryError("Operation row missing id.")
    if not isinstance(plan_id, str):
        raise OperationDecodeError.for_field("plan_id", operation_id=operation_id)
    if not isinstance(repo_id, str):
        raise OperationDecodeError.for_field("repo_id", operation_id=operation_id)
    if snapshot_id is not None and not isinstance(snapshot_id, str):
        raise OperationDecodeError.for_field("snapshot_id", operation_id=operation_id)
    if not isinstance(start_ms, int):
        raise OperationDecodeError.for_field(
            "unix_time_start_ms",
            operation_id=operation_id,
        )
    if end_ms is not None and not isinstance(end_ms, int):
        raise OperationDecodeError.for_field(
            "unix_time_end_ms",
            operation_id=operation_id,
        )
    if display_message is not None and not isinstance(display_message, str):
        raise OperationDecodeError.for_field(
            "display_message",
            operation_id=operation_id,
        )
    try:
        operation_kind = OperationKind(cast("str", kind))
        operation_status = OperationStatus(cast("str", status))
    except ValueError as exc:
        raise OperationDecodeError.for_field(
            "kind/status",
            operation_id=operation_id,
        ) from exc

    return Operation(
        operation_id=operation_id,
        plan_id=plan_id,
        repo_id=repo_id,
        snapshot_id=snapshot_id,
        started_at=_from_unix_millis(start_ms),
        ended_at=_from_unix_millis(end_ms) if end_ms is not None else None,
        status=operation_status,
        display_message=display_message,
        payload=_decode_payload(
            operation_kind,
            payload_json,
            operation_id=operation_id,
        ),
    )


def _decode_payload(
    kind: OperationKind,
    payload_json: object,
    *,
    operation_id: int,
) -> OperationPayload:
    if payload_json is None:
        data: dict[str, object] = {}
    elif isinstance(payload_json, str):
        try:
            data = cast("dict[str, object]", json.loads(payload_json))
        except ValueError as exc:
            raise OperationDecodeError.for_field(
                "payload_json",
                operation_id=operation_id,
            ) from exc
        if not isinstance(data, dict):
            raise OperationDecodeError.for_field(
                "payload_json",
                operation_id=operation_id,
            )
    else:
        raise OperationDecodeError.for_field("payload_json", operation_id=operation_id)

    if kind is OperationKind.STATS:
        return StatsPayload(
            stats=_decode_stats(data.get("stats"), operation_id=operation_id),
        )
    return BackupPayload(
        last_status=_decode_progress_entry(
            data.get("last_status"),
            operation_id=operation_id,
        ),
    )


def _decode_stats(value: object, *, operation_id: int) -> RepoStats | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise OperationDecodeError.for_field("stats", operation_id=operation_id)
    fields = _PayloadFields(cast("dict[str, object]", value), operation_id)
    return RepoStats(
        total_size=fields.required_int("total_size"),
        total_uncompressed_size=fields.optional_int("total_uncompressed_size"),
        compression_ratio=fields.optional_float("compression_ratio"),
        total_blob_count=fields.optional_int("total_blob_count"),
        snapshot_count=fields.optional_int("snapshot_count"),
    )


def _decode_progress_entry(
    value: object,
    *,
    operation_id: int,
) -> BackupProgressEntry | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise OperationDecodeError.for_field("last_status", operation_id=operation_id)
    fields = _PayloadFields(cast("dict[str, object]", value), operation_id)
    entry_type = fields.values.get("type")
    if entry_type == "summary":
        return BackupProgressSummary(
            data_added=fields.required_int("data_added"),
            files_new=fields.optional_int("files_new"),
            files_changed=fields.optional_int("files_changed"),
            snapshot_id=fields.optional_str("snapshot_id"),
        )
    if entry_type == "status":
        return BackupProgressStatus(
            percent_done=fields.required_float("percent_done"),
            bytes_done=fields.required_int("bytes_done"),
            total_bytes=fields.required_int("total_bytes"),
        )
    raise OperationDecodeError.for_field("last_status", operation_id=operation_id)


class _PayloadFields:
    """Typed access to one decoded payload object.

    Required fields must be present with the right type. Optional counters
    default to zero only when absent; a present value of the wrong type is
    still a decode error.
    """

    __slots__ = ("_operation_id", "values")

    def __init__(self, values: dict[str, object], operation_id: int) -> None:
        self.values = values
        self._operation_id = operation_id

    def required_int(self, name: str) -> int:
        value = self.values.get(name)
        if not _is_int(value):
            raise OperationDecodeError.for_field(name, operation_id=self._operation_id)
        return cast("int", value)

    def optional_int(self, name: str) -> int:
        if self.values.get(name) is None:
            return 0
        return self.required_int(name)

    def required_float(self, name: str) -> float:
        value = self.values.get(name)
        if not (_is_int(value) or isinstance(value, float)):
            raise OperationDecodeError.for_field(name, operation_id=self._operation_id)
        return float(cast("float", value))

    def optional_float(self, name: str) -> float:
        if self.values.get(name) is None:
            return 0.0
        return self.required_float(name)

    def optional_str(self, name: str) -> str | None:
        value = self.values.get(name)
        if value is None or isinstance(value, str):
            return value
        raise OperationDecodeError.for_field(name, operation_id=self._operation_id)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _to_unix_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def _from_unix_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)
