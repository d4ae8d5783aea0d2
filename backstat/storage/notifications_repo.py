"""Hook notification rows: one per fired hook condition."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, cast

from sqlalchemy import bindparam, text

from backstat.orchestrator.models import HookCondition, normalize_datetime

if TYPE_CHECKING:
    from collections.abc import Collection

    from backstat.storage.db import SessionFactory

DEFAULT_LIST_LIMIT = 100

_NOTIFICATION_COLUMNS = """
    id,
    condition,
    severity,
    hook_name,
    task,
    error,
    plan_id,
    repo_id,
    snapshot_id,
    message,
    created_at_ms
"""


@dataclass(slots=True, frozen=True)
class HookNotification:
    """A fired hook as stored for operators to read."""

    condition: HookCondition
    severity: str
    task: str
    plan_id: str
    repo_id: str
    message: str
    created_at: datetime
    error: str | None = None
    snapshot_id: str | None = None
    hook_name: str | None = None
    notification_id: int | None = None


class NotificationsRepositoryError(RuntimeError):
    """Base exception for hook notification storage."""


class NotificationDecodeError(NotificationsRepositoryError):
    """Raised when a stored notification row cannot be decoded."""

    @classmethod
    def for_field(cls, field: str, *, notification_id: object) -> NotificationDecodeError:
        """Build decode error naming the invalid column."""
        message = f"Notification row {notification_id!r} has invalid {field}."
        return cls(message)


class NotificationsRepository:
    """Record hook notifications and list them per repository."""

    _read_session_factory: SessionFactory
    _write_session_factory: SessionFactory

    def __init__(
        self,
        *,
        read_session_factory: SessionFactory,
        write_session_factory: SessionFactory,
    ) -> None:
        """Create repository with explicit read/write session dependencies."""
        self._read_session_factory = read_session_factory
        self._write_session_factory = write_session_factory

    async def record(self, notification: HookNotification) -> HookNotification:
        """Insert ``notification`` and return it with its assigned id."""
        if notification.notification_id is not None:
            msg = f"Notification {notification.notification_id} is already stored."
            raise NotificationsRepositoryError(msg)
        statement = text(
            """
            INSERT INTO notifications (
                condition,
                severity,
                hook_name,
                task,
                error,
                plan_id,
                repo_id,
                snapshot_id,
                message,
                created_at_ms
            )
            VALUES (
                :condition,
                :severity,
                :hook_name,
                :task,
                :error,
                :plan_id,
                :repo_id,
                :snapshot_id,
                :message,
                :created_at_ms
            )
            RETURNING id
            """,
        )
        async with self._write_session_factory() as session:
            result = await session.execute(statement, _encode(notification))
            notification_id = cast("int", result.scalar_one())
            await session.commit()
        return replace(notification, notification_id=notification_id)

    async def list_for_repo(
        self,
        repo_id: str,
        *,
        conditions: Collection[HookCondition] | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[HookNotification]:
        """List a repository's notifications newest first."""
        clauses = ["repo_id = :repo_id"]
        params: dict[str, object] = {"repo_id": repo_id, "limit": limit}
        if conditions:
            clauses.append("condition IN :conditions")
            params["conditions"] = sorted(condition.value for condition in conditions)
        statement = text(
            f"""
            SELECT {_NOTIFICATION_COLUMNS}
            FROM notifications
            WHERE {" AND ".join(clauses)}
            ORDER BY id DESC
            LIMIT :limit
            """,  # noqa: S608
        )
        if conditions:
            statement = statement.bindparams(bindparam("conditions", expanding=True))

        async with self._read_session_factory() as session:
            result = await session.execute(statement, params)
            rows = result.mappings().all()
        return [_decode(row) for row in rows]


def _encode(notification: HookNotification) -> dict[str, object]:
    created_at = normalize_datetime(notification.created_at)
    return {
        "condition": notification.condition.value,
        "severity": notification.severity,
        "hook_name": notification.hook_name,
        "task": notification.task,
        "error": notification.error,
        "plan_id": notification.plan_id,
        "repo_id": notification.repo_id,
        "snapshot_id": notification.snapshot_id,
        "message": notification.message,
        "created_at_ms": int(created_at.timestamp() * 1000),
    }


def _decode(row: object) -> HookNotification:
    row_map = cast("dict[str, object]", row)
    notification_id = row_map.get("id")
    if not isinstance(notification_id, int):
        raise NotificationsRepositoryError("Notification row missing id.")

    def _text(field: str, *, optional: bool = False) -> str | None:
        value = row_map.get(field)
        if isinstance(value, str) or (optional and value is None):
            return value
        raise NotificationDecodeError.for_field(field, notification_id=notification_id)

    created_at_ms = row_map.get("created_at_ms")
    if not isinstance(created_at_ms, int):
        raise NotificationDecodeError.for_field(
            "created_at_ms",
            notification_id=notification_id,
        )
    try:
        condition = HookCondition(cast("str", row_map.get("condition")))
    except ValueError as exc:
        raise NotificationDecodeError.for_field(
            "condition",
            notification_id=notification_id,
        ) from exc

    return HookNotification(
        notification_id=notification_id,
        condition=condition,
        severity=cast("str", _text("severity")),
        hook_name=_text("hook_name", optional=True),
        task=cast("str", _text("task")),
        error=_text("error", optional=True),
        plan_id=cast("str", _text("plan_id")),
        repo_id=cast("str", _text("repo_id")),
        snapshot_id=_text("snapshot_id", optional=True),
        message=cast("str", _text("message")),
        created_at=datetime.fromtimestamp(created_at_ms / 1000, tz=UTC),
    )
