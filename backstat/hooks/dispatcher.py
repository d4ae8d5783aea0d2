"""Hook dispatcher that records fired hooks as notification rows."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from backstat.orchestrator.models import (
    HookCondition,
    HookConfig,
    normalize_datetime,
    utc_now,
)
from backstat.storage.notifications_repo import HookNotification

if TYPE_CHECKING:
    from collections.abc import Collection

    from backstat.orchestrator.contracts import HookVars
    from backstat.orchestrator.models import Plan, RepoConfig
    from backstat.storage import NotificationsRepository

logger = logging.getLogger(__name__)

TimeProvider = Callable[[], datetime]

DEFAULT_HOOKS: tuple[HookConfig, ...] = (
    HookConfig(
        conditions=frozenset({HookCondition.ANY_ERROR}),
        severity="high",
        name="default-error",
    ),
)


class NotificationHookDispatcher:
    """Write one notification per hook matching the fired conditions.

    Repositories without configured hooks fall back to ``DEFAULT_HOOKS`` so
    task failures are never silent. A failing hook is logged and the
    remaining hooks still run.
    """

    _notifications: NotificationsRepository
    _time_provider: TimeProvider

    def __init__(
        self,
        *,
        notifications: NotificationsRepository,
        time_provider: TimeProvider | None = None,
    ) -> None:
        self._notifications = notifications
        self._time_provider = time_provider or utc_now

    async def dispatch(  # noqa: PLR0913
        self,
        config: RepoConfig,
        plan: Plan,
        snapshot_id: str | None,
        conditions: Collection[HookCondition],
        hook_vars: HookVars,
    ) -> None:
        """Create notifications for each hook registered on ``conditions``."""
        fired = frozenset(conditions)
        hooks = config.hooks or DEFAULT_HOOKS
        for hook in hooks:
            for condition in sorted(hook.conditions & fired):
                notification = HookNotification(
                    condition=condition,
                    severity=hook.severity,
                    hook_name=hook.name,
                    task=hook_vars.task,
                    error=hook_vars.error,
                    plan_id=plan.plan_id,
                    repo_id=config.repo_id,
                    snapshot_id=snapshot_id,
                    message=_render_message(condition, hook_vars),
                    created_at=normalize_datetime(self._time_provider()),
                )
                await self._fire(notification)

    async def _fire(self, notification: HookNotification) -> None:
        try:
            _ = await self._notifications.record(notification)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Hook %s failed for condition %s",
                notification.hook_name or "<unnamed>",
                notification.condition.value,
            )


def _render_message(condition: HookCondition, hook_vars: HookVars) -> str:
    if hook_vars.error:
        return f"{hook_vars.task} failed: {hook_vars.error}"
    return f"{hook_vars.task}: {condition.value}"
