"""Hook dispatch for backstat tasks."""

from .dispatcher import DEFAULT_HOOKS, NotificationHookDispatcher

__all__ = [
    "DEFAULT_HOOKS",
    "NotificationHookDispatcher",
]
