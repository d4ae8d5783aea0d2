"""Storage module for backstat."""

from .db import (
    SessionFactory,
    StorageRuntime,
    build_sqlite_url,
    create_storage_runtime,
    dispose_storage_runtime,
    open_storage_runtime,
)
from .migrations import (
    MigrationStartupError,
    build_alembic_config,
    migrate_to,
    run_startup_migrations,
)
from .notifications_repo import (
    HookNotification,
    NotificationDecodeError,
    NotificationsRepository,
    NotificationsRepositoryError,
)
from .operations_repo import (
    OperationDecodeError,
    OperationNotUpdatableError,
    OperationsRepository,
    OperationsRepositoryError,
)

__all__ = [
    "HookNotification",
    "MigrationStartupError",
    "NotificationDecodeError",
    "NotificationsRepository",
    "NotificationsRepositoryError",
    "OperationDecodeError",
    "OperationNotUpdatableError",
    "OperationsRepository",
    "OperationsRepositoryError",
    "SessionFactory",
    "StorageRuntime",
    "build_alembic_config",
    "build_sqlite_url",
    "create_storage_runtime",
    "dispose_storage_runtime",
    "migrate_to",
    "open_storage_runtime",
    "run_startup_migrations",
]
