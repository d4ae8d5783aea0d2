"""Configuration module for backstat."""

from .logging import (
    JSONFormatter,
    bind_task_context,
    correlation_id,
    init_logging,
    task_name,
)
from .settings import AppSettings, SettingsValidationError, load_settings

__all__ = [
    "AppSettings",
    "JSONFormatter",
    "SettingsValidationError",
    "bind_task_context",
    "correlation_id",
    "init_logging",
    "load_settings",
    "task_name",
]
