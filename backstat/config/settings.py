"""Typed application settings loaded from static environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from backstat.orchestrator.decision import StatsThresholds

LogLevel = str

ENV_DB_PATH = "BACKSTAT_DB_PATH"
ENV_LOG_LEVEL = "BACKSTAT_LOG_LEVEL"
ENV_STATS_BYTES_THRESHOLD = "BACKSTAT_STATS_BYTES_THRESHOLD"
ENV_STATS_OPERATIONS_THRESHOLD = "BACKSTAT_STATS_OPERATIONS_THRESHOLD"

DEFAULT_DB_PATH = Path("/data/backstat.db")
DEFAULT_LOG_LEVEL: LogLevel = "INFO"
DEFAULT_STATS_BYTES_THRESHOLD = 10 * 1024 * 1024 * 1024
DEFAULT_STATS_OPERATIONS_THRESHOLD = 100

VALID_LOG_LEVELS: frozenset[LogLevel] = frozenset(
    {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"},
)


class SettingsValidationError(ValueError):
    """Raised when static settings env vars contain invalid values."""

    @classmethod
    def for_empty_value(cls, env_var: str) -> SettingsValidationError:
        """Build error for empty non-optional env var values."""
        message = f"Invalid {env_var}: value cannot be empty."
        return cls(message)

    @classmethod
    def for_invalid_choice(
        cls,
        env_var: str,
        value: str,
        allowed_values: str,
    ) -> SettingsValidationError:
        """Build error for enum-like env vars with fixed allowlists."""
        message = f"Invalid {env_var}: {value!r}. Allowed values: {allowed_values}."
        return cls(message)

    @classmethod
    def for_non_positive_integer(
        cls,
        env_var: str,
        value: str,
    ) -> SettingsValidationError:
        """Build error for threshold env vars that must be positive integers."""
        message = f"Invalid {env_var}: {value!r}. Expected a positive integer."
        return cls(message)


@dataclass(frozen=True, slots=True)
class AppSettings:
    """Resolved static configuration values for process startup."""

    db_path: Path
    log_level: LogLevel
    stats_bytes_threshold: int
    stats_operations_threshold: int

    def stats_thresholds(self) -> StatsThresholds:
        """Build decision engine thresholds from resolved settings."""
        from backstat.orchestrator.decision import StatsThresholds

        return StatsThresholds(
            bytes_threshold=self.stats_bytes_threshold,
            operations_threshold=self.stats_operations_threshold,
        )


def load_settings(environ: Mapping[str, str] | None = None) -> AppSettings:
    """Load and validate static settings from process environment."""
    env = os.environ if environ is None else environ

    return AppSettings(
        db_path=_read_db_path(env),
        log_level=_read_log_level(env),
        stats_bytes_threshold=_read_positive_int(
            env,
            ENV_STATS_BYTES_THRESHOLD,
            DEFAULT_STATS_BYTES_THRESHOLD,
        ),
        stats_operations_threshold=_read_positive_int(
            env,
            ENV_STATS_OPERATIONS_THRESHOLD,
            DEFAULT_STATS_OPERATIONS_THRESHOLD,
        ),
    )


def _read_db_path(environ: Mapping[str, str]) -> Path:
    raw = environ.get(ENV_DB_PATH)
    if raw is None:
        return DEFAULT_DB_PATH
    value = raw.strip()
    if not value:
        raise SettingsValidationError.for_empty_value(ENV_DB_PATH)
    return Path(value).expanduser()


def _read_log_level(environ: Mapping[str, str]) -> LogLevel:
    raw = environ.get(ENV_LOG_LEVEL)
    if raw is None:
        return DEFAULT_LOG_LEVEL
    value = raw.strip().upper()
    if value in VALID_LOG_LEVELS:
        return value
    allowed = ", ".join(sorted(VALID_LOG_LEVELS))
    raise SettingsValidationError.for_invalid_choice(ENV_LOG_LEVEL, raw, allowed)


def _read_positive_int(
    environ: Mapping[str, str],
    env_var: str,
    default_value: int,
) -> int:
    raw = environ.get(env_var)
    if raw is None:
        return default_value
    value = raw.strip()
    if not value:
        raise SettingsValidationError.for_empty_value(env_var)
    try:
        parsed = int(value)
    except ValueError as exc:
        raise SettingsValidationError.for_non_positive_integer(env_var, raw) from exc
    if parsed <= 0:
        raise SettingsValidationError.for_non_positive_integer(env_var, raw)
    return parsed
