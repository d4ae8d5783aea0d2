"""Apply the operation log schema with Alembic's command API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config
from alembic.util import CommandError
from sqlalchemy.exc import SQLAlchemyError

from backstat.config.settings import load_settings

if TYPE_CHECKING:
    from backstat.config.settings import AppSettings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ALEMBIC_INI_PATH = PROJECT_ROOT / "alembic.ini"
ALEMBIC_SCRIPT_PATH = PROJECT_ROOT / "alembic"


class MigrationStartupError(RuntimeError):
    """Raised when the schema cannot be brought to head before scheduling."""

    @classmethod
    def for_db_directory(cls, db_path: Path, *, details: str) -> MigrationStartupError:
        """Build error for a database directory that cannot be created."""
        message = f"Cannot create directory for {db_path.as_posix()}: {details}"
        return cls(message)

    @classmethod
    def for_revision(
        cls,
        db_path: Path,
        *,
        revision: str,
        details: str,
    ) -> MigrationStartupError:
        """Build error for a failed move to ``revision``."""
        message = (
            f"Migrating {db_path.as_posix()} to revision {revision!r} "
            f"failed: {details}"
        )
        return cls(message)


def build_alembic_config(db_path: Path) -> Config:
    """Build an in-process Alembic config bound to ``db_path``.

    The config leaves process logging alone so module loggers stay enabled.
    """
    config = Config(ALEMBIC_INI_PATH.as_posix())
    config.set_main_option("script_location", ALEMBIC_SCRIPT_PATH.as_posix())
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path.as_posix()}")
    config.attributes["configure_logger"] = False
    return config


def migrate_to(db_path: Path, revision: str = "head") -> None:
    """Upgrade, or downgrade for ``base`` and relative targets, to ``revision``."""
    config = build_alembic_config(db_path)
    try:
        if revision == "base" or revision.startswith("-"):
            command.downgrade(config, revision)
        else:
            command.upgrade(config, revision)
    except (CommandError, SQLAlchemyError) as exc:
        raise MigrationStartupError.for_revision(
            db_path,
            revision=revision,
            details=str(exc),
        ) from exc


def run_startup_migrations(settings: AppSettings | None = None) -> None:
    """Create the database directory and upgrade the schema to head."""
    db_path = (settings or load_settings()).db_path.expanduser()
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise MigrationStartupError.for_db_directory(db_path, details=str(exc)) from exc

    logger.info("Upgrading operation log schema (db=%s)", db_path)
    migrate_to(db_path, "head")
    logger.info("Operation log schema at head (db=%s)", db_path)
