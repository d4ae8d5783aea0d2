"""Alembic environment for the backstat SQLite operation log.

The database comes from ``sqlalchemy.url`` when the caller sets it (the
in-process runner does), otherwise from ``BACKSTAT_DB_PATH``.
"""

from __future__ import annotations

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context
from backstat.config.settings import load_settings

config = context.config
if config.config_file_name is not None and config.attributes.get(
    "configure_logger",
    True,
):
    fileConfig(config.config_file_name)

target_metadata = None


def _get_sync_url() -> str:
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    db_path = load_settings().db_path.expanduser()
    return f"sqlite:///{db_path.as_posix()}"


def run_migrations_offline() -> None:
    """Emit migration SQL without a database connection."""
    context.configure(
        url=_get_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations against the configured SQLite file."""
    connectable = create_engine(_get_sync_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
