"""Async SQLAlchemy engine and session wiring for the SQLite operation log."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path
    from typing import Protocol

    from backstat.config.settings import AppSettings

    class _DBAPICursor(Protocol):
        def execute(self, statement: str) -> object: ...

        def close(self) -> None: ...

    class _DBAPIConnection(Protocol):
        def cursor(self) -> _DBAPICursor: ...


SQLITE_PRAGMA_STATEMENTS: tuple[str, ...] = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA busy_timeout=5000;",
)

SessionFactory = async_sessionmaker[AsyncSession]


@dataclass(slots=True)
class StorageRuntime:
    """Read/write engines and their session factories.

    Readers (decision scans) and writers (operation appends and status
    updates) use separate engines so long scans never hold the write path.
    """

    read_engine: AsyncEngine
    write_engine: AsyncEngine
    read_session_factory: SessionFactory
    write_session_factory: SessionFactory


def build_sqlite_url(db_path: Path) -> str:
    """Build SQLAlchemy async SQLite URL from configured db path."""
    return f"sqlite+aiosqlite:///{db_path.expanduser().as_posix()}"


def create_storage_runtime(settings: AppSettings) -> StorageRuntime:
    """Create read/write engines with corresponding session factories."""
    read_engine = _create_engine(settings.db_path)
    write_engine = _create_engine(settings.db_path)
    return StorageRuntime(
        read_engine=read_engine,
        write_engine=write_engine,
        read_session_factory=_create_session_factory(read_engine),
        write_session_factory=_create_session_factory(write_engine),
    )


async def dispose_storage_runtime(runtime: StorageRuntime) -> None:
    """Dispose read/write engines on shutdown."""
    await runtime.read_engine.dispose()
    await runtime.write_engine.dispose()


@asynccontextmanager
async def open_storage_runtime(settings: AppSettings) -> AsyncIterator[StorageRuntime]:
    """Yield a storage runtime and dispose it on exit."""
    runtime = create_storage_runtime(settings)
    try:
        yield runtime
    finally:
        await dispose_storage_runtime(runtime)


def _create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def _create_engine(db_path: Path) -> AsyncEngine:
    engine = create_async_engine(
        build_sqlite_url(db_path),
        pool_pre_ping=True,
    )
    _install_sqlite_pragma_handler(engine)
    return engine


def _install_sqlite_pragma_handler(engine: AsyncEngine) -> None:
    """Apply SQLite PRAGMAs on each fresh connection."""

    def _set_sqlite_pragmas(
        dbapi_connection: object,
        connection_record: object,
    ) -> None:
        _ = connection_record
        connection = cast("_DBAPIConnection", dbapi_connection)
        cursor = connection.cursor()
        try:
            for statement in SQLITE_PRAGMA_STATEMENTS:
                _ = cursor.execute(statement)
        finally:
            cursor.close()

    event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
