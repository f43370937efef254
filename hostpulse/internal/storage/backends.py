# hostpulse/internal/storage/backends.py

from dataclasses import dataclass
from typing import Awaitable, Callable

from hostpulse.internal.config.config import DBSettings
from hostpulse.internal.storage.ports import AlertLedger, MetricsRepository


@dataclass
class StorageBackend:
    repository: MetricsRepository
    alerts: AlertLedger
    close: Callable[[], Awaitable[None]]


async def open_storage(settings: DBSettings) -> StorageBackend:
    """
    Opens the configured database and returns both ports over it.
    Schema creation happens on open for either backend.
    """
    if settings.backend == "postgres":
        from hostpulse.internal.storage.postgres import (
            PostgresAlertLedger,
            PostgresDatabase,
            PostgresMetricsRepository,
        )

        db = PostgresDatabase(
            settings.dsn,
            min_size=settings.min_pool_size,
            max_size=settings.max_pool_size,
        )
        await db.connect()
        return StorageBackend(
            repository=PostgresMetricsRepository(db),
            alerts=PostgresAlertLedger(db),
            close=db.close,
        )

    from hostpulse.internal.storage.sqlite import (
        SqliteAlertLedger,
        SqliteDatabase,
        SqliteMetricsRepository,
    )

    db = SqliteDatabase(settings.path)

    async def _close():
        db.close()

    return StorageBackend(
        repository=SqliteMetricsRepository(db),
        alerts=SqliteAlertLedger(db),
        close=_close,
    )
