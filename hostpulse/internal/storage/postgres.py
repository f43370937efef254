# hostpulse/internal/storage/postgres.py

import logging
from datetime import datetime

import asyncpg

from hostpulse.internal.errors import StorageError
from hostpulse.internal.storage.ports import AlertLedger, MetricsRepository
from hostpulse.internal.utils.timeutil import ensure_utc, utc_now
from hostpulse.models.alerts import AlertRecord, AlertType
from hostpulse.models.metrics import AggregatedBucket, RawRow, Sample

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS raw_samples (
    id          BIGSERIAL PRIMARY KEY,
    target      TEXT NOT NULL,
    timestamp   TIMESTAMP WITH TIME ZONE NOT NULL,
    cpu_pct     DOUBLE PRECISION NOT NULL,
    load1       DOUBLE PRECISION NOT NULL,
    load5       DOUBLE PRECISION NOT NULL,
    load15      DOUBLE PRECISION NOT NULL,
    mem_total   BIGINT NOT NULL,
    mem_used    BIGINT NOT NULL,
    mem_avail   BIGINT NOT NULL,
    mem_cached  BIGINT NOT NULL,
    swap_total  BIGINT NOT NULL,
    swap_used   BIGINT NOT NULL,
    disk_total  BIGINT NOT NULL,
    disk_used   BIGINT NOT NULL,
    disk_avail  BIGINT NOT NULL,
    disk_pct    DOUBLE PRECISION NOT NULL,
    net_rx      BIGINT NOT NULL,
    net_tx      BIGINT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_raw_target_time ON raw_samples(target, timestamp);
CREATE INDEX IF NOT EXISTS idx_raw_time ON raw_samples(timestamp);

CREATE TABLE IF NOT EXISTS aggregated_buckets (
    id            BIGSERIAL PRIMARY KEY,
    target        TEXT NOT NULL,
    period_start  TIMESTAMP WITH TIME ZONE NOT NULL,
    period_end    TIMESTAMP WITH TIME ZONE NOT NULL,
    sample_count  INTEGER NOT NULL,
    cpu_min       DOUBLE PRECISION NOT NULL,
    cpu_avg       DOUBLE PRECISION NOT NULL,
    cpu_max       DOUBLE PRECISION NOT NULL,
    mem_used_min  BIGINT NOT NULL,
    mem_used_avg  BIGINT NOT NULL,
    mem_used_max  BIGINT NOT NULL,
    mem_total     BIGINT NOT NULL,
    disk_min      DOUBLE PRECISION NOT NULL,
    disk_avg      DOUBLE PRECISION NOT NULL,
    disk_max      DOUBLE PRECISION NOT NULL,
    net_rx_total  BIGINT NOT NULL,
    net_tx_total  BIGINT NOT NULL,
    net_rx_peak   BIGINT NOT NULL,
    net_tx_peak   BIGINT NOT NULL,
    UNIQUE (target, period_start)
);
CREATE INDEX IF NOT EXISTS idx_agg_start ON aggregated_buckets(period_start);

CREATE TABLE IF NOT EXISTS alert_log (
    id            BIGSERIAL PRIMARY KEY,
    target        TEXT NOT NULL,
    alert_type    VARCHAR(16) NOT NULL,
    threshold     DOUBLE PRECISION NOT NULL,
    actual_value  DOUBLE PRECISION NOT NULL,
    timestamp     TIMESTAMP WITH TIME ZONE NOT NULL,
    acknowledged  BOOLEAN NOT NULL DEFAULT FALSE
);
CREATE INDEX IF NOT EXISTS idx_alert_target_time ON alert_log(target, timestamp DESC);
"""

RAW_COLUMNS = (
    "target", "timestamp", "cpu_pct", "load1", "load5", "load15",
    "mem_total", "mem_used", "mem_avail", "mem_cached", "swap_total", "swap_used",
    "disk_total", "disk_used", "disk_avail", "disk_pct", "net_rx", "net_tx",
)

BUCKET_COLUMNS = (
    "period_start", "period_end", "sample_count",
    "cpu_min", "cpu_avg", "cpu_max",
    "mem_used_min", "mem_used_avg", "mem_used_max", "mem_total",
    "disk_min", "disk_avg", "disk_max",
    "net_rx_total", "net_tx_total", "net_rx_peak", "net_tx_peak",
)

AGGREGATE_SQL = f"""
INSERT INTO aggregated_buckets (target, {", ".join(BUCKET_COLUMNS)})
SELECT
    target,
    date_trunc('minute', timestamp) AS bucket_start,
    date_trunc('minute', timestamp) + INTERVAL '1 minute',
    COUNT(*),
    MIN(cpu_pct), AVG(cpu_pct), MAX(cpu_pct),
    MIN(mem_used), FLOOR(AVG(mem_used))::BIGINT, MAX(mem_used),
    MAX(mem_total),
    MIN(disk_pct), AVG(disk_pct), MAX(disk_pct),
    SUM(net_rx)::BIGINT, SUM(net_tx)::BIGINT,
    MAX(net_rx), MAX(net_tx)
FROM raw_samples
WHERE timestamp >= $1 AND timestamp < $2
GROUP BY target, bucket_start
ON CONFLICT (target, period_start) DO NOTHING
"""


def _affected(status: str) -> int:
    """asyncpg returns command tags such as 'DELETE 3' or 'INSERT 0 5'."""
    return int(status.split()[-1])


class PostgresDatabase:
    """
    Owns the asyncpg connection pool shared by the Postgres repository and
    alert ledger.
    """

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.pool: asyncpg.Pool | None = None

    async def connect(self):
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to create database pool: {e}") from e
        logger.info("Database connection pool established.")

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed.")

    def get_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise StorageError("Database pool not initialised")
        return self.pool


class PostgresMetricsRepository(MetricsRepository):

    def __init__(self, db: PostgresDatabase):
        self.db = db

    async def store_raw(self, sample: Sample) -> None:
        values = RawRow.from_sample(sample).model_dump()
        values["timestamp"] = ensure_utc(values["timestamp"])
        placeholders = ", ".join(f"${i}" for i in range(1, len(RAW_COLUMNS) + 1))
        sql = f"INSERT INTO raw_samples ({', '.join(RAW_COLUMNS)}) VALUES ({placeholders})"
        try:
            async with self.db.get_pool().acquire() as conn:
                await conn.execute(sql, *(values[key] for key in RAW_COLUMNS))
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to store raw sample: {e}") from e

    async def query_raw(self, target: str, start: datetime, end: datetime) -> list[RawRow]:
        sql = """
        SELECT * FROM raw_samples
        WHERE target = $1 AND timestamp >= $2 AND timestamp <= $3
        ORDER BY timestamp ASC, id ASC
        """
        try:
            async with self.db.get_pool().acquire() as conn:
                rows = await conn.fetch(sql, target, ensure_utc(start), ensure_utc(end))
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to query raw samples: {e}") from e
        return [RawRow(**{key: row[key] for key in RAW_COLUMNS}) for row in rows]

    async def store_aggregated(self, target: str, bucket: AggregatedBucket) -> None:
        values = bucket.model_dump()
        placeholders = ", ".join(f"${i}" for i in range(1, len(BUCKET_COLUMNS) + 2))
        sql = (
            f"INSERT INTO aggregated_buckets (target, {', '.join(BUCKET_COLUMNS)}) "
            f"VALUES ({placeholders}) ON CONFLICT (target, period_start) DO NOTHING"
        )
        values["period_start"] = ensure_utc(values["period_start"])
        values["period_end"] = ensure_utc(values["period_end"])
        try:
            async with self.db.get_pool().acquire() as conn:
                await conn.execute(sql, target, *(values[key] for key in BUCKET_COLUMNS))
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to store aggregated bucket: {e}") from e

    async def query_aggregated(
        self, target: str, start: datetime, end: datetime
    ) -> list[AggregatedBucket]:
        sql = """
        SELECT * FROM aggregated_buckets
        WHERE target = $1 AND period_start >= $2 AND period_start <= $3
        ORDER BY period_start ASC
        """
        try:
            async with self.db.get_pool().acquire() as conn:
                rows = await conn.fetch(sql, target, ensure_utc(start), ensure_utc(end))
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to query aggregated buckets: {e}") from e
        return [AggregatedBucket(**{key: row[key] for key in BUCKET_COLUMNS}) for row in rows]

    async def aggregate_raw_buckets(self, window_start: datetime, window_end: datetime) -> int:
        try:
            async with self.db.get_pool().acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(
                        AGGREGATE_SQL, ensure_utc(window_start), ensure_utc(window_end)
                    )
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to aggregate raw samples: {e}") from e
        return _affected(status)

    async def purge_raw_before(self, before: datetime) -> int:
        return await self._delete("DELETE FROM raw_samples WHERE timestamp < $1", before)

    async def purge_aggregated_before(self, before: datetime) -> int:
        return await self._delete("DELETE FROM aggregated_buckets WHERE period_start < $1", before)

    async def _delete(self, sql: str, before: datetime) -> int:
        try:
            async with self.db.get_pool().acquire() as conn:
                status = await conn.execute(sql, ensure_utc(before))
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Purge failed: {e}") from e
        return _affected(status)


class PostgresAlertLedger(AlertLedger):

    def __init__(self, db: PostgresDatabase):
        self.db = db

    async def record_alert(
        self,
        target: str,
        alert_type: AlertType,
        threshold: float,
        actual_value: float,
        timestamp: datetime | None = None,
    ) -> AlertRecord:
        sql = """
        INSERT INTO alert_log (target, alert_type, threshold, actual_value, timestamp)
        VALUES ($1, $2, $3, $4, $5)
        RETURNING *
        """
        ts = ensure_utc(timestamp or utc_now())
        try:
            async with self.db.get_pool().acquire() as conn:
                row = await conn.fetchrow(
                    sql, target, AlertType(alert_type).value, threshold, actual_value, ts
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to record alert: {e}") from e
        return AlertRecord(**dict(row))

    async def get_recent_alerts(self, target: str, limit: int) -> list[AlertRecord]:
        sql = """
        SELECT * FROM alert_log
        WHERE target = $1
        ORDER BY timestamp DESC, id DESC
        LIMIT $2
        """
        try:
            async with self.db.get_pool().acquire() as conn:
                rows = await conn.fetch(sql, target, max(0, int(limit)))
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to fetch alerts: {e}") from e
        return [AlertRecord(**dict(row)) for row in rows]

    async def acknowledge_alert(self, alert_id: int) -> None:
        try:
            async with self.db.get_pool().acquire() as conn:
                await conn.execute("UPDATE alert_log SET acknowledged = TRUE WHERE id = $1", alert_id)
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to acknowledge alert {alert_id}: {e}") from e

    async def purge_before(self, before: datetime) -> int:
        try:
            async with self.db.get_pool().acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM alert_log WHERE timestamp < $1", ensure_utc(before)
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Failed to purge alerts: {e}") from e
        return _affected(status)
