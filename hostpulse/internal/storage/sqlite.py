# hostpulse/internal/storage/sqlite.py

import asyncio
import contextlib
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, TypeVar

from hostpulse.internal.errors import StorageError
from hostpulse.internal.storage.ports import AlertLedger, MetricsRepository
from hostpulse.internal.utils.timeutil import from_epoch, to_epoch, utc_now
from hostpulse.models.alerts import AlertRecord, AlertType
from hostpulse.models.metrics import AggregatedBucket, RawRow, Sample

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Timestamps are stored as REAL epoch seconds (UTC) so that range filters
# and minute bucketing are plain arithmetic.
SCHEMA = """
CREATE TABLE IF NOT EXISTS raw_samples (
    id          INTEGER PRIMARY KEY,
    target      TEXT NOT NULL,
    timestamp   REAL NOT NULL,
    cpu_pct     REAL NOT NULL,
    load1       REAL NOT NULL,
    load5       REAL NOT NULL,
    load15      REAL NOT NULL,
    mem_total   INTEGER NOT NULL,
    mem_used    INTEGER NOT NULL,
    mem_avail   INTEGER NOT NULL,
    mem_cached  INTEGER NOT NULL,
    swap_total  INTEGER NOT NULL,
    swap_used   INTEGER NOT NULL,
    disk_total  INTEGER NOT NULL,
    disk_used   INTEGER NOT NULL,
    disk_avail  INTEGER NOT NULL,
    disk_pct    REAL NOT NULL,
    net_rx      INTEGER NOT NULL,
    net_tx      INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_raw_target_time ON raw_samples(target, timestamp);
CREATE INDEX IF NOT EXISTS idx_raw_time ON raw_samples(timestamp);

CREATE TABLE IF NOT EXISTS aggregated_buckets (
    id            INTEGER PRIMARY KEY,
    target        TEXT NOT NULL,
    period_start  REAL NOT NULL,
    period_end    REAL NOT NULL,
    sample_count  INTEGER NOT NULL,
    cpu_min       REAL NOT NULL,
    cpu_avg       REAL NOT NULL,
    cpu_max       REAL NOT NULL,
    mem_used_min  INTEGER NOT NULL,
    mem_used_avg  INTEGER NOT NULL,
    mem_used_max  INTEGER NOT NULL,
    mem_total     INTEGER NOT NULL,
    disk_min      REAL NOT NULL,
    disk_avg      REAL NOT NULL,
    disk_max      REAL NOT NULL,
    net_rx_total  INTEGER NOT NULL,
    net_tx_total  INTEGER NOT NULL,
    net_rx_peak   INTEGER NOT NULL,
    net_tx_peak   INTEGER NOT NULL,
    UNIQUE (target, period_start)
);
CREATE INDEX IF NOT EXISTS idx_agg_start ON aggregated_buckets(period_start);

CREATE TABLE IF NOT EXISTS alert_log (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    target        TEXT NOT NULL,
    alert_type    TEXT NOT NULL,
    threshold     REAL NOT NULL,
    actual_value  REAL NOT NULL,
    timestamp     REAL NOT NULL,
    acknowledged  INTEGER NOT NULL DEFAULT 0
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
INSERT OR IGNORE INTO aggregated_buckets (target, {", ".join(BUCKET_COLUMNS)})
SELECT
    target,
    CAST(timestamp / 60 AS INTEGER) * 60 AS bucket_start,
    CAST(timestamp / 60 AS INTEGER) * 60 + 60,
    COUNT(*),
    MIN(cpu_pct), AVG(cpu_pct), MAX(cpu_pct),
    MIN(mem_used), CAST(AVG(mem_used) AS INTEGER), MAX(mem_used),
    MAX(mem_total),
    MIN(disk_pct), AVG(disk_pct), MAX(disk_pct),
    SUM(net_rx), SUM(net_tx),
    MAX(net_rx), MAX(net_tx)
FROM raw_samples
WHERE timestamp >= ? AND timestamp < ?
GROUP BY target, bucket_start
"""


class SqliteDatabase:
    """
    Owns the SQLite connection shared by the metrics repository and the
    alert ledger.

    One connection is used from worker threads, so every statement batch
    runs under `self.lock` and inside a single transaction.
    """

    def __init__(self, path: str | Path = "hostpulse.db"):
        self.path = str(path)
        self.lock = threading.RLock()
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            # 'check_same_thread=False' because calls arrive via asyncio.to_thread
            self.conn = sqlite3.connect(self.path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._create_schema()
        except sqlite3.Error as e:
            raise StorageError(f"Could not open SQLite database {self.path}: {e}") from e
        logger.info(f"SQLite database ready at {self.path}")

    def _create_schema(self):
        with self.lock:
            if self.path != ":memory:":
                self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.executescript(SCHEMA)
            self.conn.commit()

    def execute(self, work: Callable[[sqlite3.Connection], T]) -> T:
        """Run `work` in one transaction; driver errors become StorageError."""
        with self.lock:
            try:
                result = work(self.conn)
                self.conn.commit()
                return result
            except sqlite3.Error as e:
                # Rollback itself fails once the connection is closed
                with contextlib.suppress(sqlite3.Error):
                    self.conn.rollback()
                raise StorageError(str(e)) from e

    async def run(self, work: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self.execute, work)

    def close(self):
        with self.lock:
            self.conn.close()
        logger.info("SQLite database closed")


def _raw_from_row(row: sqlite3.Row) -> RawRow:
    data: dict[str, Any] = {key: row[key] for key in RAW_COLUMNS}
    data["timestamp"] = from_epoch(row["timestamp"])
    return RawRow(**data)


def _bucket_from_row(row: sqlite3.Row) -> AggregatedBucket:
    data: dict[str, Any] = {key: row[key] for key in BUCKET_COLUMNS}
    data["period_start"] = from_epoch(row["period_start"])
    data["period_end"] = from_epoch(row["period_end"])
    return AggregatedBucket(**data)


def _alert_from_row(row: sqlite3.Row) -> AlertRecord:
    return AlertRecord(
        id=row["id"],
        target=row["target"],
        alert_type=AlertType(row["alert_type"]),
        threshold=row["threshold"],
        actual_value=row["actual_value"],
        timestamp=from_epoch(row["timestamp"]),
        acknowledged=bool(row["acknowledged"]),
    )


class SqliteMetricsRepository(MetricsRepository):

    def __init__(self, db: SqliteDatabase):
        self.db = db

    async def store_raw(self, sample: Sample) -> None:
        row = RawRow.from_sample(sample)
        values = row.model_dump()
        values["timestamp"] = to_epoch(row.timestamp)
        placeholders = ", ".join("?" * len(RAW_COLUMNS))
        sql = f"INSERT INTO raw_samples ({', '.join(RAW_COLUMNS)}) VALUES ({placeholders})"
        params = tuple(values[key] for key in RAW_COLUMNS)

        await self.db.run(lambda conn: conn.execute(sql, params))

    async def query_raw(self, target: str, start: datetime, end: datetime) -> list[RawRow]:
        sql = """
        SELECT * FROM raw_samples
        WHERE target = ? AND timestamp >= ? AND timestamp <= ?
        ORDER BY timestamp ASC, id ASC
        """
        params = (target, to_epoch(start), to_epoch(end))

        rows = await self.db.run(lambda conn: conn.execute(sql, params).fetchall())
        return [_raw_from_row(r) for r in rows]

    async def store_aggregated(self, target: str, bucket: AggregatedBucket) -> None:
        values = bucket.model_dump()
        values["period_start"] = to_epoch(bucket.period_start)
        values["period_end"] = to_epoch(bucket.period_end)
        placeholders = ", ".join("?" * (len(BUCKET_COLUMNS) + 1))
        sql = (
            f"INSERT OR IGNORE INTO aggregated_buckets (target, {', '.join(BUCKET_COLUMNS)}) "
            f"VALUES ({placeholders})"
        )
        params = (target, *(values[key] for key in BUCKET_COLUMNS))

        await self.db.run(lambda conn: conn.execute(sql, params))

    async def query_aggregated(
        self, target: str, start: datetime, end: datetime
    ) -> list[AggregatedBucket]:
        sql = """
        SELECT * FROM aggregated_buckets
        WHERE target = ? AND period_start >= ? AND period_start <= ?
        ORDER BY period_start ASC
        """
        params = (target, to_epoch(start), to_epoch(end))

        rows = await self.db.run(lambda conn: conn.execute(sql, params).fetchall())
        return [_bucket_from_row(r) for r in rows]

    async def aggregate_raw_buckets(self, window_start: datetime, window_end: datetime) -> int:
        params = (to_epoch(window_start), to_epoch(window_end))
        return await self.db.run(lambda conn: conn.execute(AGGREGATE_SQL, params).rowcount)

    async def purge_raw_before(self, before: datetime) -> int:
        params = (to_epoch(before),)
        return await self.db.run(
            lambda conn: conn.execute("DELETE FROM raw_samples WHERE timestamp < ?", params).rowcount
        )

    async def purge_aggregated_before(self, before: datetime) -> int:
        params = (to_epoch(before),)
        return await self.db.run(
            lambda conn: conn.execute(
                "DELETE FROM aggregated_buckets WHERE period_start < ?", params
            ).rowcount
        )


class SqliteAlertLedger(AlertLedger):

    def __init__(self, db: SqliteDatabase):
        self.db = db

    async def record_alert(
        self,
        target: str,
        alert_type: AlertType,
        threshold: float,
        actual_value: float,
        timestamp: datetime | None = None,
    ) -> AlertRecord:
        ts = timestamp or utc_now()
        sql = """
        INSERT INTO alert_log (target, alert_type, threshold, actual_value, timestamp)
        VALUES (?, ?, ?, ?, ?)
        """
        params = (target, AlertType(alert_type).value, threshold, actual_value, to_epoch(ts))

        alert_id = await self.db.run(lambda conn: conn.execute(sql, params).lastrowid)
        return AlertRecord(
            id=alert_id,
            target=target,
            alert_type=alert_type,
            threshold=threshold,
            actual_value=actual_value,
            timestamp=from_epoch(to_epoch(ts)),
        )

    async def get_recent_alerts(self, target: str, limit: int) -> list[AlertRecord]:
        sql = """
        SELECT * FROM alert_log
        WHERE target = ?
        ORDER BY timestamp DESC, id DESC
        LIMIT ?
        """
        params = (target, max(0, int(limit)))

        rows = await self.db.run(lambda conn: conn.execute(sql, params).fetchall())
        return [_alert_from_row(r) for r in rows]

    async def acknowledge_alert(self, alert_id: int) -> None:
        await self.db.run(
            lambda conn: conn.execute(
                "UPDATE alert_log SET acknowledged = 1 WHERE id = ?", (alert_id,)
            )
        )

    async def purge_before(self, before: datetime) -> int:
        params = (to_epoch(before),)
        return await self.db.run(
            lambda conn: conn.execute("DELETE FROM alert_log WHERE timestamp < ?", params).rowcount
        )
