# hostpulse/internal/metrics/history.py

"""
History queries: picks the cheapest storage tier that can answer a time
range and normalises rows from either tier into HistoryPoints.

Tier policy:
    span <= RAW_TIER_MAX_SPAN  -> raw samples   (granularity "raw")
    span >  RAW_TIER_MAX_SPAN  -> 1m buckets    (granularity "1m")
"""

from datetime import datetime, timedelta

from hostpulse.internal.storage.ports import MetricsRepository
from hostpulse.models.metrics import (
    AggregatedBucket,
    HistoryPoint,
    HistoryResponse,
    RawRow,
)

RAW_TIER_MAX_SPAN = timedelta(hours=1)
RAW_SAMPLE_INTERVAL_SECONDS = 2


def counter_rate(previous: int | None, current: int, interval_seconds: int) -> int:
    """
    Bytes/second between two cumulative counter readings.
    A decrease (interface reset, counter wrap) yields 0.
    """
    if previous is None or current < previous:
        return 0
    return (current - previous) // max(1, interval_seconds)


def raw_points(rows: list[RawRow], interval_seconds: int = RAW_SAMPLE_INTERVAL_SECONDS) -> list[HistoryPoint]:
    points = []
    prev_rx = prev_tx = None
    for row in rows:
        points.append(HistoryPoint(
            timestamp=row.timestamp,
            cpu_avg=row.cpu_pct,
            mem_used_bytes=row.mem_used,
            mem_total_bytes=row.mem_total,
            disk_usage_percent=row.disk_pct,
            net_rx_rate=counter_rate(prev_rx, row.net_rx, interval_seconds),
            net_tx_rate=counter_rate(prev_tx, row.net_tx, interval_seconds),
        ))
        prev_rx, prev_tx = row.net_rx, row.net_tx
    return points


def aggregated_points(buckets: list[AggregatedBucket]) -> list[HistoryPoint]:
    points = []
    for bucket in buckets:
        duration = max(1, int((bucket.period_end - bucket.period_start).total_seconds()))
        points.append(HistoryPoint(
            timestamp=bucket.period_start,
            cpu_avg=bucket.cpu_avg,
            cpu_min=bucket.cpu_min,
            cpu_max=bucket.cpu_max,
            mem_used_bytes=bucket.mem_used_avg,
            mem_total_bytes=bucket.mem_total,
            disk_usage_percent=bucket.disk_avg,
            net_rx_rate=max(0, bucket.net_rx_total) // duration,
            net_tx_rate=max(0, bucket.net_tx_total) // duration,
        ))
    return points


def uses_raw_tier(start: datetime, end: datetime) -> bool:
    return end - start <= RAW_TIER_MAX_SPAN


async def resolve_history(
    repository: MetricsRepository,
    target: str,
    start: datetime,
    end: datetime,
    raw_interval_seconds: int = RAW_SAMPLE_INTERVAL_SECONDS,
) -> HistoryResponse:
    """
    Raises:
        ValueError: start is after end
        StorageError: the repository read failed
    """
    if start > end:
        raise ValueError("'from' must not be after 'to'")

    if uses_raw_tier(start, end):
        rows = await repository.query_raw(target, start, end)
        return HistoryResponse(
            target=target,
            granularity="raw",
            points=raw_points(rows, raw_interval_seconds),
        )

    buckets = await repository.query_aggregated(target, start, end)
    return HistoryResponse(target=target, granularity="1m", points=aggregated_points(buckets))
