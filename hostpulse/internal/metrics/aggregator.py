# hostpulse/internal/metrics/aggregator.py

"""
Background maintenance task.
Folds raw samples into 1-minute buckets, then enforces retention on raw
rows, buckets and alert records.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from hostpulse.internal.storage.ports import AlertLedger, MetricsRepository
from hostpulse.internal.utils.timeutil import aggregation_window, utc_now

logger = logging.getLogger(__name__)

AGGREGATION_INTERVAL_SECONDS = 60.0
AGGREGATION_SAFETY_MARGIN = timedelta(minutes=2)
AGGREGATION_SPAN = timedelta(minutes=60)
RAW_RETENTION = timedelta(hours=1)
AGGREGATED_RETENTION = timedelta(hours=24)
ALERT_RETENTION = timedelta(hours=24)


@dataclass
class MaintenanceReport:
    """Counts per step; None when that step failed."""
    window_start: datetime
    window_end: datetime
    buckets_created: int | None = None
    raw_purged: int | None = None
    aggregated_purged: int | None = None
    alerts_purged: int | None = None


class MetricsAggregator:

    def __init__(
        self,
        repository: MetricsRepository,
        alerts: AlertLedger,
        interval: float = AGGREGATION_INTERVAL_SECONDS,
        safety_margin: timedelta = AGGREGATION_SAFETY_MARGIN,
        span: timedelta = AGGREGATION_SPAN,
        raw_retention: timedelta = RAW_RETENTION,
        aggregated_retention: timedelta = AGGREGATED_RETENTION,
        alert_retention: timedelta = ALERT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.alerts = alerts
        self.interval = interval
        self.safety_margin = safety_margin
        self.span = span
        self.raw_retention = raw_retention
        self.aggregated_retention = aggregated_retention
        self.alert_retention = alert_retention
        self.clock = clock

    async def run(self):
        """Run aggregation and retention every `interval` seconds until cancelled."""
        logger.info(f"Starting metrics aggregation every {self.interval}s")
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.aggregate_and_purge()
            except Exception:
                logger.exception("Error in metrics aggregation loop")

    async def aggregate_and_purge(self, now: datetime | None = None) -> MaintenanceReport:
        now = now or self.clock()
        window_start, window_end = aggregation_window(now, self.safety_margin, self.span)
        report = MaintenanceReport(window_start=window_start, window_end=window_end)

        report.buckets_created = await self._step(
            "Aggregation",
            lambda: self.repository.aggregate_raw_buckets(window_start, window_end),
        )
        if report.buckets_created:
            logger.debug(f"Aggregated {report.buckets_created} metric buckets")

        report.raw_purged = await self._step(
            "Raw purge", lambda: self.repository.purge_raw_before(now - self.raw_retention)
        )
        report.aggregated_purged = await self._step(
            "Aggregated purge",
            lambda: self.repository.purge_aggregated_before(now - self.aggregated_retention),
        )
        report.alerts_purged = await self._step(
            "Alert purge", lambda: self.alerts.purge_before(now - self.alert_retention)
        )

        if report.raw_purged or report.aggregated_purged or report.alerts_purged:
            logger.debug(
                f"Retention: purged {report.raw_purged or 0} raw rows, "
                f"{report.aggregated_purged or 0} buckets, {report.alerts_purged or 0} alerts"
            )
        return report

    async def _step(self, name: str, operation: Callable[[], Awaitable[int]]) -> int | None:
        # Each step stands alone so one failing purge never blocks the rest
        try:
            return await operation()
        except Exception as e:
            logger.warning(f"{name} failed: {e}")
            return None
