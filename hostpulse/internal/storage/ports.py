# hostpulse/internal/storage/ports.py

"""
Storage contracts used by the collector, the aggregator and the history
resolver. Adapters raise StorageError for any I/O failure and must be safe
to call from both background tasks at once.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from hostpulse.models.alerts import AlertRecord, AlertType
from hostpulse.models.metrics import AggregatedBucket, RawRow, Sample


class MetricsRepository(ABC):

    @abstractmethod
    async def store_raw(self, sample: Sample) -> None:
        """Append one raw row for the sample. No de-duplication."""

    @abstractmethod
    async def query_raw(self, target: str, start: datetime, end: datetime) -> list[RawRow]:
        """Raw rows with start <= timestamp <= end, oldest first."""

    @abstractmethod
    async def store_aggregated(self, target: str, bucket: AggregatedBucket) -> None:
        """Insert one bucket unless (target, period_start) already exists."""

    @abstractmethod
    async def query_aggregated(
        self, target: str, start: datetime, end: datetime
    ) -> list[AggregatedBucket]:
        """Buckets with start <= period_start <= end, oldest first."""

    @abstractmethod
    async def aggregate_raw_buckets(self, window_start: datetime, window_end: datetime) -> int:
        """
        Fold raw rows in [window_start, window_end) into 1-minute buckets per
        target. Buckets that already exist are left untouched.

        Returns:
            Number of buckets newly created.
        """

    @abstractmethod
    async def purge_raw_before(self, before: datetime) -> int:
        """Delete raw rows with timestamp < before. Returns rows deleted."""

    @abstractmethod
    async def purge_aggregated_before(self, before: datetime) -> int:
        """Delete buckets with period_start < before. Returns rows deleted."""


class AlertLedger(ABC):

    @abstractmethod
    async def record_alert(
        self,
        target: str,
        alert_type: AlertType,
        threshold: float,
        actual_value: float,
        timestamp: datetime | None = None,
    ) -> AlertRecord:
        """Append an unacknowledged alert record (timestamp defaults to now)."""

    @abstractmethod
    async def get_recent_alerts(self, target: str, limit: int) -> list[AlertRecord]:
        """Most recent first, at most `limit` records."""

    @abstractmethod
    async def acknowledge_alert(self, alert_id: int) -> None:
        """Mark an alert acknowledged. Unknown ids are ignored."""

    @abstractmethod
    async def purge_before(self, before: datetime) -> int:
        """Delete alert records older than `before`. Returns rows deleted."""
