# hostpulse/internal/service.py

"""
In-process API used by the HTTP routers and the CLI.
Owns the storage backend, the two background tasks and the threshold
snapshot, and exposes the history/alert/threshold operations.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable

from hostpulse.internal.analysis.notifier import AlertNotifier
from hostpulse.internal.analysis.thresholds import ThresholdStore
from hostpulse.internal.config.config import Settings
from hostpulse.internal.metrics.aggregator import MetricsAggregator
from hostpulse.internal.metrics.collector import MetricsCollector
from hostpulse.internal.metrics.history import resolve_history
from hostpulse.internal.providers.base import MetricsProvider, TargetDiscovery
from hostpulse.internal.providers.discovery import ConfiguredTargetDiscovery, build_providers
from hostpulse.internal.storage.backends import StorageBackend, open_storage
from hostpulse.internal.storage.ports import AlertLedger, MetricsRepository
from hostpulse.models.alerts import AlertRecord, AlertThreshold
from hostpulse.models.metrics import HistoryResponse, ProcessInfo, Sample
from hostpulse.models.targets import TargetInfo

logger = logging.getLogger(__name__)

DEFAULT_ALERT_LIMIT = 50


class MonitoringService:

    def __init__(
        self,
        repository: MetricsRepository,
        alerts: AlertLedger,
        collector: MetricsCollector,
        aggregator: MetricsAggregator,
        thresholds: ThresholdStore,
        discovery: TargetDiscovery,
        notifier: AlertNotifier,
        storage: StorageBackend | None = None,
        raw_interval_seconds: int = 2,
        provider: MetricsProvider | None = None,
    ):
        self.repository = repository
        self.alerts = alerts
        self.collector = collector
        self.aggregator = aggregator
        self.thresholds = thresholds
        self.discovery = discovery
        self.notifier = notifier
        self.storage = storage
        self.raw_interval_seconds = raw_interval_seconds
        self.provider = provider or collector.provider
        self._tasks: list[asyncio.Task] = []

    # --- Lifecycle ---

    def start(self):
        """Schedule the collector and aggregator loops on the running event loop."""
        if self._tasks:
            logger.debug("Background tasks already running")
            return
        logger.info("Starting metrics collector and aggregator tasks...")
        self._tasks = [
            asyncio.create_task(self.collector.run(), name="hostpulse-collector"),
            asyncio.create_task(self.aggregator.run(), name="hostpulse-aggregator"),
        ]

    async def stop(self, close_storage: bool = True):
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                logger.info(f"{task.get_name()} task cancelled.")
        self._tasks = []
        if close_storage and self.storage:
            await self.storage.close()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # --- History ---

    async def get_history(self, target: str, start: datetime, end: datetime) -> HistoryResponse:
        return await resolve_history(
            self.repository, target, start, end, raw_interval_seconds=self.raw_interval_seconds
        )

    # --- Alerts ---

    async def get_recent_alerts(self, target: str, limit: int = DEFAULT_ALERT_LIMIT) -> list[AlertRecord]:
        return await self.alerts.get_recent_alerts(target, limit)

    async def acknowledge_alert(self, alert_id: int) -> None:
        await self.alerts.acknowledge_alert(alert_id)

    # --- Thresholds ---

    def get_thresholds(self) -> list[AlertThreshold]:
        return list(self.thresholds.snapshot())

    def set_thresholds(self, thresholds: Iterable[AlertThreshold | dict[str, Any]]) -> list[AlertThreshold]:
        """Replaces the whole list; raises ConfigurationError if any entry is malformed."""
        snapshot = self.thresholds.replace(thresholds)
        logger.info(f"Alert thresholds updated (version {self.thresholds.version})")
        return list(snapshot)

    # --- Targets ---

    async def list_targets(self) -> list[TargetInfo]:
        return await self.discovery.list_targets()

    async def get_system_metrics(self, target: str) -> Sample:
        """A live sample of one target, outside the collection loop. Not stored."""
        return await self.provider.sample(target)

    async def get_processes(self, target: str) -> list[ProcessInfo]:
        return await self.provider.processes(target)


async def create_service(
    settings: Settings,
    provider: MetricsProvider | None = None,
    discovery: TargetDiscovery | None = None,
) -> MonitoringService:
    """Wire a MonitoringService from configuration. Background tasks are not started."""
    if provider is not None and discovery is None:
        raise ValueError("a TargetDiscovery is required when a custom provider is given")
    if provider is None:
        registry = build_providers(settings.targets)
        provider = registry
        discovery = discovery or ConfiguredTargetDiscovery(registry)

    storage = await open_storage(settings.database)

    thresholds = ThresholdStore(settings.thresholds)
    notifier = AlertNotifier()
    cfg_c = settings.collector
    cfg_a = settings.aggregator

    collector = MetricsCollector(
        provider=provider,
        discovery=discovery,
        repository=storage.repository,
        alerts=storage.alerts,
        thresholds=thresholds,
        notifier=notifier,
        interval=cfg_c.interval_seconds,
        target_cache_ttl=timedelta(seconds=cfg_c.target_cache_ttl_seconds),
        max_stale_target_cache=timedelta(seconds=cfg_c.max_stale_target_cache_seconds),
        cooldown=timedelta(seconds=cfg_c.alert_cooldown_seconds),
    )
    aggregator = MetricsAggregator(
        repository=storage.repository,
        alerts=storage.alerts,
        interval=cfg_a.interval_seconds,
        safety_margin=timedelta(minutes=cfg_a.safety_margin_minutes),
        span=timedelta(minutes=cfg_a.window_minutes),
        raw_retention=timedelta(hours=cfg_a.raw_retention_hours),
        aggregated_retention=timedelta(hours=cfg_a.aggregated_retention_hours),
        alert_retention=timedelta(hours=cfg_a.alert_retention_hours),
    )

    return MonitoringService(
        repository=storage.repository,
        alerts=storage.alerts,
        collector=collector,
        aggregator=aggregator,
        thresholds=thresholds,
        discovery=discovery,
        notifier=notifier,
        storage=storage,
        raw_interval_seconds=max(1, round(cfg_c.interval_seconds)),
        provider=provider,
    )
