# hostpulse/internal/metrics/collector.py

"""
Background collection loop.
Each tick samples every live target in parallel, stores the raw rows and
checks alert thresholds against the fresh samples.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from hostpulse.internal.analysis.notifier import AlertNotifier
from hostpulse.internal.analysis.rules import check_threshold
from hostpulse.internal.analysis.thresholds import ThresholdStore
from hostpulse.internal.errors import StorageError, TransientCollectionError
from hostpulse.internal.providers.base import MetricsProvider, TargetDiscovery
from hostpulse.internal.storage.ports import AlertLedger, MetricsRepository
from hostpulse.internal.utils.timeutil import utc_now
from hostpulse.models.alerts import AlertEvent, AlertType
from hostpulse.models.metrics import Sample
from hostpulse.models.targets import TargetInfo

logger = logging.getLogger(__name__)

COLLECTION_INTERVAL_SECONDS = 2.0
TARGET_CACHE_TTL = timedelta(seconds=10)
MAX_STALE_TARGET_CACHE = timedelta(seconds=60)
ALERT_COOLDOWN = timedelta(minutes=5)


@dataclass
class CollectionOutcome:
    """Result of sampling one target: exactly one of sample/error is set."""
    target: str
    sample: Sample | None = None
    error: TransientCollectionError | None = None

    @property
    def ok(self) -> bool:
        return self.sample is not None


@dataclass
class TickReport:
    skipped: bool = False
    targets: list[str] = field(default_factory=list)
    collected: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    alerts: list[AlertEvent] = field(default_factory=list)


class MetricsCollector:

    def __init__(
        self,
        provider: MetricsProvider,
        discovery: TargetDiscovery,
        repository: MetricsRepository,
        alerts: AlertLedger,
        thresholds: ThresholdStore,
        notifier: AlertNotifier | None = None,
        interval: float = COLLECTION_INTERVAL_SECONDS,
        target_cache_ttl: timedelta = TARGET_CACHE_TTL,
        max_stale_target_cache: timedelta = MAX_STALE_TARGET_CACHE,
        cooldown: timedelta = ALERT_COOLDOWN,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.provider = provider
        self.discovery = discovery
        self.repository = repository
        self.alerts = alerts
        self.thresholds = thresholds
        self.notifier = notifier
        self.interval = interval
        self.target_cache_ttl = target_cache_ttl
        self.max_stale_target_cache = max_stale_target_cache
        self.cooldown = cooldown
        self.clock = clock

        # Owned by this task only: never touched outside tick()
        self._cached_targets: list[TargetInfo] | None = None
        self._cached_at: datetime | None = None
        self._cooldowns: dict[tuple[str, AlertType], datetime] = {}

    @property
    def cooldowns(self) -> dict[tuple[str, AlertType], datetime]:
        return dict(self._cooldowns)

    async def run(self):
        """Run the collection loop until cancelled."""
        logger.info(f"Starting metrics collection every {self.interval}s")
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                report = await self.tick()
                if not report.skipped:
                    logger.debug(
                        f"Collected {len(report.collected)}/{len(report.targets)} targets, "
                        f"{len(report.alerts)} alert(s) fired"
                    )
            except Exception:
                logger.exception("Error in metrics collection loop")
            await asyncio.sleep(max(0.0, self.interval - (loop.time() - started)))

    async def tick(self) -> TickReport:
        now = self.clock()
        targets = await self._get_targets(now)
        if targets is None:
            return TickReport(skipped=True)

        live = [t.id for t in targets if t.is_live]
        outcomes = await asyncio.gather(*(self._collect_one(target) for target in live))

        report = TickReport(targets=live)
        for outcome in outcomes:
            if outcome.ok:
                report.collected.append(outcome.target)
            else:
                report.failed[outcome.target] = outcome.error.reason
                logger.debug(f"Metrics collection failed for {outcome.target}: {outcome.error.reason}")

        # Sequential: the cooldown map has a single writer
        thresholds = self.thresholds.snapshot()
        for outcome in outcomes:
            if outcome.ok:
                report.alerts.extend(await self._check_alerts(outcome.sample, thresholds, now))

        self._evict_cooldowns(now)
        return report

    async def _get_targets(self, now: datetime) -> list[TargetInfo] | None:
        """Target list, cached for `target_cache_ttl`; None means skip this tick."""
        if self._cached_targets is not None and now - self._cached_at < self.target_cache_ttl:
            return self._cached_targets

        try:
            targets = await self.discovery.list_targets()
        except Exception as e:
            if (
                self._cached_targets is not None
                and now - self._cached_at <= self.max_stale_target_cache
            ):
                logger.debug(f"Target discovery failed, reusing cached list: {e}")
                return self._cached_targets
            logger.debug(f"Target discovery failed, skipping tick: {e}")
            self._cached_targets = None
            self._cached_at = None
            return None

        self._cached_targets = list(targets)
        self._cached_at = now
        return self._cached_targets

    async def _collect_one(self, target: str) -> CollectionOutcome:
        try:
            sample = await self.provider.sample(target)
        except TransientCollectionError as e:
            return CollectionOutcome(target=target, error=e)
        except Exception as e:
            return CollectionOutcome(target=target, error=TransientCollectionError(target, str(e)))

        # A failed write must not stop alerting on this sample
        try:
            await self.repository.store_raw(sample)
        except StorageError as e:
            logger.warning(f"Failed to persist metrics for {target}: {e}")
        except Exception as e:
            logger.warning(f"Unexpected error persisting metrics for {target}: {e}")

        if self.notifier:
            self.notifier.publish_sample(sample)
        return CollectionOutcome(target=target, sample=sample)

    async def _check_alerts(self, sample: Sample, thresholds, now: datetime) -> list[AlertEvent]:
        fired: list[AlertEvent] = []
        for threshold in thresholds:
            actual = check_threshold(sample, threshold)
            if actual is None:
                continue

            key = (sample.target, threshold.alert_type)
            last_fired = self._cooldowns.get(key)
            if last_fired is not None and now - last_fired < self.cooldown:
                continue
            self._cooldowns[key] = now

            record_id = None
            try:
                record = await self.alerts.record_alert(
                    sample.target,
                    threshold.alert_type,
                    threshold.threshold_percent,
                    actual,
                    timestamp=now,
                )
                record_id = record.id
            except Exception as e:
                logger.warning(f"Failed to record {threshold.alert_type.value} alert for {sample.target}: {e}")

            event = AlertEvent(
                target=sample.target,
                alert_type=threshold.alert_type,
                threshold=threshold.threshold_percent,
                actual_value=actual,
                timestamp=now,
                record_id=record_id,
            )
            if self.notifier:
                self.notifier.publish_alert(event)
            fired.append(event)
        return fired

    def _evict_cooldowns(self, now: datetime):
        self._cooldowns = {
            key: last_fired
            for key, last_fired in self._cooldowns.items()
            if now - last_fired < self.cooldown
        }
