"""
MetricsCollector tick behaviour: partial failures, target caching, alert
cooldowns and storage failures.
"""

import pytest

from conftest import FakeDiscovery, FakeProvider
from hostpulse.internal.analysis.notifier import EVENT_ALERT_TRIGGERED, EVENT_SYSTEM_METRICS
from hostpulse.internal.analysis.thresholds import ThresholdStore
from hostpulse.internal.errors import StorageError
from hostpulse.internal.metrics.collector import MetricsCollector
from hostpulse.models.alerts import AlertThreshold, AlertType
from hostpulse.models.targets import TargetState


class BrokenRepository:

    async def store_raw(self, sample):
        raise StorageError("disk I/O error")


@pytest.fixture
def provider(clock):
    return FakeProvider(clock)


@pytest.fixture
def discovery():
    return FakeDiscovery(["ubuntu"])


@pytest.fixture
def make_collector(provider, discovery, repository, ledger, thresholds, notifier, clock):
    def _make(**overrides):
        kwargs = dict(
            provider=provider,
            discovery=discovery,
            repository=repository,
            alerts=ledger,
            thresholds=thresholds,
            notifier=notifier,
            clock=clock,
        )
        kwargs.update(overrides)
        return MetricsCollector(**kwargs)
    return _make


class TestCollection:

    async def test_samples_every_live_target_and_stores_rows(self, make_collector, discovery, repository, clock):
        discovery.targets = {"a": TargetState.RUNNING, "b": TargetState.RUNNING}
        collector = make_collector()

        report = await collector.tick()

        assert sorted(report.collected) == ["a", "b"]
        assert report.failed == {}
        assert len(await repository.query_raw("a", clock(), clock())) == 1

    async def test_one_failing_target_does_not_block_others(
        self, make_collector, discovery, provider, repository, ledger, clock
    ):
        discovery.targets = {t: TargetState.RUNNING for t in ("A", "B", "C")}
        provider.cpu = {"A": 95.0, "B": 95.0, "C": 95.0}
        provider.failing = {"B"}
        collector = make_collector()

        report = await collector.tick()

        assert sorted(report.collected) == ["A", "C"]
        assert "connection refused" in report.failed["B"]
        assert await repository.query_raw("B", clock(), clock()) == []
        assert len(await repository.query_raw("C", clock(), clock())) == 1
        assert {a.target for a in report.alerts} == {"A", "C"}
        assert await ledger.get_recent_alerts("B", 10) == []
        assert len(await ledger.get_recent_alerts("A", 10)) == 1

    async def test_invalid_sample_counts_as_target_failure(self, make_collector, discovery, provider, repository, clock):
        discovery.targets = {"ok": TargetState.RUNNING, "bad": TargetState.RUNNING}
        provider.mem["bad"] = (12_000, 10_000)
        collector = make_collector()

        report = await collector.tick()

        assert report.collected == ["ok"]
        assert "bad" in report.failed
        assert await repository.query_raw("bad", clock(), clock()) == []

    async def test_non_running_targets_are_not_sampled(self, make_collector, discovery, provider):
        discovery.targets = {"up": TargetState.RUNNING, "down": TargetState.STOPPED, "gone": TargetState.UNREACHABLE}
        collector = make_collector()

        report = await collector.tick()

        assert provider.calls == ["up"]
        assert report.targets == ["up"]

    async def test_samples_are_published(self, make_collector, notifier):
        queue = notifier.subscribe()
        collector = make_collector()

        await collector.tick()

        message = queue.get_nowait()
        assert message["type"] == EVENT_SYSTEM_METRICS
        assert message["payload"]["target"] == "ubuntu"


class TestTargetCache:

    async def test_list_reused_within_ttl(self, make_collector, discovery, clock):
        collector = make_collector()

        await collector.tick()
        clock.advance(seconds=4)
        await collector.tick()

        assert discovery.calls == 1

    async def test_list_refreshed_after_ttl(self, make_collector, discovery, clock):
        collector = make_collector()

        await collector.tick()
        clock.advance(seconds=10)
        await collector.tick()

        assert discovery.calls == 2

    async def test_stale_list_used_when_discovery_fails(self, make_collector, discovery, provider, clock):
        collector = make_collector()
        await collector.tick()

        discovery.fail = True
        clock.advance(seconds=30)
        report = await collector.tick()

        assert not report.skipped
        assert report.collected == ["ubuntu"]

    async def test_tick_skipped_once_cache_too_old(self, make_collector, discovery, provider, clock):
        collector = make_collector()
        await collector.tick()

        discovery.fail = True
        clock.advance(seconds=61)
        report = await collector.tick()

        assert report.skipped
        assert provider.calls == ["ubuntu"]

    async def test_tick_skipped_without_any_cache(self, make_collector, discovery, provider):
        discovery.fail = True
        collector = make_collector()

        report = await collector.tick()

        assert report.skipped
        assert provider.calls == []


class TestAlerts:

    async def test_cooldown_suppresses_repeat_alerts(self, make_collector, provider, ledger, clock):
        provider.cpu["ubuntu"] = 95.0
        collector = make_collector()

        first = await collector.tick()
        assert [a.alert_type for a in first.alerts] == [AlertType.CPU]
        assert first.alerts[0].actual_value == 95.0

        clock.advance(seconds=30)
        provider.cpu["ubuntu"] = 96.0
        second = await collector.tick()
        assert second.alerts == []

        clock.advance(minutes=5)
        third = await collector.tick()
        assert [a.actual_value for a in third.alerts] == [96.0]

        records = await ledger.get_recent_alerts("ubuntu", 10)
        assert [r.actual_value for r in records] == [96.0, 95.0]

    async def test_below_threshold_never_fires(self, make_collector, provider):
        provider.cpu["ubuntu"] = 89.9
        collector = make_collector()

        report = await collector.tick()

        assert report.alerts == []
        assert collector.cooldowns == {}

    async def test_value_equal_to_threshold_fires(self, make_collector, provider):
        provider.cpu["ubuntu"] = 90.0
        collector = make_collector()

        report = await collector.tick()

        assert len(report.alerts) == 1

    async def test_cooldown_is_per_target_and_type(self, make_collector, discovery, provider, clock):
        discovery.targets = {"a": TargetState.RUNNING, "b": TargetState.RUNNING}
        provider.cpu = {"a": 99.0, "b": 99.0}
        provider.mem["a"] = (9_500, 10_000)
        collector = make_collector()

        report = await collector.tick()

        fired = sorted((a.target, a.alert_type.value) for a in report.alerts)
        assert fired == [("a", "cpu"), ("a", "memory"), ("b", "cpu")]
        assert set(collector.cooldowns) == {("a", AlertType.CPU), ("a", AlertType.MEMORY), ("b", AlertType.CPU)}

    async def test_disabled_threshold_never_fires(self, make_collector, provider):
        provider.cpu["ubuntu"] = 99.0
        thresholds = ThresholdStore([AlertThreshold(alert_type=AlertType.CPU, threshold_percent=50, enabled=False)])
        collector = make_collector(thresholds=thresholds)

        report = await collector.tick()

        assert report.alerts == []

    async def test_zero_memory_total_skips_memory_alert(self, make_collector, provider):
        provider.mem["ubuntu"] = (0, 0)
        thresholds = ThresholdStore([AlertThreshold(alert_type=AlertType.MEMORY, threshold_percent=0)])
        collector = make_collector(thresholds=thresholds)

        report = await collector.tick()

        assert report.collected == ["ubuntu"]
        assert report.alerts == []

    async def test_alert_fires_even_when_raw_write_fails(self, make_collector, provider, ledger):
        provider.cpu["ubuntu"] = 97.0
        collector = make_collector(repository=BrokenRepository())

        report = await collector.tick()

        assert report.collected == ["ubuntu"]
        assert len(report.alerts) == 1
        (record,) = await ledger.get_recent_alerts("ubuntu", 10)
        assert record.id == report.alerts[0].record_id

    async def test_alert_is_published(self, make_collector, provider, notifier):
        provider.cpu["ubuntu"] = 97.0
        queue = notifier.subscribe()
        collector = make_collector()

        await collector.tick()

        types = [queue.get_nowait()["type"] for _ in range(queue.qsize())]
        assert EVENT_ALERT_TRIGGERED in types

    async def test_threshold_change_applies_on_next_tick(self, make_collector, provider, thresholds):
        provider.cpu["ubuntu"] = 60.0
        collector = make_collector()

        assert (await collector.tick()).alerts == []

        thresholds.replace([{"alert_type": "cpu", "threshold_percent": 50}])
        assert len((await collector.tick()).alerts) == 1

    async def test_expired_cooldowns_are_evicted(self, make_collector, provider, clock):
        provider.cpu["ubuntu"] = 95.0
        collector = make_collector()
        await collector.tick()

        provider.cpu["ubuntu"] = 10.0
        clock.advance(minutes=6)
        await collector.tick()

        assert collector.cooldowns == {}
