from datetime import timedelta

import pytest

from conftest import T0, make_sample
from hostpulse.internal.metrics.history import (
    aggregated_points,
    counter_rate,
    raw_points,
    resolve_history,
    uses_raw_tier,
)
from hostpulse.models.metrics import AggregatedBucket, RawRow


def _bucket(start, rx_total=0, tx_total=0, **overrides):
    values = dict(
        period_start=start, period_end=start + timedelta(minutes=1), sample_count=30,
        cpu_min=10.0, cpu_avg=20.0, cpu_max=30.0,
        mem_used_min=100, mem_used_avg=150, mem_used_max=200, mem_total=1_000,
        disk_min=40.0, disk_avg=41.0, disk_max=42.0,
        net_rx_total=rx_total, net_tx_total=tx_total, net_rx_peak=0, net_tx_peak=0,
    )
    values.update(overrides)
    return AggregatedBucket(**values)


class TestTierSelection:

    def test_one_hour_uses_raw(self):
        assert uses_raw_tier(T0, T0 + timedelta(minutes=60))

    def test_just_over_one_hour_uses_buckets(self):
        assert not uses_raw_tier(T0, T0 + timedelta(minutes=61))

    async def test_resolve_reads_raw_tier(self, repository):
        await repository.store_raw(make_sample(timestamp=T0 + timedelta(minutes=5)))

        response = await resolve_history(repository, "ubuntu", T0, T0 + timedelta(minutes=60))

        assert response.granularity == "raw"
        assert len(response.points) == 1
        assert response.points[0].cpu_min is None

    async def test_resolve_reads_aggregated_tier(self, repository):
        await repository.store_aggregated("ubuntu", _bucket(T0 + timedelta(minutes=5)))

        response = await resolve_history(repository, "ubuntu", T0, T0 + timedelta(minutes=61))

        assert response.granularity == "1m"
        (point,) = response.points
        assert (point.cpu_min, point.cpu_avg, point.cpu_max) == (10.0, 20.0, 30.0)
        assert point.mem_used_bytes == 150

    async def test_empty_range_is_not_an_error(self, repository):
        response = await resolve_history(repository, "nobody", T0, T0 + timedelta(hours=3))
        assert response.points == []

    async def test_inverted_range_rejected(self, repository):
        with pytest.raises(ValueError):
            await resolve_history(repository, "ubuntu", T0 + timedelta(minutes=1), T0)


class TestRates:

    @pytest.mark.parametrize(
        "previous, current, expected",
        [
            (None, 5_000, 0),
            (1_000, 5_000, 2_000),
            (1_000, 1_001, 0),
            (9_000, 100, 0),
            (4_000, 4_000, 0),
        ],
    )
    def test_counter_rate(self, previous, current, expected):
        assert counter_rate(previous, current, 2) == expected

    def test_counter_reset_gives_zero_not_negative(self):
        rows = [
            RawRow.from_sample(make_sample(timestamp=T0 + timedelta(seconds=2 * i), rx=rx, tx=rx))
            for i, rx in enumerate([1_000, 3_000, 200, 2_200])
        ]

        points = raw_points(rows, 2)

        assert [p.net_rx_rate for p in points] == [0, 1_000, 0, 1_000]
        assert all(p.net_tx_rate >= 0 for p in points)

    def test_aggregated_rate_is_total_over_bucket_seconds(self):
        (point,) = aggregated_points([_bucket(T0, rx_total=6_000, tx_total=61)])

        assert point.net_rx_rate == 100
        assert point.net_tx_rate == 1
