import pytest

from conftest import make_sample
from hostpulse.internal.analysis.rules import check_threshold, observed_value
from hostpulse.internal.analysis.thresholds import ThresholdStore, validate_thresholds
from hostpulse.internal.errors import ConfigurationError
from hostpulse.models.alerts import DEFAULT_THRESHOLDS, AlertThreshold, AlertType


class TestValidation:

    def test_defaults(self):
        store = ThresholdStore()
        assert {t.alert_type: t.threshold_percent for t in store.snapshot()} == {
            AlertType.CPU: 90.0,
            AlertType.MEMORY: 85.0,
            AlertType.DISK: 90.0,
        }

    def test_unknown_kind_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_thresholds([{"alert_type": "gpu", "threshold_percent": 50}])

    @pytest.mark.parametrize("value", [-1, 100.5, float("nan"), float("inf")])
    def test_out_of_range_rejected(self, value):
        with pytest.raises(ConfigurationError):
            validate_thresholds([{"alert_type": "cpu", "threshold_percent": value}])

    def test_duplicate_kind_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            validate_thresholds([
                {"alert_type": "cpu", "threshold_percent": 50},
                {"alert_type": "cpu", "threshold_percent": 60},
            ])

    @pytest.mark.parametrize(
        "entry",
        [
            {"alert_type": "cpu", "threshold_percent": "90"},
            {"alert_type": "cpu", "threshold_percent": True},
            {"alert_type": "cpu", "threshold_percent": 90, "enabled": "off"},
            {"alert_type": "cpu", "threshold_percent": 90, "enabled": 0},
            {"alert_type": "cpu", "threshold_percent": 90, "enabld": False},
        ],
    )
    def test_loosely_typed_entries_rejected(self, entry):
        store = ThresholdStore()

        with pytest.raises(ConfigurationError):
            store.replace([entry])

        assert store.snapshot() == DEFAULT_THRESHOLDS

    def test_empty_list_allowed(self):
        assert validate_thresholds([]) == ()


class TestStore:

    def test_replace_swaps_snapshot_and_bumps_version(self):
        store = ThresholdStore()
        before = store.snapshot()

        store.replace([{"alert_type": "disk", "threshold_percent": 75}])

        assert store.version == 2
        assert [t.alert_type for t in store.snapshot()] == [AlertType.DISK]
        assert before == DEFAULT_THRESHOLDS

    def test_failed_replace_keeps_previous_snapshot(self):
        store = ThresholdStore()

        with pytest.raises(ConfigurationError):
            store.replace([{"alert_type": "cpu", "threshold_percent": 500}])

        assert store.snapshot() == DEFAULT_THRESHOLDS
        assert store.version == 1


class TestRules:

    def test_memory_uses_used_over_total(self):
        sample = make_sample(mem_used=9_000, mem_total=10_000)
        assert observed_value(sample, AlertType.MEMORY) == pytest.approx(90.0)

    def test_memory_with_zero_total_has_no_value(self):
        sample = make_sample(mem_used=0, mem_total=0)
        threshold = AlertThreshold(alert_type=AlertType.MEMORY, threshold_percent=0)

        assert observed_value(sample, AlertType.MEMORY) is None
        assert check_threshold(sample, threshold) is None

    def test_disk_threshold(self):
        sample = make_sample(disk=92.5)
        threshold = AlertThreshold(alert_type=AlertType.DISK, threshold_percent=90)

        assert check_threshold(sample, threshold) == 92.5
