# hostpulse/internal/analysis/rules.py

from hostpulse.models.alerts import AlertThreshold, AlertType
from hostpulse.models.metrics import Sample


def observed_value(sample: Sample, alert_type: AlertType) -> float | None:
    """
    The percentage a threshold of `alert_type` is compared against.
    Memory has no defined ratio when total_bytes is 0, so None is returned.
    """
    if alert_type == AlertType.CPU:
        return sample.cpu.usage_percent
    if alert_type == AlertType.DISK:
        return sample.disk.usage_percent
    return sample.memory.used_percent


def check_threshold(sample: Sample, threshold: AlertThreshold) -> float | None:
    """
    Returns the observed value if `threshold` is enabled and crossed,
    otherwise None.
    """
    if not threshold.enabled:
        return None
    actual = observed_value(sample, threshold.alert_type)
    if actual is None:
        return None
    if actual >= threshold.threshold_percent:
        return actual
    return None
