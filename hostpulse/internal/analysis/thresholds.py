# hostpulse/internal/analysis/thresholds.py

import threading
from typing import Any, Iterable

from pydantic import ValidationError

from hostpulse.internal.errors import ConfigurationError
from hostpulse.models.alerts import DEFAULT_THRESHOLDS, AlertThreshold


def validate_thresholds(items: Iterable[AlertThreshold | dict[str, Any]]) -> tuple[AlertThreshold, ...]:
    """
    Validates a complete threshold list. Unknown alert types, out-of-range
    percentages and duplicate types are rejected, never coerced.
    """
    validated: list[AlertThreshold] = []
    seen = set()
    for item in items:
        try:
            threshold = (
                AlertThreshold.model_validate(item.model_dump())
                if isinstance(item, AlertThreshold)
                else AlertThreshold.model_validate(item)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid alert threshold {item!r}: {e}") from e
        if threshold.alert_type in seen:
            raise ConfigurationError(
                f"Duplicate threshold for alert type '{threshold.alert_type.value}'"
            )
        seen.add(threshold.alert_type)
        validated.append(threshold)
    return tuple(validated)


class ThresholdStore:
    """
    Holds the current alert thresholds as an immutable snapshot.
    Writers replace the whole list; readers take one snapshot per tick.
    """

    def __init__(self, thresholds: Iterable[AlertThreshold | dict[str, Any]] = DEFAULT_THRESHOLDS):
        self._lock = threading.Lock()
        self._snapshot = validate_thresholds(thresholds)
        self._version = 1

    def snapshot(self) -> tuple[AlertThreshold, ...]:
        with self._lock:
            return self._snapshot

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def replace(self, thresholds: Iterable[AlertThreshold | dict[str, Any]]) -> tuple[AlertThreshold, ...]:
        # Validate outside the lock; a bad list leaves the old snapshot in place
        snapshot = validate_thresholds(thresholds)
        with self._lock:
            self._snapshot = snapshot
            self._version += 1
        return snapshot
