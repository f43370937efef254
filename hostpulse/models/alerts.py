# hostpulse/models/alerts.py

import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


class AlertType(str, Enum):
    """
    Resource an alert threshold watches.
    cpu and disk compare their usage percent directly,
    memory compares used/total.
    """
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"


class AlertThreshold(BaseModel):
    model_config = ConfigDict(extra="forbid")

    alert_type: AlertType
    threshold_percent: float = Field(ge=0, le=100)
    enabled: StrictBool = True

    @field_validator("threshold_percent", mode="before")
    @classmethod
    def _number_only(cls, value):
        # bool is an int subclass; "90" would otherwise be parsed
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("threshold_percent must be a number")
        return value

    @field_validator("threshold_percent")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("threshold_percent must be a finite number")
        return value


class AlertRecord(BaseModel):
    id: int
    target: str
    alert_type: AlertType
    threshold: float
    actual_value: float
    timestamp: datetime
    acknowledged: bool = False


class AlertEvent(BaseModel):
    """A fired alert as surfaced to live subscribers."""
    target: str
    alert_type: AlertType
    threshold: float
    actual_value: float
    timestamp: datetime
    record_id: int | None = None

    @property
    def message(self) -> str:
        label = self.alert_type.value.capitalize()
        return (
            f"{label} usage at {self.actual_value:.1f}% on {self.target} "
            f"(threshold: {self.threshold:.0f}%)"
        )


DEFAULT_THRESHOLDS: tuple[AlertThreshold, ...] = (
    AlertThreshold(alert_type=AlertType.CPU, threshold_percent=90.0),
    AlertThreshold(alert_type=AlertType.MEMORY, threshold_percent=85.0),
    AlertThreshold(alert_type=AlertType.DISK, threshold_percent=90.0),
)
