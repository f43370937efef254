"""Time helpers shared by storage adapters and background tasks."""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_epoch(dt: datetime) -> float:
    return ensure_utc(dt).timestamp()


def from_epoch(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, UTC)


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


def aggregation_window(
    now: datetime, safety_margin: timedelta, span: timedelta
) -> tuple[datetime, datetime]:
    """
    Closed window [start, end) that ends `safety_margin` before the current
    wall-clock minute and reaches back `span`.
    """
    end = truncate_to_minute(ensure_utc(now)) - safety_margin
    return end - span, end
