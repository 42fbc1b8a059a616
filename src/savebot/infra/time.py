"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def epoch_millis(moment: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch for moment (default: now)."""
    moment = moment or utc_now()
    return int(moment.timestamp() * 1000)


def from_epoch_seconds(value: int | float) -> datetime:
    """Convert protocol epoch seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value, tz=timezone.utc)
