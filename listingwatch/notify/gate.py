"""Time-of-day gate deciding whether a cycle may send notifications."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from listingwatch.config import NotificationWindow


def local_hour(now: datetime, tz_name: str) -> int:
    """Hour of day at ``now`` in ``tz_name``. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).hour


def hour_in_window(hour: int, window: NotificationWindow) -> bool:
    if window.mode == "peak_hours":
        return hour in window.peak_hours
    if window.start_hour <= window.end_hour:
        return window.start_hour <= hour <= window.end_hour
    # Wraps past midnight, e.g. 22..6
    return hour >= window.start_hour or hour <= window.end_hour


def is_eligible(now: datetime, window: NotificationWindow, manual_override: bool = False) -> bool:
    """True if notifications may be sent at ``now``."""
    if manual_override:
        return True
    return hour_in_window(local_hour(now, window.timezone), window)
