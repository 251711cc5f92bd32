"""Time helpers for session bookkeeping"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def format_remaining(remaining: timedelta) -> str:
    """Session status text: "1h 5m" when over an hour, otherwise "9m" """
    total_minutes = max(0, int(remaining.total_seconds())) // 60
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_countdown(remaining: timedelta) -> str:
    """Warning countdown text: minutes:seconds, e.g. "9:05" """
    total_seconds = max(0, int(remaining.total_seconds()))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes}:{seconds:02d}"
