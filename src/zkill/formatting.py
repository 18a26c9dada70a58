"""Human-readable formatting helpers."""

from datetime import datetime, timezone


def truncate(text: str, max_length: int) -> str:
    """Shorten text to max_length characters, ending in '...' when cut."""
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - 3)] + "..."


def format_duration(milliseconds: int | None) -> str:
    """Format an uptime as '2d 10h', '3h 05m', '4m 12s' or '9s'."""
    if milliseconds is None:
        return "-"
    seconds = max(0, milliseconds) // 1000
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes:02d}m"
    if minutes > 0:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def _plural(count: int, unit: str) -> str:
    """Format ``count unit(s) ago``."""
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_last_used(when: datetime, now: datetime | None = None) -> str:
    """Describe a timestamp relative to now ('just now', '5 minutes ago', ...)."""
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.astimezone()
    minutes = int((now - when).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    return when.astimezone().strftime("%Y-%m-%d")
