"""Human-readable duration formatting shared by alert reasons and notifications."""

from datetime import timedelta


def format_duration(d: timedelta) -> str:
    """Format a duration the way operators read it.

    Examples:
        45s      -> "45 seconds"
        30m      -> "30 minutes"
        30m15s   -> "30 minutes 15 seconds"
        2h       -> "2 hours"
        1h5m     -> "1 hours 5 minutes"
    """
    total = int(d.total_seconds())
    if total < 60:
        return f"{max(total, 0)} seconds"
    if total < 3600:
        minutes, seconds = divmod(total, 60)
        if seconds == 0:
            return f"{minutes} minutes"
        return f"{minutes} minutes {seconds} seconds"
    hours, remainder = divmod(total, 3600)
    minutes = remainder // 60
    if minutes == 0:
        return f"{hours} hours"
    return f"{hours} hours {minutes} minutes"
