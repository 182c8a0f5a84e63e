"""Plain-text rendering of alerts and transitions.

Used for the "text" field of webhook payloads and for CLI output. Kept free
of any chat-provider markup so every destination can show it as-is.
"""

from datetime import datetime

from schemas.alert import Alert, StateTransition
from utils.durations import format_duration

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def format_time(value: datetime | None, default: str = "N/A") -> str:
    if value is None:
        return default
    return value.strftime(_TIME_FORMAT)


def format_transition(t: StateTransition) -> str:
    """Render a transition as a short multi-line message."""
    if t.is_recovery:
        lines = [
            f"✅ Cron job `{t.job_id}` is no longer alerting",
            f"Was alerting for: {format_duration(t.stuck_duration) if t.stuck_duration else 'N/A'}",
            f"Last execution: {format_time(t.last_execution, default='Never')}",
            f"No longer alerting at {format_time(t.at)}",
        ]
        return "\n".join(lines)

    lines = [
        f"🚨 Cron job `{t.job_id}` is alerting",
        f"Group: {t.group}",
        f"Problem: {t.reason}",
        f"Consecutive issues: {t.consecutive_stuck}",
        f"Scheduled at: {format_time(t.scheduled_at)}",
        f"Last execution: {format_time(t.last_execution, default='Never')}",
    ]
    if t.running_time is not None:
        lines.append(f"Running time: {format_duration(t.running_time)}")
    lines.append(f"Alerted at {format_time(t.at)}")
    return "\n".join(lines)


def format_alert(alert: Alert) -> str:
    """Render an alert as a single line."""
    evidence = alert_evidence(alert)
    suffix = f" [{evidence}]" if evidence else ""
    return f"{alert.job_id}: {alert.reason}{suffix}"


def alert_evidence(alert: Alert) -> str:
    """Return the populated evidence field as "name=value", or ""."""
    if alert.running_time is not None:
        return f"running_time={format_duration(alert.running_time)}"
    if alert.pending_count is not None:
        return f"pending_count={alert.pending_count}"
    if alert.error_count is not None:
        return f"error_count={alert.error_count}"
    if alert.missed_count is not None:
        return f"missed_count={alert.missed_count}"
    return ""
