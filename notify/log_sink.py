"""Alert log sink.

Every surfaced alert is written to the log at WARNING with all of its
fields, which makes the rotating log file the persistent alert history.
"""

import logging

from detection.engine import SCHEDULER_JOB_ID
from notify.formatter import alert_evidence, format_time
from schemas.alert import Alert

logger = logging.getLogger("cronwatch.alerts")


def log_alert(alert: Alert) -> None:
    """Write one alert as a single structured WARNING line."""
    headline = "STUCK JOB SCHEDULER" if alert.job_id == SCHEDULER_JOB_ID else "STUCK JOB DETECTED"

    fields = {
        "job_id": alert.job_id,
        "group": alert.group,
        "kind": alert.kind.value,
        "status": alert.status.value if alert.status else None,
        "reason": alert.reason,
        "consecutive_stuck": alert.consecutive_stuck,
    }
    evidence = alert_evidence(alert)
    if evidence:
        key, value = evidence.split("=", 1)
        fields[key] = value
    if alert.scheduled_at is not None:
        fields["scheduled_at"] = format_time(alert.scheduled_at)
    if alert.executed_at is not None:
        fields["executed_at"] = format_time(alert.executed_at)
    if alert.message:
        fields["error_message"] = alert.message

    rendered = " ".join(f"{k}={v!r}" for k, v in fields.items() if v is not None)
    logger.warning("%s %s", headline, rendered, extra={"fields": fields})
