"""Polling service. Drives the detection engine on a fixed interval.

One poll:
    1. Fetch the lookback window of records from the source
    2. Hand them to DetectionEngine.evaluate()
    3. Run the scheduler liveness check against the same source
    4. Log every surfaced alert (the persistent alert history)
    5. Dispatch health transitions to the notifiers
    6. Log a one-line summary

A poll whose fetch fails is skipped entirely. The engine never sees a
partial batch, so no counter moves and no state is created.

The loop itself is the usual worker shape: poll once immediately, then wait
on a threading.Event for the interval. stop() sets the event, which wakes
the wait early and ends the loop after the current poll.
"""

import logging
import threading
from collections import Counter
from datetime import timedelta

from config import Settings
from detection.engine import DebounceMode, DetectionEngine
from detection.thresholds import ThresholdResolver
from notify.dispatcher import NotificationDispatcher
from notify.log_sink import log_alert
from notify.webhook import WebhookNotifier
from schemas.alert import PollResult
from sources.base import RecordSource, SourceError
from sources.fixture import FixtureRecordSource
from sources.sql import SqlRecordSource

logger = logging.getLogger(__name__)


class MonitorService:
    """Owns one source, one engine, and one dispatcher.

    Attributes:
        source: Where records come from.
        engine: Detection state and logic.
        dispatcher: Notification fan-out. May have no notifiers.
        interval: Time between polls.
        last_result: Outcome of the most recent successful poll, or None.
    """

    def __init__(
        self,
        source: RecordSource,
        engine: DetectionEngine,
        dispatcher: NotificationDispatcher,
        lookback: timedelta,
        interval: timedelta = timedelta(minutes=2),
    ) -> None:
        self.source = source
        self.engine = engine
        self.dispatcher = dispatcher
        self.lookback = lookback
        self.interval = interval
        self.last_result: PollResult | None = None

        self._stop_event = threading.Event()
        self._poll_lock = threading.Lock()

    def run_check(self) -> PollResult | None:
        """Run a single poll. Returns None when the source could not be read.

        Polls triggered concurrently (the loop and POST /api/check) are
        serialized so each sees the state left by the previous one.
        """
        with self._poll_lock:
            try:
                records = self.source.fetch_recent(self.lookback)
            except SourceError as exc:
                logger.error("Skipping poll: could not read records from %s: %s",
                             self.source.description, exc)
                return None

            result = self.engine.evaluate(records)

            scheduler_alert = self.engine.check_scheduler(self.source)
            if scheduler_alert is not None:
                result = result.model_copy(update={"alerts": [*result.alerts, scheduler_alert]})

            for alert in result.alerts:
                log_alert(alert)

            sent = self.dispatcher.dispatch(result.transitions)
            self._log_summary(records, result, sent)

            self.last_result = result
            return result

    def start(self) -> None:
        """Poll immediately, then every interval until stop() is called.

        Blocks the calling thread.
        """
        logger.info(
            "Monitoring %s every %ss (debounce: %s).",
            self.source.description,
            int(self.interval.total_seconds()),
            self.engine.mode.value,
        )

        self._poll_once()
        while not self._stop_event.wait(self.interval.total_seconds()):
            self._poll_once()

        logger.info("Monitor stopped.")

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def close(self) -> None:
        """Release the source connection pool and notifier clients."""
        self.dispatcher.close()
        self.source.close()

    # ── Private ───────────────────────────────────────────────────────────────

    def _poll_once(self) -> None:
        # The loop outlives any single failed poll.
        try:
            self.run_check()
        except Exception:
            logger.exception("Check failed; retrying in %ss.", int(self.interval.total_seconds()))

    def _log_summary(self, records, result: PollResult, sent: int) -> None:
        by_status = Counter(r.status.value for r in records)
        breakdown = ", ".join(f"{status}={n}" for status, n in sorted(by_status.items())) or "none"
        logger.info(
            "Poll complete: %d records across %d jobs (%s); %d alerts, %d transitions, "
            "%d notifications, %d evicted.",
            result.record_count,
            result.job_count,
            breakdown,
            len(result.alerts),
            len(result.transitions),
            sent,
            len(result.evicted),
        )

        if logger.isEnabledFor(logging.DEBUG):
            for job_id, state in sorted(self.engine.job_states().items()):
                if state.consecutive_stuck:
                    logger.debug(
                        "  %s: consecutive_stuck=%d last_status=%s health=%s",
                        job_id,
                        state.consecutive_stuck,
                        state.last_status.value if state.last_status else None,
                        state.health_state.value,
                    )


def build_source(settings: Settings) -> RecordSource:
    """Return the SQL source when a database URL is configured, else the fixture."""
    if settings.database_url:
        return SqlRecordSource.from_url(settings.database_url, table=settings.table)
    logger.warning(
        "CRONWATCH_DATABASE_URL not set, reading records from fixture %s.", settings.fixture_path
    )
    return FixtureRecordSource(settings.fixture_path)


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    notifiers = []
    if settings.webhook_urls:
        notifiers.append(
            WebhookNotifier(settings.webhook_urls, timeout=settings.notify_timeout_seconds)
        )
    else:
        logger.info("No webhook URLs configured, notifications disabled.")

    return NotificationDispatcher(
        notifiers,
        alert_cooldown=timedelta(seconds=settings.alert_cooldown_seconds),
        recovery_cooldown=timedelta(seconds=settings.recovery_cooldown_seconds),
        send_recovery=settings.send_recovery,
    )


def build_engine(settings: Settings) -> DetectionEngine:
    return DetectionEngine(
        ThresholdResolver(settings.thresholds, settings.group_overrides),
        mode=DebounceMode(settings.debounce_mode),
        suppression_window=timedelta(seconds=settings.suppression_window_seconds),
        state_ttl=timedelta(hours=settings.state_ttl_hours),
    )


def build_service(settings: Settings) -> MonitorService:
    """Wire a MonitorService from settings."""
    return MonitorService(
        source=build_source(settings),
        engine=build_engine(settings),
        dispatcher=build_dispatcher(settings),
        lookback=settings.lookback_window,
        interval=settings.poll_interval,
    )
