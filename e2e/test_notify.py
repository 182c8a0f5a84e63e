"""Notification tests: formatting, webhook delivery, dispatcher cooldowns, log sink."""

import json
import logging
from datetime import timedelta

import httpx
import pytest

from notify.base import NotificationError
from notify.dispatcher import NotificationDispatcher
from notify.formatter import format_alert, format_transition
from notify.log_sink import log_alert
from notify.webhook import WebhookNotifier, build_payload
from schemas.alert import Alert, HealthState, HeuristicKind, StateTransition
from schemas.record import JobStatus

from conftest import T0, FakeClock, RecordingNotifier


def alerting(job_id="job_a", at=T0):
    return StateTransition(
        job_id=job_id,
        group="default",
        from_state=HealthState.NOT_ALERTING,
        to_state=HealthState.ALERTING,
        at=at,
        status=JobStatus.RUNNING,
        reason="job running longer than max_running_time threshold (30 minutes)",
        kind=HeuristicKind.LONG_RUNNING,
        running_time=timedelta(minutes=65),
        consecutive_stuck=2,
    )


def recovered(job_id="job_a", at=T0):
    return StateTransition(
        job_id=job_id,
        from_state=HealthState.ALERTING,
        to_state=HealthState.NOT_ALERTING,
        at=at,
        stuck_duration=timedelta(minutes=12),
    )


# ── Formatting ────────────────────────────────────────────────────────────────

class TestFormatter:
    def test_alerting_message(self):
        text = format_transition(alerting())
        assert text.startswith("🚨 Cron job `job_a` is alerting")
        assert "Problem: job running longer" in text
        assert "Running time: 1 hours 5 minutes" in text
        assert "Last execution: Never" in text

    def test_recovery_message(self):
        text = format_transition(recovered())
        assert text.startswith("✅ Cron job `job_a` is no longer alerting")
        assert "Was alerting for: 12 minutes" in text

    def test_alert_one_liner(self):
        alert = Alert(job_id="job_a", kind=HeuristicKind.MISSED_EXECUTIONS,
                      reason="too many missed executions (6 reached threshold of 5)",
                      missed_count=6, detected_at=T0)
        assert format_alert(alert) == (
            "job_a: too many missed executions (6 reached threshold of 5) [missed_count=6]"
        )


# ── Webhook ───────────────────────────────────────────────────────────────────

class TestWebhookNotifier:
    def test_posts_payload_to_every_url(self):
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier(["https://a.example/hook", "https://b.example/hook"], client=client)
        notifier.send(alerting())

        assert [url for url, _ in seen] == ["https://a.example/hook", "https://b.example/hook"]
        body = seen[0][1]
        assert body["text"].startswith("🚨")
        assert body["event"]["job_id"] == "job_a"
        assert body["event"]["to_state"] == "alerting"

    def test_failure_raises_after_trying_all_urls(self):
        calls = []

        def handler(request):
            calls.append(request.url.host)
            if request.url.host == "bad.example":
                return httpx.Response(500)
            return httpx.Response(204)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier(["https://bad.example/secret", "https://ok.example/x"], client=client)

        with pytest.raises(NotificationError) as exc:
            notifier.send(recovered())
        assert calls == ["bad.example", "ok.example"]
        assert "secret" not in str(exc.value)

    def test_requires_a_url(self):
        with pytest.raises(ValueError):
            WebhookNotifier([])

    def test_payload_is_json_serializable(self):
        json.dumps(build_payload(alerting()))


# ── Dispatcher ────────────────────────────────────────────────────────────────

class TestDispatcher:
    def test_sends_transitions(self):
        notifier = RecordingNotifier()
        dispatcher = NotificationDispatcher([notifier], clock=FakeClock())
        assert dispatcher.dispatch([alerting("job_a"), alerting("job_b")]) == 2
        assert [t.job_id for t in notifier.sent] == ["job_a", "job_b"]

    def test_alert_cooldown_per_job(self):
        clock = FakeClock()
        notifier = RecordingNotifier()
        dispatcher = NotificationDispatcher([notifier], alert_cooldown=timedelta(minutes=30), clock=clock)

        dispatcher.dispatch([alerting()])
        clock.advance(minutes=10)
        assert dispatcher.dispatch([alerting()]) == 0
        assert dispatcher.dispatch([alerting("job_b")]) == 1

        clock.advance(minutes=21)
        assert dispatcher.dispatch([alerting()]) == 1

    def test_recovery_measured_against_last_alert(self):
        clock = FakeClock()
        notifier = RecordingNotifier()
        dispatcher = NotificationDispatcher(
            [notifier], recovery_cooldown=timedelta(minutes=5), clock=clock
        )
        dispatcher.dispatch([alerting()])
        clock.advance(minutes=2)
        assert dispatcher.dispatch([recovered()]) == 0
        clock.advance(minutes=4)
        assert dispatcher.dispatch([recovered()]) == 1

    def test_recovery_disabled(self):
        notifier = RecordingNotifier()
        dispatcher = NotificationDispatcher([notifier], send_recovery=False, clock=FakeClock())
        assert dispatcher.dispatch([recovered()]) == 0
        assert notifier.sent == []

    def test_failing_notifier_does_not_block_others(self, caplog):
        good = RecordingNotifier()
        dispatcher = NotificationDispatcher([RecordingNotifier(fail=True), good], clock=FakeClock())
        with caplog.at_level(logging.ERROR):
            assert dispatcher.dispatch([alerting()]) == 1
        assert len(good.sent) == 1
        assert "failed" in caplog.text

    def test_failed_delivery_does_not_start_cooldown(self):
        clock = FakeClock()
        broken = RecordingNotifier(fail=True)
        dispatcher = NotificationDispatcher([broken], clock=clock)
        assert dispatcher.dispatch([alerting()]) == 0
        broken.fail = False
        assert dispatcher.dispatch([alerting()]) == 1

    def test_expired_cooldowns_are_forgotten(self):
        clock = FakeClock()
        dispatcher = NotificationDispatcher(
            [RecordingNotifier()],
            alert_cooldown=timedelta(minutes=30),
            recovery_cooldown=timedelta(minutes=5),
            clock=clock,
        )
        dispatcher.dispatch([alerting("job_a"), alerting("job_b")])
        clock.advance(minutes=20)
        dispatcher.dispatch([alerting("job_c")])
        assert set(dispatcher._last_sent) == {"job_a", "job_b", "job_c"}

        clock.advance(minutes=10)
        dispatcher.dispatch([])
        assert set(dispatcher._last_sent) == {"job_c"}

    def test_no_notifiers_is_disabled(self):
        dispatcher = NotificationDispatcher([])
        assert not dispatcher.enabled
        assert dispatcher.dispatch([alerting()]) == 0

    def test_close_closes_notifiers(self):
        notifier = RecordingNotifier()
        NotificationDispatcher([notifier]).close()
        assert notifier.closed


# ── Log sink ──────────────────────────────────────────────────────────────────

class TestLogSink:
    def test_job_alert_logged_at_warning(self, caplog):
        alert = Alert(job_id="catalog_y", group="catalog", kind=HeuristicKind.CONSECUTIVE_ERRORS,
                      status=JobStatus.ERROR, reason="consecutive errors detected (3 reached threshold of 3)",
                      error_count=3, message="gone away", consecutive_stuck=2, detected_at=T0)
        with caplog.at_level(logging.WARNING, logger="cronwatch.alerts"):
            log_alert(alert)

        [record] = caplog.records
        assert record.levelno == logging.WARNING
        assert record.getMessage().startswith("STUCK JOB DETECTED")
        assert record.fields["error_count"] == "3"
        assert record.fields["error_message"] == "gone away"

    def test_scheduler_alert_headline(self, caplog):
        alert = Alert(job_id="SCHEDULER", group="scheduler", kind=HeuristicKind.SCHEDULER_INACTIVE,
                      reason="cron scheduler appears stopped", detected_at=T0)
        with caplog.at_level(logging.WARNING, logger="cronwatch.alerts"):
            log_alert(alert)
        assert caplog.records[0].getMessage().startswith("STUCK JOB SCHEDULER")
