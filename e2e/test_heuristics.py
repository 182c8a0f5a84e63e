"""Tests for the four per-job heuristics.

Pure functions of (records, thresholds, now), so no engine or clock needed.
"""

from datetime import timedelta

from detection.heuristics import JobHeuristics
from schemas.alert import HeuristicKind
from schemas.record import JobStatus
from schemas.thresholds import DetectionThresholds

from conftest import T0, errors, healthy, make_record, missed, pending, running

DEFAULTS = DetectionThresholds().with_defaults()


def evaluate(records, thresholds=DEFAULTS, now=T0):
    return JobHeuristics().evaluate(records, thresholds, now)


class TestLongRunning:
    def test_fires_past_threshold(self):
        [f] = evaluate([running(executed=35)])
        assert f.kind is HeuristicKind.LONG_RUNNING
        assert f.status is JobStatus.RUNNING
        assert f.running_time == timedelta(minutes=35)
        assert f.reason == "job running longer than max_running_time threshold (30 minutes)"

    def test_exactly_at_threshold_does_not_fire(self):
        assert evaluate([running(executed=30)]) == []

    def test_running_without_start_time_ignored(self):
        r = make_record(status=JobStatus.RUNNING, created=60)
        assert evaluate([r]) == []

    def test_only_most_recent_running_record_counts(self):
        records = [running(executed=5), running(executed=90)]
        assert evaluate(records) == []


class TestPendingAccumulation:
    def test_fires_strictly_above_threshold(self):
        [f] = evaluate(pending(count=21))
        assert f.kind is HeuristicKind.PENDING_ACCUMULATION
        assert f.pending_count == 21
        assert f.reason == "too many pending jobs (21 exceeds threshold of 20)"

    def test_at_threshold_does_not_fire(self):
        assert evaluate(pending(count=20)) == []


class TestConsecutiveErrors:
    def test_fires_at_threshold(self):
        [f] = evaluate(errors(count=3, message="Connection refused"))
        assert f.kind is HeuristicKind.CONSECUTIVE_ERRORS
        assert f.error_count == 3
        assert f.message == "Connection refused"
        assert f.reason == "consecutive errors detected (3 reached threshold of 3)"

    def test_success_breaks_the_streak(self):
        # error, error, success, error: only the first two count
        records = [
            make_record(status=JobStatus.ERROR, created=1),
            make_record(status=JobStatus.ERROR, created=2),
            make_record(status=JobStatus.SUCCESS, created=3),
            make_record(status=JobStatus.ERROR, created=4),
        ]
        assert evaluate(records) == []

    def test_non_success_records_do_not_break_the_streak(self):
        records = [
            make_record(status=JobStatus.ERROR, created=1),
            make_record(status=JobStatus.MISSED, created=2),
            make_record(status=JobStatus.ERROR, created=3),
            make_record(status=JobStatus.ERROR, created=4),
        ]
        [f] = evaluate(records)
        assert f.error_count == 3

    def test_only_scans_twice_the_threshold(self):
        # Six records are scanned for threshold 3; the third error is seventh.
        records = (
            [make_record(status=JobStatus.ERROR, created=1)]
            + [make_record(status=JobStatus.MISSED, created=i) for i in range(2, 7)]
            + errors(count=2)
        )
        kinds = [f.kind for f in evaluate(records)]
        assert HeuristicKind.CONSECUTIVE_ERRORS not in kinds

    def test_first_error_supplies_evidence(self):
        records = [
            make_record(status=JobStatus.ERROR, created=1, executed=1, message="latest"),
            make_record(status=JobStatus.ERROR, created=2, executed=2, message="older"),
            make_record(status=JobStatus.ERROR, created=3, executed=3, message="oldest"),
        ]
        [f] = evaluate(records)
        assert f.message == "latest"
        assert f.executed_at == T0 - timedelta(minutes=1)


class TestMissedExecutions:
    def test_fires_at_threshold(self):
        [f] = evaluate(missed(count=5))
        assert f.kind is HeuristicKind.MISSED_EXECUTIONS
        assert f.missed_count == 5
        assert f.reason == "too many missed executions (5 reached threshold of 5)"

    def test_below_threshold_does_not_fire(self):
        assert evaluate(missed(count=4)) == []


class TestEvaluationOrder:
    def test_findings_follow_fixed_order(self):
        records = missed(count=5) + errors(count=3) + pending(count=21) + [running(executed=40)]
        records.sort(key=lambda r: r.created_at, reverse=True)
        t = DetectionThresholds(consecutive_errors=1).with_defaults()
        kinds = [f.kind for f in evaluate(records, t)]
        assert kinds == [
            HeuristicKind.LONG_RUNNING,
            HeuristicKind.PENDING_ACCUMULATION,
            HeuristicKind.CONSECUTIVE_ERRORS,
            HeuristicKind.MISSED_EXECUTIONS,
        ]

    def test_healthy_job_produces_nothing(self):
        assert evaluate([healthy()]) == []

    def test_same_input_same_output(self):
        records = [running(executed=45)] + pending(count=25)
        assert evaluate(records) == evaluate(records)
