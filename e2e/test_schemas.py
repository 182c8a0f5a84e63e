"""Schema validation tests."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from schemas.alert import Alert, HealthState, HeuristicKind, StateTransition
from schemas.record import JobRecord, JobStatus
from schemas.state import JobState
from schemas.thresholds import (
    DEFAULT_MAX_RUNNING_TIME,
    DEFAULT_THRESHOLD_CHECKS,
    DetectionThresholds,
    GroupOverride,
)

from conftest import T0


class TestJobRecord:
    def test_naive_timestamps_are_treated_as_utc(self):
        r = JobRecord(
            job_id="job_a",
            status="running",
            created_at=datetime(2026, 3, 2, 11, 0),
            scheduled_at=datetime(2026, 3, 2, 11, 0),
            executed_at=datetime(2026, 3, 2, 11, 1),
        )
        assert r.created_at.tzinfo is timezone.utc
        assert r.executed_at == datetime(2026, 3, 2, 11, 1, tzinfo=timezone.utc)

    def test_optional_fields_default_to_none(self):
        r = JobRecord(job_id="job_a", status=JobStatus.PENDING, created_at=T0, scheduled_at=T0)
        assert r.executed_at is None
        assert r.finished_at is None
        assert r.message is None

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            JobRecord(job_id="job_a", status="exploded", created_at=T0, scheduled_at=T0)

    def test_is_immutable(self):
        r = JobRecord(job_id="job_a", status="success", created_at=T0, scheduled_at=T0)
        with pytest.raises(ValidationError):
            r.status = JobStatus.ERROR


class TestDetectionThresholds:
    def test_zero_fields_fall_back_to_defaults(self):
        t = DetectionThresholds().with_defaults()
        assert t.max_running_time == DEFAULT_MAX_RUNNING_TIME
        assert t.max_pending_count == 20
        assert t.consecutive_errors == 3
        assert t.max_missed_count == 5
        assert t.lookback_window == timedelta(hours=1)
        assert t.threshold_checks == DEFAULT_THRESHOLD_CHECKS
        assert t.scheduler_inactivity_minutes == 10
        assert t.scheduler_lookahead_minutes == 15

    def test_set_fields_are_kept(self):
        t = DetectionThresholds(max_pending_count=7, threshold_checks=1).with_defaults()
        assert t.max_pending_count == 7
        assert t.threshold_checks == 1

    def test_negative_count_rejected(self):
        with pytest.raises(ValidationError):
            DetectionThresholds(max_pending_count=-1)

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            DetectionThresholds(max_running_time=timedelta(minutes=-5))


class TestGroupOverride:
    def test_overrides_only_include_set_fields(self):
        o = GroupOverride(name="index", max_running_time=timedelta(hours=2))
        assert o.overrides() == {"max_running_time": timedelta(hours=2)}

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            GroupOverride(name="")


class TestOutputs:
    def test_transition_recovery_flag(self):
        t = StateTransition(
            job_id="job_a",
            from_state=HealthState.ALERTING,
            to_state=HealthState.NOT_ALERTING,
            at=T0,
        )
        assert t.is_recovery

    def test_alert_serializes_enums_as_strings(self):
        a = Alert(job_id="job_a", kind=HeuristicKind.PENDING_ACCUMULATION,
                  status=JobStatus.PENDING, reason="x", pending_count=21, detected_at=T0)
        dumped = a.model_dump(mode="json")
        assert dumped["kind"] == "pending_accumulation"
        assert dumped["status"] == "pending"


class TestJobState:
    def test_copy_is_independent(self):
        state = JobState(job_id="job_a")
        state.counters[HeuristicKind.LONG_RUNNING] = 1
        clone = state.copy()
        clone.counters[HeuristicKind.LONG_RUNNING] = 5
        clone.consecutive_stuck = 9
        assert state.counters[HeuristicKind.LONG_RUNNING] == 1
        assert state.consecutive_stuck == 0
