"""
Tests for session completion and villa activation

Tests covering:
1. Session completes only when every required step is COMPLETED or SKIPPED
2. Activation runs exactly once, even under repeated evaluation
3. Failed activation is retried on a later update
4. Completion notification and audit entries
"""
import pytest

from conftest import REQUIRED_STEPS, VILLA_ID, RecordingActivator, complete_step
from villa_onboarding.models import AuditLog, OnboardingSession
from villa_onboarding.services.progress_engine import ProgressEngine
from villa_onboarding.services.session_locks import SessionLockRegistry


def _complete_required(engine, skip=()):
    for step in REQUIRED_STEPS:
        if step in skip:
            engine.skip_stage(VILLA_ID, step, reason="not applicable", category="NOT_APPLICABLE")
        else:
            complete_step(engine, step)


class TestCompletionRule:

    def test_incomplete_required_step_blocks(self, started):
        for step in REQUIRED_STEPS[:-1]:
            complete_step(started, step)
        progress = started.get_progress(VILLA_ID)
        assert progress.status == "IN_PROGRESS"
        assert progress.completed_at is None

    def test_all_required_completed(self, started, db):
        _complete_required(started)

        progress = started.get_progress(VILLA_ID)
        assert progress.status == "COMPLETED"
        assert progress.completed_at is not None
        # optional steps 5, 7, 8 untouched
        assert progress.progress_percentage == pytest.approx(100 - 8 - 10 - 10)
        assert db.query(AuditLog).filter(AuditLog.action == "SESSION_COMPLETED").count() == 1

    def test_skipped_required_step_does_not_block(self, started):
        _complete_required(started, skip=(4,))

        progress = started.get_progress(VILLA_ID)
        assert progress.status == "COMPLETED"
        assert progress.per_stage[3].status == "SKIPPED"
        assert progress.progress_percentage == pytest.approx(72 - 8 + 4)

    def test_completion_is_sticky(self, started):
        _complete_required(started)
        started.update_field(VILLA_ID, 1, "villa_city", "")
        assert started.get_progress(VILLA_ID).status == "COMPLETED"


class TestActivation:

    def test_activated_exactly_once(self, started, activator, db):
        _complete_required(started)
        assert activator.calls == [VILLA_ID]

        # More updates re-run the completion check
        started.update_field(VILLA_ID, 8, "kitchen_equipment", "Full kitchen")
        complete_step(started, 1)
        started.skip_stage(VILLA_ID, 7)

        assert activator.calls == [VILLA_ID]
        assert db.query(OnboardingSession).one().activated_at is not None

    def test_failed_activation_retried(self, store, notifier, db):
        flaky = RecordingActivator(fail_times=1)
        engine = ProgressEngine(store, activator=flaky, notifier=notifier, locks=SessionLockRegistry())
        engine.initialize(VILLA_ID)
        _complete_required(engine)

        assert flaky.calls == [VILLA_ID]
        assert db.query(OnboardingSession).one().activated_at is None
        assert engine.get_progress(VILLA_ID).status == "COMPLETED"

        engine.update_field(VILLA_ID, 8, "kitchen_equipment", "Full kitchen")
        assert flaky.calls == [VILLA_ID, VILLA_ID]
        assert db.query(OnboardingSession).one().activated_at is not None

    def test_completion_notification(self, started, notifier):
        _complete_required(started)
        completed = [n for n in notifier.sent if n["event"] == "onboarding_completed"]
        assert len(completed) == 1
        assert completed[0]["payload"]["villa_id"] == VILLA_ID
