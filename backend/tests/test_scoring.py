"""
Tests for the weighted progress score

Pure functions only, no database involved.
"""
import pytest

from villa_onboarding.catalog import STAGES
from villa_onboarding.services.completion_service import (
    StageScoreInput, compute_score, stage_contribution,
)


class TestStageContribution:

    def test_completed_earns_full_weight(self):
        assert stage_contribution("COMPLETED", 15) == 15.0

    def test_skipped_earns_half(self):
        assert stage_contribution("SKIPPED", 12) == pytest.approx(6.0)

    def test_not_started_earns_nothing(self):
        assert stage_contribution("NOT_STARTED", 10, 3, 4) == 0.0

    def test_in_progress_two_of_four_fields(self):
        # weight 10, 2 of 4 fields completed: 10 * 0.5 * 0.7
        assert stage_contribution("IN_PROGRESS", 10, 2, 4) == pytest.approx(3.5)

    def test_in_progress_without_fields(self):
        assert stage_contribution("IN_PROGRESS", 10, 0, 0) == 0.0

    def test_factors_are_configurable(self):
        assert stage_contribution("IN_PROGRESS", 10, 2, 4, in_progress_factor=1.0) == pytest.approx(5.0)
        assert stage_contribution("SKIPPED", 10, skip_credit=0.25) == pytest.approx(2.5)


class TestComputeScore:

    def test_all_completed_is_100(self):
        stages = [StageScoreInput("COMPLETED", s.weight) for s in STAGES]
        assert compute_score(stages) == pytest.approx(100.0)

    def test_all_skipped_is_50(self):
        stages = [StageScoreInput("SKIPPED", s.weight) for s in STAGES]
        assert compute_score(stages) == pytest.approx(50.0)

    def test_empty_is_zero(self):
        assert compute_score([]) == 0.0

    def test_clamped_to_100(self):
        stages = [StageScoreInput("COMPLETED", 80), StageScoreInput("COMPLETED", 80)]
        assert compute_score(stages) == 100.0

    def test_clamped_to_zero(self):
        assert compute_score([StageScoreInput("COMPLETED", -10)]) == 0.0

    def test_mixed_statuses(self):
        stages = [
            StageScoreInput("COMPLETED", 15),
            StageScoreInput("SKIPPED", 12),
            StageScoreInput("IN_PROGRESS", 10, 2, 4),
            StageScoreInput("NOT_STARTED", 8),
        ]
        assert compute_score(stages) == pytest.approx(15 + 6 + 3.5)

    def test_completing_a_stage_never_lowers_score(self):
        before = compute_score([StageScoreInput("IN_PROGRESS", 10, 4, 4)])
        after = compute_score([StageScoreInput("COMPLETED", 10, 4, 4)])
        assert after >= before
