"""
Tests for skipping and unskipping fields and steps

Tests covering:
1. Skip/unskip restores the pre-skip status and keeps the value
2. Skip records are deactivated, never deleted
3. Skipped steps earn half credit and advance the current step
4. Skip categories and the skip-threshold notification
"""
import pytest

from conftest import VALID_STAGE_DATA, VILLA_ID, complete_step
from villa_onboarding.errors import InvalidInput
from villa_onboarding.models import SkipRecord


def _field(engine, step, name):
    session = engine.store.get_session(VILLA_ID)
    return engine.store.get_field(engine.store.get_stage(session.id, step), name)


def _stage(engine, step):
    session = engine.store.get_session(VILLA_ID)
    return engine.store.get_stage(session.id, step)


class TestSkipField:

    def test_skip_marks_field_and_records(self, started, db):
        summary = started.skip_field(VILLA_ID, 1, "description", reason="No copy yet", category="LATER", actor="owner-1")

        field = _field(started, 1, "description")
        assert field.status == "SKIPPED"
        assert field.is_skipped is True
        assert summary.fields_skipped == 1

        record = db.query(SkipRecord).one()
        assert record.is_active is True
        assert record.item_type == "FIELD"
        assert record.skip_category == "LATER"
        assert record.skipped_by == "owner-1"

    def test_skip_then_unskip_restores_status_and_value(self, started, db):
        started.update_field(VILLA_ID, 2, "owner_first_name", "Made")
        started.skip_field(VILLA_ID, 2, "owner_first_name")
        started.unskip_field(VILLA_ID, 2, "owner_first_name")

        field = _field(started, 2, "owner_first_name")
        assert field.status == "COMPLETED"
        assert field.value == "Made"

        record = db.query(SkipRecord).one()
        assert record.is_active is False
        assert record.unskipped_at is not None

    def test_unskip_untouched_field_returns_to_not_started(self, started):
        started.skip_field(VILLA_ID, 8, "kitchen_equipment")
        started.unskip_field(VILLA_ID, 8, "kitchen_equipment")
        assert _field(started, 8, "kitchen_equipment").status == "NOT_STARTED"

    def test_write_to_skipped_field_keeps_it_skipped(self, started):
        started.skip_field(VILLA_ID, 1, "description")
        started.update_field(VILLA_ID, 1, "description", "Ocean view villa")

        field = _field(started, 1, "description")
        assert field.status == "SKIPPED"
        assert field.value == "Ocean view villa"

        started.unskip_field(VILLA_ID, 1, "description")
        assert _field(started, 1, "description").status == "COMPLETED"

    def test_skip_is_idempotent(self, started, db):
        started.skip_field(VILLA_ID, 1, "description")
        started.skip_field(VILLA_ID, 1, "description")
        assert db.query(SkipRecord).count() == 1

    def test_unskip_of_unskipped_field_is_noop(self, started, db):
        started.unskip_field(VILLA_ID, 1, "description")
        assert db.query(SkipRecord).count() == 0

    def test_skipped_required_field_does_not_block_submission(self, started):
        started.skip_field(VILLA_ID, 6, "insurance_certificate", category="DATA_UNAVAILABLE")
        response = started.update_stage(VILLA_ID, 6, {"property_contract": "contract.pdf"}, completed=True)
        assert response.status == "COMPLETED"

    def test_unknown_category_rejected(self, started):
        with pytest.raises(InvalidInput):
            started.skip_field(VILLA_ID, 1, "description", category="BORED")

    def test_active_skips_in_read_model(self, started):
        started.skip_field(VILLA_ID, 1, "description", reason="later", category="LATER")
        progress = started.get_progress(VILLA_ID)

        assert len(progress.active_skips) == 1
        skip = progress.active_skips[0]
        assert (skip.item_type, skip.stage_number, skip.field_name) == ("FIELD", 1, "description")
        assert skip.reason == "later"


class TestSkipStep:

    def test_skipped_step_earns_half_weight(self, started):
        summary = started.skip_stage(VILLA_ID, 1, reason="Owner abroad")
        assert summary.progress_percentage == pytest.approx(7.5)
        assert summary.steps_skipped == 1

    def test_skip_current_step_advances(self, started):
        summary = started.skip_stage(VILLA_ID, 1)
        assert summary.current_step == 2

    def test_skip_other_step_keeps_current(self, started):
        summary = started.skip_stage(VILLA_ID, 5)
        assert summary.current_step == 1

    def test_unskip_step_restores_previous_status(self, started, db):
        complete_step(started, 1)
        started.skip_stage(VILLA_ID, 1)
        started.unskip_stage(VILLA_ID, 1)

        assert _stage(started, 1).status == "COMPLETED"
        assert db.query(SkipRecord).filter(SkipRecord.is_active.is_(True)).count() == 0
        assert db.query(SkipRecord).count() == 1

    def test_unskip_step_with_partial_fields(self, started):
        started.update_field(VILLA_ID, 2, "owner_first_name", "Made")
        started.skip_stage(VILLA_ID, 2)
        started.unskip_stage(VILLA_ID, 2)
        assert _stage(started, 2).status == "IN_PROGRESS"

    def test_submitting_skipped_step_completes_it(self, started, db):
        started.skip_stage(VILLA_ID, 4)
        response = started.update_stage(VILLA_ID, 4, VALID_STAGE_DATA[4], completed=True)

        assert response.status == "COMPLETED"
        assert db.query(SkipRecord).filter(SkipRecord.is_active.is_(True)).count() == 0


class TestSkipThreshold:

    def test_notifies_once_when_threshold_reached(self, started, notifier):
        for name in ("description", "latitude", "longitude"):
            started.skip_field(VILLA_ID, 1, name)
        for step in (5, 7):
            started.skip_stage(VILLA_ID, step)

        events = [n["event"] for n in notifier.sent]
        assert events.count("skip_threshold_reached") == 1

        started.skip_stage(VILLA_ID, 8)
        events = [n["event"] for n in notifier.sent]
        assert events.count("skip_threshold_reached") == 1
