"""
Tests for the hash-chained audit trail

Tests covering:
1. An untouched trail verifies
2. Editing any recorded column of an entry breaks the chain at that entry
"""
import pytest

from conftest import VILLA_ID, complete_step
from villa_onboarding.models import AuditLog
from villa_onboarding.services.audit_service import AuditService


@pytest.fixture
def trail(started, db):
    complete_step(started, 1, actor="owner-7")
    session = started.store.get_session(VILLA_ID)
    return session.id, AuditService.get_trail(db, session.id)


class TestVerifyChain:

    def test_untouched_trail_is_valid(self, trail, db):
        session_id, entries = trail
        result = AuditService.verify_chain(db, session_id)

        assert result["valid"] is True
        assert result["total_entries"] == len(entries) >= 2

    def test_entries_carry_payload_hash(self, trail):
        _, entries = trail
        assert all(len(e.content_hash) == 64 for e in entries)
        assert entries[1].previous_hash == entries[0].payload_hash

    @pytest.mark.parametrize("column, value", [
        ("actor", "someone-else"),
        ("action", "SESSION_COMPLETED"),
        ("log_metadata", {"forged": True}),
        ("content_hash", "0" * 64),
    ])
    def test_edited_entry_breaks_chain(self, trail, db, column, value):
        session_id, entries = trail
        target = entries[-1]
        setattr(target, column, value)
        db.commit()

        result = AuditService.verify_chain(db, session_id)

        assert result["valid"] is False
        assert result["broken_at"] == target.id

    def test_edited_timestamp_breaks_chain(self, trail, db):
        session_id, entries = trail
        target = db.query(AuditLog).filter(AuditLog.id == entries[0].id).one()
        target.timestamp = target.timestamp.replace(year=2001)
        db.commit()

        assert AuditService.verify_chain(db, session_id)["broken_at"] == target.id
