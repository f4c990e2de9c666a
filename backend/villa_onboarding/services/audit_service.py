"""
Audit Service — Manages the immutable, hash-chained onboarding audit trail.
"""
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from villa_onboarding.models.audit import AuditLog
from villa_onboarding.utils.hashing import generate_chain_hash, generate_hash


def _chained_fields(entry: AuditLog) -> Dict:
    return {
        "action": entry.action,
        "actor": entry.actor,
        "content_hash": entry.content_hash,
        "metadata": entry.log_metadata or {},
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
    }


class AuditService:
    """Creates tamper-evident audit log entries with hash chaining."""

    @staticmethod
    def log(
        db: Session,
        session_id: str,
        action: str,
        payload: Optional[Dict] = None,
        actor: Optional[str] = None,
        metadata: Optional[Dict] = None,
    ) -> AuditLog:
        """Add an audit log entry with hash chaining.

        The entry joins the caller's transaction: it is flushed, not committed,
        so it lands atomically with the progress change it describes.

        Args:
            db: Database session.
            session_id: Onboarding session this action belongs to.
            action: Action identifier (e.g. STAGE_SUBMITTED, FIELD_SKIPPED).
            payload: Data payload to hash.
            actor: User id that triggered the action.
            metadata: Additional metadata to store.

        Returns:
            The created AuditLog entry.
        """
        # Get the hash of the last entry for this session (chain linking)
        last_entry = (
            db.query(AuditLog)
            .filter(AuditLog.session_id == session_id)
            .order_by(AuditLog.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""

        entry = AuditLog(
            session_id=session_id,
            action=action,
            actor=actor,
            content_hash=generate_hash(payload or {}),
            previous_hash=previous_hash,
            log_metadata=metadata or {},
            timestamp=datetime.utcnow(),
        )
        entry.payload_hash = generate_chain_hash(_chained_fields(entry), previous_hash)

        db.add(entry)
        db.flush()

        return entry

    @staticmethod
    def get_trail(db: Session, session_id: str) -> list[AuditLog]:
        """Get the full audit trail for a session, ordered chronologically."""
        return (
            db.query(AuditLog)
            .filter(AuditLog.session_id == session_id)
            .order_by(AuditLog.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, session_id: str) -> dict:
        """Verify the integrity of the audit chain for a session.

        Each entry must link to the one before it and its chain hash must match
        its own action, actor, payload hash, metadata and timestamp.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = AuditService.get_trail(db, session_id)

        if not entries:
            return {"valid": True, "total_entries": 0, "broken_at": None}

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].payload_hash if i > 0 else ""
            expected_hash = generate_chain_hash(_chained_fields(entry), entry.previous_hash or "")
            if entry.previous_hash != expected_prev or entry.payload_hash != expected_hash:
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
