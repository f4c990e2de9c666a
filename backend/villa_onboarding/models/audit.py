"""
Audit Log Model — Immutable, tamper-evident audit trail.
Every engine action is SHA-256 hashed and timestamped.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey

from villa_onboarding.database import Base


class AuditLog(Base):
    __tablename__ = "onboarding_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    session_id = Column(
        String(36), ForeignKey("onboarding_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    action = Column(String(50), nullable=False)
    # Actions: SESSION_INITIALIZED, STAGE_SUBMITTED, STAGE_REJECTED,
    #          FIELD_SKIPPED, FIELD_UNSKIPPED, STAGE_SKIPPED, STAGE_UNSKIPPED,
    #          STALE_FIELD_WRITE, SUBMITTED_FOR_REVIEW, SESSION_COMPLETED,
    #          VILLA_ACTIVATED

    actor = Column(String(64))
    content_hash = Column(String(64))       # SHA-256 of the action payload
    payload_hash = Column(String(64))       # Chain hash over the whole entry
    previous_hash = Column(String(64))      # Hash chain for tamper detection

    log_metadata = Column(JSON, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow)
