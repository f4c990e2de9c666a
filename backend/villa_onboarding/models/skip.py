"""
Skip Record Model — Append-only history of skip/unskip decisions.
Rows are never deleted; unskip flips is_active and stamps the closing fields.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from villa_onboarding.database import Base


class SkipRecord(Base):
    __tablename__ = "onboarding_skip_records"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    session_id = Column(
        String(36), ForeignKey("onboarding_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    item_type = Column(String(8), nullable=False)       # STEP | FIELD
    stage_number = Column(Integer, nullable=False)
    field_name = Column(String(64), nullable=True)      # NULL for STEP records

    skip_reason = Column(String(512))
    skip_category = Column(String(24), nullable=False, default="OTHER")
    skipped_by = Column(String(64), nullable=False)
    skipped_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    unskipped_at = Column(DateTime, nullable=True)
    unskipped_by = Column(String(64), nullable=True)

    session = relationship("OnboardingSession", back_populates="skip_records")
