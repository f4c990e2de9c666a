"""
Session Model — One onboarding-progress record per villa.
Maps to the 'onboarding_sessions' table.
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Boolean
from sqlalchemy.orm import relationship

from villa_onboarding.database import Base


class OnboardingSession(Base):
    __tablename__ = "onboarding_sessions"

    id = Column(String(36), primary_key=True, index=True)
    villa_id = Column(String(36), unique=True, nullable=False, index=True)

    user_id = Column(String(64), nullable=False, default="system")
    user_email = Column(String(256))

    status = Column(String(24), default="NOT_STARTED")
    # Statuses: NOT_STARTED → IN_PROGRESS → (PENDING_REVIEW) → COMPLETED

    current_step = Column(Integer, default=1, nullable=False)
    total_steps = Column(Integer, default=10, nullable=False)

    # Cached aggregates, always recomputable from stage/field rows
    steps_completed = Column(Integer, default=0, nullable=False)
    steps_skipped = Column(Integer, default=0, nullable=False)
    fields_completed = Column(Integer, default=0, nullable=False)
    fields_skipped = Column(Integer, default=0, nullable=False)
    total_fields = Column(Integer, default=0, nullable=False)

    is_completed = Column(Boolean, default=False, nullable=False)
    submitted_for_review = Column(Boolean, default=False, nullable=False)
    submitted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    activated_at = Column(DateTime, nullable=True)
    total_time_spent = Column(Integer, nullable=True)   # minutes

    session_started_at = Column(DateTime, default=datetime.utcnow)
    last_activity_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stages = relationship(
        "StageProgress",
        back_populates="session",
        order_by="StageProgress.stage_number",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    skip_records = relationship(
        "SkipRecord",
        back_populates="session",
        order_by="SkipRecord.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
