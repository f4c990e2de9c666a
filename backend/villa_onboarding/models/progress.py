"""
Stage & Field Progress Models — Per-stage and per-field tracking rows.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship

from villa_onboarding.database import Base


class StageProgress(Base):
    __tablename__ = "onboarding_stage_progress"
    __table_args__ = (
        UniqueConstraint("session_id", "stage_number", name="uq_stage_progress_session_stage"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    session_id = Column(
        String(36), ForeignKey("onboarding_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    stage_number = Column(Integer, nullable=False)
    stage_name = Column(String(64), nullable=False)

    status = Column(String(16), default="NOT_STARTED", nullable=False)
    status_before_skip = Column(String(16))

    is_valid = Column(Boolean, default=False, nullable=False)
    validation_errors = Column(JSON, default=dict)     # {field_name: message}
    validation_warnings = Column(JSON, default=dict)

    estimated_duration = Column(Integer)               # minutes

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    skipped_at = Column(DateTime, nullable=True)
    last_updated_at = Column(DateTime, default=datetime.utcnow)

    session = relationship("OnboardingSession", back_populates="stages")
    fields = relationship(
        "FieldProgress",
        back_populates="stage",
        order_by="FieldProgress.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class FieldProgress(Base):
    __tablename__ = "onboarding_field_progress"
    __table_args__ = (
        UniqueConstraint("stage_progress_id", "field_name", name="uq_field_progress_stage_field"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    stage_progress_id = Column(
        Integer, ForeignKey("onboarding_stage_progress.id", ondelete="CASCADE"), nullable=False, index=True
    )

    field_name = Column(String(64), nullable=False)
    field_label = Column(String(128))
    field_type = Column(String(16), default="text")

    value = Column(JSON, nullable=True)                # opaque typed payload
    status = Column(String(16), default="NOT_STARTED", nullable=False)
    status_before_skip = Column(String(16))

    is_skipped = Column(Boolean, default=False, nullable=False)
    skip_reason = Column(String(512))
    is_required = Column(Boolean, default=False, nullable=False)
    is_valid = Column(Boolean, default=False, nullable=False)
    validation_message = Column(String(512))

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    skipped_at = Column(DateTime, nullable=True)
    last_modified_at = Column(DateTime, nullable=True)  # client clock of the last applied write

    stage = relationship("StageProgress", back_populates="fields")
