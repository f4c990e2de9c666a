"""
Progress Store — Repository over the onboarding progress tables.

Wraps one SQLAlchemy Session; a store is created per request or per call and
passed into the engine, never shared process-wide. SQLAlchemy failures are
translated into PersistenceError at the commit boundary.
"""
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from villa_onboarding.catalog import STAGES, TOTAL_STEPS, total_fields
from villa_onboarding.errors import NotFound, PersistenceError
from villa_onboarding.models.enums import ProgressStatus, SkippedItemType
from villa_onboarding.models.progress import FieldProgress, StageProgress
from villa_onboarding.models.session import OnboardingSession
from villa_onboarding.models.skip import SkipRecord

logger = logging.getLogger(__name__)


class ProgressStore:
    """CRUD for sessions, stage/field progress and skip records."""

    def __init__(self, db: Session):
        self.db = db

    # ─── Sessions ────────────────────────────────────────────────────

    def find_session(self, villa_id: str, for_update: bool = False) -> Optional[OnboardingSession]:
        query = self.db.query(OnboardingSession).filter(OnboardingSession.villa_id == villa_id)
        if for_update:
            # Row lock scoped to this villa's session; ignored by SQLite.
            # Reload the row so counters read under the lock are current.
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_session(self, villa_id: str, for_update: bool = False) -> OnboardingSession:
        session = self.find_session(villa_id, for_update=for_update)
        if session is None:
            raise NotFound(f"No onboarding session found for villa: {villa_id}")
        return session

    def create_session(self, villa_id: str, user_id: str, user_email: Optional[str] = None) -> OnboardingSession:
        now = datetime.utcnow()
        session = OnboardingSession(
            id=str(uuid.uuid4()),
            villa_id=villa_id,
            user_id=user_id,
            user_email=user_email,
            status="NOT_STARTED",
            current_step=1,
            total_steps=TOTAL_STEPS,
            total_fields=total_fields(),
            session_started_at=now,
            last_activity_at=now,
        )
        self.db.add(session)
        self.db.flush()
        return session

    def list_sessions(self, status: Optional[str] = None, limit: int = 50, offset: int = 0):
        query = self.db.query(OnboardingSession).order_by(OnboardingSession.created_at.desc())
        if status:
            query = query.filter(OnboardingSession.status == status)
        return query.count(), query.offset(offset).limit(limit).all()

    # ─── Skeleton ────────────────────────────────────────────────────

    def ensure_skeleton(self, session: OnboardingSession) -> int:
        """Create any missing stage/field rows for the catalog. Returns rows created."""
        created = 0
        existing: Dict[int, StageProgress] = {s.stage_number: s for s in self.list_stages(session.id)}

        for stage_def in STAGES:
            stage = existing.get(stage_def.number)
            if stage is None:
                stage = StageProgress(
                    session_id=session.id,
                    stage_number=stage_def.number,
                    stage_name=stage_def.name,
                    status=ProgressStatus.NOT_STARTED.value,
                    estimated_duration=stage_def.estimated_minutes,
                    validation_errors={},
                    validation_warnings={},
                    last_updated_at=datetime.utcnow(),
                )
                self.db.add(stage)
                self.db.flush()
                created += 1

            present = {f.field_name for f in stage.fields}
            for field_def in stage_def.fields:
                if field_def.name in present:
                    continue
                stage.fields.append(FieldProgress(
                    field_name=field_def.name,
                    field_label=field_def.label,
                    field_type=field_def.field_type,
                    status=ProgressStatus.NOT_STARTED.value,
                    is_required=field_def.required,
                    is_valid=not field_def.required,
                ))
                created += 1

        if created:
            self.db.flush()
        return created

    # ─── Stages & fields ─────────────────────────────────────────────

    def list_stages(self, session_id: str) -> List[StageProgress]:
        return (
            self.db.query(StageProgress)
            .options(selectinload(StageProgress.fields))
            .filter(StageProgress.session_id == session_id)
            .order_by(StageProgress.stage_number.asc())
            .all()
        )

    def get_stage(self, session_id: str, stage_number: int) -> StageProgress:
        stage = (
            self.db.query(StageProgress)
            .filter(StageProgress.session_id == session_id, StageProgress.stage_number == stage_number)
            .first()
        )
        if stage is None:
            raise NotFound(f"Step {stage_number} not found for session {session_id}")
        return stage

    def get_field(self, stage: StageProgress, field_name: str) -> FieldProgress:
        for field_row in stage.fields:
            if field_row.field_name == field_name:
                return field_row
        raise NotFound(f"Field {field_name} not found for step {stage.stage_number}")

    # ─── Skip records ────────────────────────────────────────────────

    def add_skip_record(
        self,
        session_id: str,
        item_type: SkippedItemType,
        stage_number: int,
        field_name: Optional[str],
        reason: Optional[str],
        category: str,
        actor: str,
    ) -> SkipRecord:
        record = SkipRecord(
            session_id=session_id,
            item_type=item_type.value,
            stage_number=stage_number,
            field_name=field_name,
            skip_reason=reason,
            skip_category=category,
            skipped_by=actor,
            skipped_at=datetime.utcnow(),
            is_active=True,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def active_skip_records(
        self,
        session_id: str,
        item_type: Optional[SkippedItemType] = None,
        stage_number: Optional[int] = None,
        field_name: Optional[str] = None,
    ) -> List[SkipRecord]:
        query = self.db.query(SkipRecord).filter(
            SkipRecord.session_id == session_id,
            SkipRecord.is_active.is_(True),
        )
        if item_type is not None:
            query = query.filter(SkipRecord.item_type == item_type.value)
        if stage_number is not None:
            query = query.filter(SkipRecord.stage_number == stage_number)
        if field_name is not None:
            query = query.filter(SkipRecord.field_name == field_name)
        return query.order_by(SkipRecord.skipped_at.desc(), SkipRecord.id.desc()).all()

    def close_skip_records(self, records: List[SkipRecord], actor: str) -> int:
        """Mark skip records inactive. History rows are kept."""
        now = datetime.utcnow()
        for record in records:
            record.is_active = False
            record.unskipped_at = now
            record.unskipped_by = actor
        self.db.flush()
        return len(records)

    # ─── Transactions ────────────────────────────────────────────────

    def commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Commit failed for onboarding progress: %s", exc)
            raise PersistenceError(f"Could not persist onboarding progress: {exc}") from exc

    def rollback(self):
        self.db.rollback()
