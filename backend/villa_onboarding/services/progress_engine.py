"""
Progress Engine — Orchestrates villa onboarding progress.

Handles: initialization of the stage/field skeleton, field and step updates,
skip/unskip of fields and steps, review submission, and the progress read
model. Every mutation runs under the villa's session lock, recomputes the
aggregates from the stage/field rows and lets the completion evaluator decide
the session status before committing.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from villa_onboarding.catalog import StageDefinition, get_field, get_stage
from villa_onboarding.config import Settings, get_settings
from villa_onboarding.errors import InvalidInput, PersistenceError, ValidationFailed
from villa_onboarding.models.enums import ProgressStatus, SkipCategory, SkippedItemType
from villa_onboarding.models.progress import FieldProgress, StageProgress
from villa_onboarding.models.session import OnboardingSession
from villa_onboarding.schemas.schemas import (
    FieldDetail, ProgressResponse, ProgressSummary, SkipDetail, StageDetail,
    StageUpdateResponse, ValidationResponse,
)
from villa_onboarding.schemas.stage_payloads import parse_stage_payload
from villa_onboarding.services.activation_service import EntityActivator
from villa_onboarding.services.audit_service import AuditService
from villa_onboarding.services.completion_service import CompletionEvaluator, CompletionOutcome
from villa_onboarding.services.notification_service import Notifier
from villa_onboarding.services.progress_store import ProgressStore
from villa_onboarding.services.session_locks import SessionLockRegistry, session_locks
from villa_onboarding.services.validation_service import ValidationResult, ValidationService
from villa_onboarding.utils.validators import has_value

logger = logging.getLogger(__name__)

NOT_STARTED = ProgressStatus.NOT_STARTED.value
IN_PROGRESS = ProgressStatus.IN_PROGRESS.value
COMPLETED = ProgressStatus.COMPLETED.value
SKIPPED = ProgressStatus.SKIPPED.value


# ─── Row-level transitions ───────────────────────────────────────────

def apply_field_value(field_row: FieldProgress, value: Any, now: datetime, modified_at: Optional[datetime] = None):
    """Write a value into a field row and move its status accordingly.

    A skipped field keeps its SKIPPED status (the value is still stored) until
    it is explicitly unskipped. An empty write only moves a field that was
    touched before; an untouched field stays NOT_STARTED.
    """
    filled = has_value(value)
    field_row.value = value
    field_row.last_modified_at = modified_at or now

    if field_row.is_skipped:
        return

    touched = field_row.started_at is not None or field_row.status != NOT_STARTED
    if filled:
        if field_row.status != COMPLETED:
            field_row.completed_at = now
        field_row.status = COMPLETED
        field_row.started_at = field_row.started_at or now
    elif touched:
        field_row.status = IN_PROGRESS
        field_row.completed_at = None
        field_row.started_at = field_row.started_at or now

    field_row.is_valid = filled or not field_row.is_required


def _field_satisfied(field_row: FieldProgress) -> bool:
    return field_row.is_skipped or field_row.status == COMPLETED


def recompute_stage_status(stage_row: StageProgress, now: datetime):
    """Derive a stage's status from its fields.

    SKIPPED stages stay skipped until unskipped. A COMPLETED stage only drops
    back to IN_PROGRESS when one of its required fields is no longer filled.
    Reaching COMPLETED needs an explicit submission, never field writes alone.
    """
    if stage_row.status == SKIPPED:
        return

    if stage_row.status == COMPLETED:
        required = [f for f in stage_row.fields if f.is_required]
        if all(_field_satisfied(f) for f in required):
            return
        logger.info("Step %s reopened: a required field was cleared", stage_row.stage_number)
        stage_row.status = IN_PROGRESS
        stage_row.completed_at = None
        stage_row.last_updated_at = now
        return

    touched = any(f.status != NOT_STARTED for f in stage_row.fields)
    new_status = IN_PROGRESS if touched else NOT_STARTED
    if new_status != stage_row.status:
        stage_row.status = new_status
        stage_row.last_updated_at = now
    if touched and stage_row.started_at is None:
        stage_row.started_at = now


def _is_transient(exc: Exception) -> bool:
    return isinstance(exc, OperationalError) or isinstance(exc.__cause__, OperationalError)


class ProgressEngine:
    """Stage/field progress operations for one request's store."""

    def __init__(
        self,
        store: ProgressStore,
        activator: Optional[EntityActivator] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
        locks: Optional[SessionLockRegistry] = None,
    ):
        self.store = store
        self.db = store.db
        self.settings = settings or get_settings()
        self.locks = locks or session_locks
        self.notifier = notifier
        self.evaluator = CompletionEvaluator(self.db, activator, notifier, self.settings)

    @contextmanager
    def session_lock(self, villa_id: str):
        """Serialize aggregation for one villa."""
        with self.locks.hold(villa_id, self.settings.PERSISTENCE_TIMEOUT_SECONDS):
            yield

    # ─── Initialization ──────────────────────────────────────────────

    def initialize(self, villa_id: str, user_id: str = "system", user_email: Optional[str] = None) -> ProgressResponse:
        """Create the session and any missing stage/field rows. Safe to call repeatedly."""
        with self.session_lock(villa_id):
            session = self.store.find_session(villa_id, for_update=True)
            created = False
            if session is None:
                try:
                    session = self.store.create_session(villa_id, user_id, user_email)
                    created = True
                except IntegrityError:
                    # Another worker created it first
                    self.store.rollback()
                    session = self.store.get_session(villa_id, for_update=True)

            rows_created = self.store.ensure_skeleton(session)

            if created:
                AuditService.log(
                    self.db, session.id, "SESSION_INITIALIZED",
                    payload={"villa_id": villa_id, "user_id": user_id},
                    actor=user_id,
                )
            if created or rows_created:
                self.refresh_aggregates(session, user_id)
                self.store.commit()
                logger.info(
                    "Villa onboarding progress initialized for villa %s (%d rows created)",
                    villa_id, rows_created,
                )

        return self.get_progress(villa_id)

    # ─── Field & step updates ────────────────────────────────────────

    def update_field(
        self,
        villa_id: str,
        stage_number: int,
        field_name: str,
        value: Any,
        actor: str = "system",
        modified_at: Optional[datetime] = None,
    ) -> ProgressSummary:
        """Set one field's value and recompute the stage and session aggregates."""
        get_field(stage_number, field_name)

        with self.session_lock(villa_id):
            session = self.store.get_session(villa_id, for_update=True)
            stage_row = self.store.get_stage(session.id, stage_number)
            field_row = self.store.get_field(stage_row, field_name)

            now = datetime.utcnow()
            apply_field_value(field_row, value, now, as_naive_utc(modified_at))
            recompute_stage_status(stage_row, now)
            self.refresh_aggregates(session, actor)
            self.store.commit()

            logger.debug("Field %s updated for villa %s, step %s", field_name, villa_id, stage_number)
            return self._summary(session, self.store.list_stages(session.id))

    def update_stage(
        self,
        villa_id: str,
        stage_number: int,
        payload: Optional[Dict[str, Any]],
        completed: bool = False,
        actor: str = "system",
        modified_at: Optional[datetime] = None,
    ) -> StageUpdateResponse:
        """Apply a step payload and optionally mark the step complete.

        modified_at is the client edit time; server time is used when absent.

        Raises:
            InvalidStage: unknown step number.
            ValidationFailed: completed=True and the step data has errors. Field
                values are still saved.
            PersistenceError: the store failed after the bounded retries.
        """
        stage_def = get_stage(stage_number)
        values = parse_stage_payload(stage_number, payload).declared_values()

        logger.info(
            "updateStep called for villa %s, step %s (fields=%s, completed=%s, actor=%s)",
            villa_id, stage_number, sorted(values), completed, actor,
        )

        attempts = max(1, self.settings.SUBMIT_RETRY_ATTEMPTS + 1)
        for attempt in range(1, attempts + 1):
            try:
                return self._update_stage_once(villa_id, stage_def, values, completed, actor, as_naive_utc(modified_at))
            except PersistenceError as exc:
                self.store.rollback()
                if attempt >= attempts or not _is_transient(exc):
                    raise
                logger.warning("Transient store error on step %s for villa %s (attempt %d/%d): %s",
                               stage_number, villa_id, attempt, attempts, exc)
            except OperationalError as exc:
                self.store.rollback()
                if attempt >= attempts:
                    raise PersistenceError(f"Could not save step {stage_number}: {exc}") from exc
                logger.warning("Transient store error on step %s for villa %s (attempt %d/%d): %s",
                               stage_number, villa_id, attempt, attempts, exc)
            except SQLAlchemyError as exc:
                self.store.rollback()
                raise PersistenceError(f"Could not save step {stage_number}: {exc}") from exc

    def _update_stage_once(
        self,
        villa_id: str,
        stage_def: StageDefinition,
        values: Dict[str, Any],
        completed: bool,
        actor: str,
        modified_at: Optional[datetime] = None,
    ) -> StageUpdateResponse:
        with self.session_lock(villa_id):
            session = self.store.get_session(villa_id, for_update=True)
            stage_row = self.store.get_stage(session.id, stage_def.number)

            now = datetime.utcnow()
            for name, value in values.items():
                apply_field_value(self.store.get_field(stage_row, name), value, now, modified_at)

            result = self.apply_advisory_validation(stage_row)

            if completed and not result.is_valid:
                recompute_stage_status(stage_row, now)
                AuditService.log(
                    self.db, session.id, "STAGE_REJECTED",
                    payload={"step": stage_def.number, "errors": result.errors},
                    actor=actor,
                )
                self.refresh_aggregates(session, actor)
                self.store.commit()
                logger.info("Step %s for villa %s failed validation: %s", stage_def.number, villa_id, result.errors)
                raise ValidationFailed(stage_def.number, result.errors, result.warnings)

            if completed:
                if stage_row.status == SKIPPED:
                    self._close_stage_skip(session, stage_row, actor)
                stage_row.status = COMPLETED
                stage_row.started_at = stage_row.started_at or now
                stage_row.completed_at = now
                stage_row.last_updated_at = now
                session.current_step = min(stage_def.number + 1, session.total_steps)
                AuditService.log(
                    self.db, session.id, "STAGE_SUBMITTED",
                    payload={"step": stage_def.number, "fields": sorted(values)},
                    actor=actor,
                )
                logger.info("Auto-advancing villa %s to step %s", villa_id, session.current_step)
            else:
                recompute_stage_status(stage_row, now)

            self.refresh_aggregates(session, actor)
            self.store.commit()

            stages = self.store.list_stages(session.id)
            return StageUpdateResponse(
                step=stage_def.number,
                status=stage_row.status,
                validation=ValidationResponse(step=stage_def.number, **result.to_dict()),
                summary=self._summary(session, stages),
            )

    # ─── Skip / unskip ───────────────────────────────────────────────

    def skip_field(
        self,
        villa_id: str,
        stage_number: int,
        field_name: str,
        reason: Optional[str] = None,
        category: str = SkipCategory.OTHER.value,
        actor: str = "system",
    ) -> ProgressSummary:
        get_field(stage_number, field_name)
        category = _skip_category(category)

        with self.session_lock(villa_id):
            session = self.store.get_session(villa_id, for_update=True)
            stage_row = self.store.get_stage(session.id, stage_number)
            field_row = self.store.get_field(stage_row, field_name)

            if field_row.is_skipped:
                logger.debug("Field %s already skipped for villa %s", field_name, villa_id)
                return self._summary(session, self.store.list_stages(session.id))

            now = datetime.utcnow()
            field_row.status_before_skip = field_row.status
            field_row.is_skipped = True
            field_row.skip_reason = reason
            field_row.status = SKIPPED
            field_row.skipped_at = now
            field_row.is_valid = True
            field_row.validation_message = None

            self.store.add_skip_record(
                session.id, SkippedItemType.FIELD, stage_number, field_name, reason, category, actor,
            )
            AuditService.log(
                self.db, session.id, "FIELD_SKIPPED",
                payload={"step": stage_number, "field": field_name, "reason": reason, "category": category},
                actor=actor,
            )

            recompute_stage_status(stage_row, now)
            self.refresh_aggregates(session, actor)
            active_skips = len(self.store.active_skip_records(session.id))
            self.store.commit()
            logger.info("Field %s skipped for villa %s, step %s", field_name, villa_id, stage_number)

            self._check_skip_threshold(session, active_skips)
            return self._summary(session, self.store.list_stages(session.id))

    def unskip_field(self, villa_id: str, stage_number: int, field_name: str, actor: str = "system") -> ProgressSummary:
        get_field(stage_number, field_name)

        with self.session_lock(villa_id):
            session = self.store.get_session(villa_id, for_update=True)
            stage_row = self.store.get_stage(session.id, stage_number)
            field_row = self.store.get_field(stage_row, field_name)

            if not field_row.is_skipped:
                return self._summary(session, self.store.list_stages(session.id))

            now = datetime.utcnow()
            restored = field_row.status_before_skip or NOT_STARTED
            if has_value(field_row.value):
                restored = COMPLETED
            elif restored == COMPLETED:
                restored = IN_PROGRESS

            field_row.status = restored
            field_row.is_skipped = False
            field_row.skip_reason = None
            field_row.skipped_at = None
            field_row.status_before_skip = None
            field_row.is_valid = has_value(field_row.value) or not field_row.is_required
            if restored == COMPLETED and field_row.completed_at is None:
                field_row.completed_at = now

            records = self.store.active_skip_records(
                session.id, SkippedItemType.FIELD, stage_number, field_name,
            )
            self.store.close_skip_records(records, actor)
            AuditService.log(
                self.db, session.id, "FIELD_UNSKIPPED",
                payload={"step": stage_number, "field": field_name},
                actor=actor,
            )

            recompute_stage_status(stage_row, now)
            self.refresh_aggregates(session, actor)
            self.store.commit()
            logger.info("Field %s unskipped for villa %s, step %s", field_name, villa_id, stage_number)
            return self._summary(session, self.store.list_stages(session.id))

    def skip_stage(
        self,
        villa_id: str,
        stage_number: int,
        reason: Optional[str] = None,
        category: str = SkipCategory.OTHER.value,
        actor: str = "system",
    ) -> ProgressSummary:
        get_stage(stage_number)
        category = _skip_category(category)

        with self.session_lock(villa_id):
            session = self.store.get_session(villa_id, for_update=True)
            stage_row = self.store.get_stage(session.id, stage_number)

            if stage_row.status == SKIPPED:
                return self._summary(session, self.store.list_stages(session.id))

            now = datetime.utcnow()
            stage_row.status_before_skip = stage_row.status
            stage_row.status = SKIPPED
            stage_row.skipped_at = now
            stage_row.last_updated_at = now
            if session.current_step == stage_number:
                session.current_step = min(stage_number + 1, session.total_steps)

            self.store.add_skip_record(
                session.id, SkippedItemType.STEP, stage_number, None, reason, category, actor,
            )
            AuditService.log(
                self.db, session.id, "STAGE_SKIPPED",
                payload={"step": stage_number, "reason": reason, "category": category},
                actor=actor,
            )

            self.refresh_aggregates(session, actor)
            active_skips = len(self.store.active_skip_records(session.id))
            self.store.commit()
            logger.info("Step %s skipped for villa %s", stage_number, villa_id)

            self._check_skip_threshold(session, active_skips)
            return self._summary(session, self.store.list_stages(session.id))

    def unskip_stage(self, villa_id: str, stage_number: int, actor: str = "system") -> ProgressSummary:
        get_stage(stage_number)

        with self.session_lock(villa_id):
            session = self.store.get_session(villa_id, for_update=True)
            stage_row = self.store.get_stage(session.id, stage_number)

            if stage_row.status != SKIPPED:
                return self._summary(session, self.store.list_stages(session.id))

            self._close_stage_skip(session, stage_row, actor)
            AuditService.log(
                self.db, session.id, "STAGE_UNSKIPPED",
                payload={"step": stage_number},
                actor=actor,
            )

            self.refresh_aggregates(session, actor)
            self.store.commit()
            logger.info("Step %s unskipped for villa %s", stage_number, villa_id)
            return self._summary(session, self.store.list_stages(session.id))

    def _close_stage_skip(self, session: OnboardingSession, stage_row: StageProgress, actor: str):
        now = datetime.utcnow()
        before = stage_row.status_before_skip
        stage_row.status = COMPLETED if before == COMPLETED else NOT_STARTED
        stage_row.skipped_at = None
        stage_row.status_before_skip = None
        stage_row.last_updated_at = now
        recompute_stage_status(stage_row, now)

        records = self.store.active_skip_records(
            session.id, SkippedItemType.STEP, stage_row.stage_number,
        )
        self.store.close_skip_records(records, actor)

    def _check_skip_threshold(self, session: OnboardingSession, active_skips: int):
        threshold = self.settings.SKIP_NOTIFY_THRESHOLD
        if self.notifier is None or threshold <= 0 or active_skips != threshold:
            return
        try:
            self.notifier.notify("skip_threshold_reached", {
                "villa_id": session.villa_id,
                "session_id": session.id,
                "active_skips": active_skips,
            })
        except Exception:
            logger.exception("Skip threshold notification failed for villa %s", session.villa_id)

    # ─── Review & validation ─────────────────────────────────────────

    def submit_for_review(self, villa_id: str, actor: str = "system") -> ProgressSummary:
        with self.session_lock(villa_id):
            session = self.store.get_session(villa_id, for_update=True)
            if not session.is_completed and not session.submitted_for_review:
                session.submitted_for_review = True
                session.submitted_at = datetime.utcnow()
                AuditService.log(
                    self.db, session.id, "SUBMITTED_FOR_REVIEW",
                    payload={"villa_id": villa_id},
                    actor=actor,
                )
                self.refresh_aggregates(session, actor)
                self.store.commit()
                logger.info("Villa %s onboarding submitted for review", villa_id)
            return self._summary(session, self.store.list_stages(session.id))

    def validate_stage(self, villa_id: str, stage_number: int) -> ValidationResponse:
        """Advisory validation of the stored step data. Nothing is written."""
        get_stage(stage_number)
        session = self.store.get_session(villa_id)
        stage_row = self.store.get_stage(session.id, stage_number)
        result = self._validate_rows(stage_row)
        return ValidationResponse(step=stage_number, **result.to_dict())

    def apply_advisory_validation(self, stage_row: StageProgress) -> ValidationResult:
        """Validate the stage's stored values and record the outcome on the rows."""
        result = self._validate_rows(stage_row)
        stage_row.is_valid = result.is_valid
        stage_row.validation_errors = dict(result.errors)
        stage_row.validation_warnings = dict(result.warnings)
        for field_row in stage_row.fields:
            message = result.errors.get(field_row.field_name)
            field_row.validation_message = message
            if message:
                field_row.is_valid = False
            else:
                field_row.is_valid = field_row.is_skipped or has_value(field_row.value) or not field_row.is_required
        return result

    @staticmethod
    def _validate_rows(stage_row: StageProgress) -> ValidationResult:
        data = {f.field_name: f.value for f in stage_row.fields}
        skipped = [f.field_name for f in stage_row.fields if f.is_skipped]
        return ValidationService.validate(stage_row.stage_number, data).without_fields(skipped)

    # ─── Aggregation ─────────────────────────────────────────────────

    def refresh_aggregates(self, session: OnboardingSession, actor: str = "system") -> CompletionOutcome:
        """Recompute the cached counters from stage/field rows and evaluate completion.

        Caller must hold the session lock and commit afterwards.
        """
        self.db.flush()
        stages = self.store.list_stages(session.id)
        counts = _count(stages)
        session.steps_completed = counts["steps_completed"]
        session.steps_skipped = counts["steps_skipped"]
        session.fields_completed = counts["fields_completed"]
        session.fields_skipped = counts["fields_skipped"]
        session.total_fields = counts["total_fields"]
        session.last_activity_at = datetime.utcnow()
        return self.evaluator.evaluate(session, stages, actor)

    # ─── Read model ──────────────────────────────────────────────────

    def get_progress(self, villa_id: str) -> ProgressResponse:
        """Full progress: summary, per-step and per-field detail, active skips."""
        session = self.store.get_session(villa_id)
        stages = self.store.list_stages(session.id)
        summary = self._summary(session, stages)
        skips = self.store.active_skip_records(session.id)

        return ProgressResponse(
            **summary.model_dump(),
            per_stage=[_stage_detail(s) for s in stages],
            active_skips=[
                SkipDetail(
                    item_type=r.item_type,
                    stage_number=r.stage_number,
                    field_name=r.field_name,
                    reason=r.skip_reason,
                    category=r.skip_category,
                    skipped_at=r.skipped_at,
                    skipped_by=r.skipped_by,
                )
                for r in skips
            ],
        )

    def get_summary(self, villa_id: str) -> ProgressSummary:
        session = self.store.get_session(villa_id)
        return self._summary(session, self.store.list_stages(session.id))

    def get_field_progress(self, villa_id: str, stage_number: int) -> List[FieldDetail]:
        """Stored field values for one step, used to restore a form after reload."""
        get_stage(stage_number)
        session = self.store.get_session(villa_id)
        stage_row = self.store.get_stage(session.id, stage_number)
        return [_field_detail(f) for f in stage_row.fields]

    def _summary(self, session: OnboardingSession, stages: List[StageProgress]) -> ProgressSummary:
        counts = _count(stages)
        remaining = sum(
            s.estimated_duration or get_stage(s.stage_number).estimated_minutes
            for s in stages
            if s.status == NOT_STARTED
        )
        return ProgressSummary(
            session_id=session.id,
            villa_id=session.villa_id,
            current_step=session.current_step,
            total_steps=session.total_steps,
            progress_percentage=round(self.evaluator.score(stages), 1),
            status=self.evaluator.derive_status(session, stages),
            estimated_time_remaining=remaining,
            last_activity_at=session.last_activity_at,
            started_at=session.session_started_at,
            completed_at=session.completed_at,
            **counts,
        )


def _skip_category(category) -> str:
    try:
        return SkipCategory(category).value
    except ValueError:
        raise InvalidInput(f"Unknown skip category: {category}") from None


def _count(stages: List[StageProgress]) -> Dict[str, int]:
    return {
        "steps_completed": sum(1 for s in stages if s.status == COMPLETED),
        "steps_skipped": sum(1 for s in stages if s.status == SKIPPED),
        "fields_completed": sum(1 for s in stages for f in s.fields if f.status == COMPLETED),
        "fields_skipped": sum(1 for s in stages for f in s.fields if f.is_skipped),
        "total_fields": sum(len(s.fields) for s in stages),
    }


def _field_detail(f: FieldProgress) -> FieldDetail:
    return FieldDetail(
        field_name=f.field_name,
        field_label=f.field_label,
        field_type=f.field_type or "text",
        status=f.status,
        is_skipped=f.is_skipped,
        skip_reason=f.skip_reason,
        value=f.value,
        is_valid=f.is_valid,
        validation_message=f.validation_message,
        is_required=f.is_required,
        last_modified_at=f.last_modified_at,
    )


def _stage_detail(s: StageProgress) -> StageDetail:
    stage_def = get_stage(s.stage_number)
    return StageDetail(
        stage_number=s.stage_number,
        stage_name=s.stage_name,
        status=s.status,
        weight=stage_def.weight,
        is_required=stage_def.required,
        fields_completed=sum(1 for f in s.fields if f.status == COMPLETED),
        fields_total=len(s.fields),
        fields_skipped=sum(1 for f in s.fields if f.is_skipped),
        is_valid=s.is_valid,
        validation_errors=s.validation_errors or {},
        validation_warnings=s.validation_warnings or {},
        started_at=s.started_at,
        completed_at=s.completed_at,
        skipped_at=s.skipped_at,
        fields=[_field_detail(f) for f in s.fields],
    )
