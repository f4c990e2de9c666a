"""
Onboarding Routes — Villa onboarding progress: steps, fields, skips, review.
Handles: initialization, step submission, background auto-save, skip/unskip,
validation preview and the progress read model.
"""
import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header
from sqlalchemy.orm import Session

from villa_onboarding.database import SessionLocal, get_db
from villa_onboarding.schemas.schemas import (
    AutoSaveAccepted, FieldDetail, FieldProgressRequest, InitializeRequest, ProgressResponse,
    ProgressSummary, SkipFieldRequest, SkipStepRequest, StageUpdateRequest, StageUpdateResponse,
    UnskipFieldRequest, UnskipStepRequest, ValidationResponse,
)
from villa_onboarding.catalog import get_field
from villa_onboarding.services.activation_service import ActivationService
from villa_onboarding.services.autosave_service import AutoSaveReconciler
from villa_onboarding.services.notification_service import NotificationService
from villa_onboarding.services.progress_engine import ProgressEngine
from villa_onboarding.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/onboarding", tags=["Onboarding"])

notification_service = NotificationService()


def get_notifier() -> NotificationService:
    return notification_service


def get_session_factory():
    """Session factory for work that outlives the request (background auto-save)."""
    return SessionLocal


def build_engine(db: Session, notifier=None) -> ProgressEngine:
    return ProgressEngine(ProgressStore(db), activator=ActivationService(db), notifier=notifier)


def get_engine(db: Session = Depends(get_db), notifier: NotificationService = Depends(get_notifier)) -> ProgressEngine:
    return build_engine(db, notifier)


def run_autosave(session_factory, notifier, villa_id: str, step: int, field_name: str, value: Any,
                 actor: str, modified_at: Optional[datetime]):
    """Background task body: one short-lived DB session per save."""
    db = session_factory()
    try:
        engine = build_engine(db, notifier)
        result = AutoSaveReconciler(engine).save_field(
            villa_id, step, field_name, value, actor=actor, modified_at=modified_at,
        )
        if not result.saved:
            logger.info("Auto-save %s for villa %s, step %s, field %s",
                        result.outcome.value, villa_id, step, field_name)
    finally:
        db.close()


@router.post("/{villa_id}/start", response_model=ProgressResponse)
def start_onboarding(
    villa_id: str,
    payload: Optional[InitializeRequest] = None,
    engine: ProgressEngine = Depends(get_engine),
):
    """Initialize (or re-initialize) onboarding progress for a villa."""
    payload = payload or InitializeRequest()
    return engine.initialize(villa_id, user_id=payload.user_id, user_email=payload.user_email)


@router.get("/{villa_id}", response_model=ProgressResponse)
def get_progress(villa_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Full progress for a villa: summary, steps, fields and active skips."""
    return engine.get_progress(villa_id)


@router.put("/{villa_id}/step", response_model=StageUpdateResponse)
def update_step(
    villa_id: str,
    payload: StageUpdateRequest,
    user_id: str = Header("system", alias="user-id"),
    engine: ProgressEngine = Depends(get_engine),
):
    """Save a step's data; with completed=true the step is validated and marked complete."""
    return engine.update_stage(
        villa_id, payload.step, payload.data,
        completed=payload.completed, actor=user_id, modified_at=payload.modified_at,
    )


@router.get("/{villa_id}/validate/{step}", response_model=ValidationResponse)
def validate_step(villa_id: str, step: int, engine: ProgressEngine = Depends(get_engine)):
    """Preview validation of the stored step data without saving anything."""
    return engine.validate_stage(villa_id, step)


@router.put("/{villa_id}/field-progress/{step}/{field_name}", response_model=AutoSaveAccepted, status_code=202)
def autosave_field(
    villa_id: str,
    step: int,
    field_name: str,
    payload: FieldProgressRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Header("system", alias="user-id"),
    session_factory=Depends(get_session_factory),
    notifier: NotificationService = Depends(get_notifier),
):
    """Queue an auto-save of one field. Unknown steps/fields are rejected up front."""
    get_field(step, field_name)
    background_tasks.add_task(
        run_autosave, session_factory, notifier, villa_id, step, field_name,
        payload.value, user_id, payload.modified_at,
    )
    return AutoSaveAccepted(villa_id=villa_id, step=step, field_name=field_name)


@router.get("/{villa_id}/field-progress/{step}", response_model=List[FieldDetail])
def get_field_progress(villa_id: str, step: int, engine: ProgressEngine = Depends(get_engine)):
    """Stored field values for a step, used to restore the form."""
    return engine.get_field_progress(villa_id, step)


@router.post("/{villa_id}/skip-field", response_model=ProgressSummary)
def skip_field(
    villa_id: str,
    payload: SkipFieldRequest,
    user_id: str = Header("system", alias="user-id"),
    engine: ProgressEngine = Depends(get_engine),
):
    return engine.skip_field(
        villa_id, payload.step, payload.field_name,
        reason=payload.reason, category=payload.category.value, actor=user_id,
    )


@router.post("/{villa_id}/unskip-field", response_model=ProgressSummary)
def unskip_field(
    villa_id: str,
    payload: UnskipFieldRequest,
    user_id: str = Header("system", alias="user-id"),
    engine: ProgressEngine = Depends(get_engine),
):
    return engine.unskip_field(villa_id, payload.step, payload.field_name, actor=user_id)


@router.post("/{villa_id}/skip-step", response_model=ProgressSummary)
def skip_step(
    villa_id: str,
    payload: SkipStepRequest,
    user_id: str = Header("system", alias="user-id"),
    engine: ProgressEngine = Depends(get_engine),
):
    return engine.skip_stage(
        villa_id, payload.step,
        reason=payload.reason, category=payload.category.value, actor=user_id,
    )


@router.post("/{villa_id}/unskip-step", response_model=ProgressSummary)
def unskip_step(
    villa_id: str,
    payload: UnskipStepRequest,
    user_id: str = Header("system", alias="user-id"),
    engine: ProgressEngine = Depends(get_engine),
):
    return engine.unskip_stage(villa_id, payload.step, actor=user_id)


@router.post("/{villa_id}/submit-review", response_model=ProgressSummary)
def submit_for_review(
    villa_id: str,
    user_id: str = Header("system", alias="user-id"),
    engine: ProgressEngine = Depends(get_engine),
):
    """Hand the onboarding to the review team before all required steps are done."""
    return engine.submit_for_review(villa_id, actor=user_id)
