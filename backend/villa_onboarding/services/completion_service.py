"""
Completion Service — Weighted progress score and session completion.

Scoring is a pure function of (status, weight, field counts) per stage so it
can be tested without a database. The evaluator applies it to persisted rows,
decides the session status and fires activation exactly once.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from villa_onboarding.catalog import get_stage
from villa_onboarding.config import Settings, get_settings
from villa_onboarding.models.enums import ProgressStatus, SessionStatus
from villa_onboarding.models.progress import StageProgress
from villa_onboarding.models.session import OnboardingSession
from villa_onboarding.services.activation_service import EntityActivator
from villa_onboarding.services.audit_service import AuditService
from villa_onboarding.services.notification_service import Notifier

logger = logging.getLogger(__name__)


# ─── Pure scoring ────────────────────────────────────────────────────

@dataclass(frozen=True)
class StageScoreInput:
    status: str
    weight: float
    fields_completed: int = 0
    fields_total: int = 0


def stage_contribution(
    status: str,
    weight: float,
    fields_completed: int = 0,
    fields_total: int = 0,
    in_progress_factor: float = 0.7,
    skip_credit: float = 0.5,
) -> float:
    """Score contributed by one stage.

    COMPLETED earns the full weight, SKIPPED earns `skip_credit` of it,
    IN_PROGRESS earns the completed-field fraction dampened by
    `in_progress_factor`, and NOT_STARTED earns nothing.
    """
    if status == ProgressStatus.COMPLETED:
        return float(weight)
    if status == ProgressStatus.SKIPPED:
        return weight * skip_credit
    if status == ProgressStatus.IN_PROGRESS and fields_total > 0:
        return weight * (fields_completed / fields_total) * in_progress_factor
    return 0.0


def compute_score(
    stages: Iterable[StageScoreInput],
    in_progress_factor: float = 0.7,
    skip_credit: float = 0.5,
) -> float:
    """Sum of stage contributions, clamped to [0, 100]."""
    total = sum(
        stage_contribution(
            s.status, s.weight, s.fields_completed, s.fields_total,
            in_progress_factor=in_progress_factor,
            skip_credit=skip_credit,
        )
        for s in stages
    )
    return max(0.0, min(100.0, total))


def score_inputs(stages: Iterable[StageProgress]) -> List[StageScoreInput]:
    """Build scoring inputs from persisted stage rows (weights come from the catalog)."""
    return [
        StageScoreInput(
            status=stage.status,
            weight=get_stage(stage.stage_number).weight,
            fields_completed=sum(1 for f in stage.fields if f.status == ProgressStatus.COMPLETED),
            fields_total=len(stage.fields),
        )
        for stage in stages
    ]


def required_stages_satisfied(stages: Iterable[StageProgress]) -> bool:
    """True when every required stage is COMPLETED or SKIPPED."""
    done = (ProgressStatus.COMPLETED.value, ProgressStatus.SKIPPED.value)
    by_number = {s.stage_number: s for s in stages}
    for number, stage in by_number.items():
        if get_stage(number).required and stage.status not in done:
            return False
    return bool(by_number)


# ─── Evaluator ───────────────────────────────────────────────────────

@dataclass
class CompletionOutcome:
    score: float
    status: str
    just_completed: bool = False
    activated: bool = False


class CompletionEvaluator:
    """Recomputes the aggregate and drives the session to COMPLETED."""

    def __init__(
        self,
        db,
        activator: Optional[EntityActivator] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.activator = activator
        self.notifier = notifier
        self.settings = settings or get_settings()

    def score(self, stages: Iterable[StageProgress]) -> float:
        return compute_score(
            score_inputs(stages),
            in_progress_factor=self.settings.IN_PROGRESS_DAMPENING,
            skip_credit=self.settings.SKIP_CREDIT,
        )

    def derive_status(self, session: OnboardingSession, stages: List[StageProgress]) -> str:
        if session.is_completed:
            return SessionStatus.COMPLETED.value
        if session.submitted_for_review:
            return SessionStatus.PENDING_REVIEW.value
        if any(s.status != ProgressStatus.NOT_STARTED for s in stages):
            return SessionStatus.IN_PROGRESS.value
        if any(f.status != ProgressStatus.NOT_STARTED for s in stages for f in s.fields):
            return SessionStatus.IN_PROGRESS.value
        return SessionStatus.NOT_STARTED.value

    def evaluate(self, session: OnboardingSession, stages: List[StageProgress], actor: str = "system") -> CompletionOutcome:
        """Apply the completion rule to a locked session.

        Must be called while the caller holds the session's lock. The caller
        commits afterwards.
        """
        score = self.score(stages)
        just_completed = False

        if not session.is_completed and required_stages_satisfied(stages):
            now = datetime.utcnow()
            session.is_completed = True
            session.completed_at = now
            started = session.session_started_at or session.created_at or now
            session.total_time_spent = int((now - started).total_seconds() // 60)
            just_completed = True
            AuditService.log(
                self.db, session.id, "SESSION_COMPLETED",
                payload={"villa_id": session.villa_id, "score": round(score, 2)},
                actor=actor,
            )
            logger.info("All required steps done for villa %s, onboarding completed", session.villa_id)

        session.status = self.derive_status(session, stages)

        activated = False
        # Status is checked first so repeated evaluations never activate twice
        if session.status == SessionStatus.COMPLETED and session.activated_at is None:
            activated = self._activate(session)

        if just_completed and self.notifier is not None:
            self._notify("onboarding_completed", {
                "villa_id": session.villa_id,
                "session_id": session.id,
                "progress_percentage": round(score, 1),
                "completed_at": session.completed_at.isoformat(),
            })

        return CompletionOutcome(score=score, status=session.status, just_completed=just_completed, activated=activated)

    def _activate(self, session: OnboardingSession) -> bool:
        if self.activator is None:
            return False
        try:
            self.activator.activate(session.villa_id)
        except Exception:
            # activated_at stays empty, so the next evaluation retries
            logger.exception("Activation failed for villa %s; will retry on next progress update", session.villa_id)
            return False
        session.activated_at = datetime.utcnow()
        return True

    def _notify(self, event: str, payload: dict):
        try:
            self.notifier.notify(event, payload)
        except Exception:
            logger.exception("Notification %s failed for villa %s", event, payload.get("villa_id"))
