"""
Auto-save Reconciler — Background, last-write-wins persistence of single fields.

Keystroke-level saves arrive out of order and must never block the user. Each
save is applied only when it is at least as new as what is stored, except that
an older save which empties the field still clears it. Store
failures are logged and reported as a soft failure instead of raised. Unknown
steps or fields are still rejected, since retrying those can never succeed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from villa_onboarding.catalog import get_field
from villa_onboarding.errors import NotFound, PersistenceError
from villa_onboarding.services.audit_service import AuditService
from villa_onboarding.services.progress_engine import (
    ProgressEngine, apply_field_value, as_naive_utc, recompute_stage_status,
)
from villa_onboarding.utils.validators import has_value

logger = logging.getLogger(__name__)


class AutoSaveOutcome(str, Enum):
    SAVED = "SAVED"
    STALE_IGNORED = "STALE_IGNORED"
    STALE_CLEARED = "STALE_CLEARED"
    SOFT_FAILED = "SOFT_FAILED"


@dataclass
class AutoSaveResult:
    outcome: AutoSaveOutcome
    villa_id: str
    stage_number: int
    field_name: str
    error: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.outcome in (AutoSaveOutcome.SAVED, AutoSaveOutcome.STALE_CLEARED)


class AutoSaveReconciler:
    """Applies auto-saved field values through the progress engine's store and locks."""

    def __init__(self, engine: ProgressEngine):
        self.engine = engine
        self.store = engine.store

    def save_field(
        self,
        villa_id: str,
        stage_number: int,
        field_name: str,
        value: Any,
        actor: str = "system",
        modified_at: Optional[datetime] = None,
    ) -> AutoSaveResult:
        """Persist one field value, newest write wins.

        Raises:
            InvalidInput: the step or field is not in the catalog.
        """
        get_field(stage_number, field_name)
        modified_at = as_naive_utc(modified_at) or datetime.utcnow()

        def result(outcome, error=None):
            return AutoSaveResult(outcome, villa_id, stage_number, field_name, error)

        try:
            if self.store.find_session(villa_id) is None:
                logger.info("Auto-save for unknown villa %s, initializing progress", villa_id)
                self.engine.initialize(villa_id, user_id=actor)

            with self.engine.session_lock(villa_id):
                session = self.store.get_session(villa_id, for_update=True)
                stage_row = self.store.get_stage(session.id, stage_number)
                field_row = self.store.get_field(stage_row, field_name)

                stored_at = field_row.last_modified_at
                stale = stored_at is not None and modified_at < stored_at
                if stale:
                    # An older write may still empty the field; it never fills it
                    clears = not has_value(value)
                    AuditService.log(
                        self.engine.db, session.id, "STALE_FIELD_WRITE",
                        payload={"step": stage_number, "field": field_name},
                        actor=actor,
                        metadata={
                            "modified_at": modified_at.isoformat(),
                            "stored_at": stored_at.isoformat(),
                            "applied": clears,
                        },
                    )
                    if not clears:
                        self.store.commit()
                        logger.debug("Stale auto-save ignored for %s (villa %s, step %s)", field_name, villa_id, stage_number)
                        return result(AutoSaveOutcome.STALE_IGNORED)

                now = datetime.utcnow()
                apply_field_value(field_row, value, now, modified_at=max(modified_at, stored_at or modified_at))
                self.engine.apply_advisory_validation(stage_row)
                recompute_stage_status(stage_row, now)
                self.engine.refresh_aggregates(session, actor)
                self.store.commit()

        except (PersistenceError, NotFound, SQLAlchemyError) as exc:
            self.store.rollback()
            logger.error("Auto-save failed for villa %s, step %s, field %s: %s",
                         villa_id, stage_number, field_name, exc)
            return result(AutoSaveOutcome.SOFT_FAILED, str(exc))

        if stale:
            logger.debug("Stale empty auto-save cleared %s for villa %s, step %s", field_name, villa_id, stage_number)
            return result(AutoSaveOutcome.STALE_CLEARED)
        logger.debug("Auto-saved %s for villa %s, step %s", field_name, villa_id, stage_number)
        return result(AutoSaveOutcome.SAVED)
