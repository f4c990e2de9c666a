"""
Activation Service — Flips a villa live once its onboarding completes.

The villa record itself belongs to the property service; this collaborator is
the narrow hand-off point and is called at most once per successful completion.
"""
import logging
from typing import Protocol

from sqlalchemy.orm import Session

from villa_onboarding.models.session import OnboardingSession
from villa_onboarding.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class EntityActivator(Protocol):
    def activate(self, villa_id: str) -> None: ...


class ActivationService:
    """Default activator: records the activation in the session's audit trail."""

    def __init__(self, db: Session):
        self.db = db

    def activate(self, villa_id: str) -> None:
        session = (
            self.db.query(OnboardingSession)
            .filter(OnboardingSession.villa_id == villa_id)
            .first()
        )
        if session is not None:
            AuditService.log(
                self.db, session.id, "VILLA_ACTIVATED",
                payload={"villa_id": villa_id},
                actor="system",
            )
        logger.info("Villa %s activated after onboarding completion", villa_id)
