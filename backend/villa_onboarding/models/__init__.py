from villa_onboarding.models.session import OnboardingSession
from villa_onboarding.models.progress import StageProgress, FieldProgress
from villa_onboarding.models.skip import SkipRecord
from villa_onboarding.models.audit import AuditLog

__all__ = ["OnboardingSession", "StageProgress", "FieldProgress", "SkipRecord", "AuditLog"]
