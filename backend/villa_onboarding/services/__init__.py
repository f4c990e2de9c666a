from villa_onboarding.services.audit_service import AuditService
from villa_onboarding.services.progress_store import ProgressStore
from villa_onboarding.services.progress_engine import ProgressEngine
from villa_onboarding.services.autosave_service import AutoSaveReconciler, AutoSaveOutcome
from villa_onboarding.services.validation_service import ValidationService, ValidationResult
from villa_onboarding.services.completion_service import CompletionEvaluator, compute_score
from villa_onboarding.services.activation_service import ActivationService
from villa_onboarding.services.notification_service import NotificationService
from villa_onboarding.services.dashboard_service import DashboardService

__all__ = [
    "AuditService", "ProgressStore", "ProgressEngine", "AutoSaveReconciler", "AutoSaveOutcome",
    "ValidationService", "ValidationResult", "CompletionEvaluator", "compute_score",
    "ActivationService", "NotificationService", "DashboardService",
]
