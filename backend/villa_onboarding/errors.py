"""
Onboarding Errors — Exception taxonomy shared by the progress engine and the API layer.
"""
from typing import Dict, Optional


class OnboardingError(Exception):
    """Base class for all progress-engine errors."""

    error_code = "ONBOARDING_ERROR"


class NotFound(OnboardingError):
    """Session, stage or field row is absent."""

    error_code = "NOT_FOUND"


class InvalidInput(OnboardingError):
    """Caller supplied something the catalog does not know. Always fatal."""

    error_code = "INVALID_INPUT"


class InvalidStage(InvalidInput):
    error_code = "INVALID_STAGE"

    def __init__(self, stage_number, total_stages: int):
        self.stage_number = stage_number
        super().__init__(f"Invalid step number: {stage_number}. Must be between 1 and {total_stages}.")


class InvalidField(InvalidInput):
    error_code = "INVALID_FIELD"

    def __init__(self, stage_number: int, field_name):
        self.stage_number = stage_number
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' is not declared for step {stage_number}")


class ValidationFailed(OnboardingError):
    """Required-field violations at explicit stage submission."""

    error_code = "VALIDATION_FAILED"

    def __init__(
        self,
        stage_number: int,
        errors: Dict[str, str],
        warnings: Optional[Dict[str, str]] = None,
    ):
        self.stage_number = stage_number
        self.errors = dict(errors)
        self.warnings = dict(warnings or {})
        super().__init__(f"Step {stage_number} validation failed: {', '.join(self.errors.values())}")


class PersistenceError(OnboardingError):
    """Store unavailable, lock wait timed out, or write conflict."""

    error_code = "PERSISTENCE_ERROR"
