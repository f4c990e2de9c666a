"""
Status vocabularies shared by the progress models, services and schemas.
Stored as plain strings in the database.
"""
from enum import Enum


class ProgressStatus(str, Enum):
    """Status of a single stage or field."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"


class SessionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    PENDING_REVIEW = "PENDING_REVIEW"


class SkippedItemType(str, Enum):
    STEP = "STEP"
    FIELD = "FIELD"


class SkipCategory(str, Enum):
    NOT_APPLICABLE = "NOT_APPLICABLE"
    DATA_UNAVAILABLE = "DATA_UNAVAILABLE"
    LATER = "LATER"
    OPTIONAL = "OPTIONAL"
    PRIVACY_CONCERNS = "PRIVACY_CONCERNS"
    OTHER = "OTHER"
