"""
Pydantic Schemas — Request & Response models for API validation.
"""
from datetime import datetime
from typing import Any, Optional, Dict, List
from pydantic import BaseModel, Field

from villa_onboarding.models.enums import SkipCategory


# ──────────────── Session ────────────────

class InitializeRequest(BaseModel):
    user_id: str = Field("system", description="User starting the onboarding")
    user_email: Optional[str] = None


# ──────────────── Step / Field updates ────────────────

class StageUpdateRequest(BaseModel):
    step: int = Field(..., description="Step number (1-10)")
    data: Dict[str, Any] = Field(default_factory=dict, description="Field values for this step")
    completed: bool = Field(False, description="Mark the step complete (runs enforcing validation)")
    modified_at: Optional[datetime] = Field(None, description="Client timestamp of the edit")


class FieldProgressRequest(BaseModel):
    value: Any = None
    modified_at: Optional[datetime] = Field(None, description="Client timestamp of the edit")


class SkipFieldRequest(BaseModel):
    step: int
    field_name: str
    reason: Optional[str] = Field(None, max_length=512)
    category: SkipCategory = SkipCategory.OTHER


class UnskipFieldRequest(BaseModel):
    step: int
    field_name: str


class SkipStepRequest(BaseModel):
    step: int
    reason: Optional[str] = Field(None, max_length=512)
    category: SkipCategory = SkipCategory.OTHER


class UnskipStepRequest(BaseModel):
    step: int


# ──────────────── Read model ────────────────

class FieldDetail(BaseModel):
    field_name: str
    field_label: Optional[str] = None
    field_type: str
    status: str
    is_skipped: bool = False
    skip_reason: Optional[str] = None
    value: Any = None
    is_valid: bool = False
    validation_message: Optional[str] = None
    is_required: bool = False
    last_modified_at: Optional[datetime] = None


class StageDetail(BaseModel):
    stage_number: int
    stage_name: str
    status: str
    weight: int
    is_required: bool
    fields_completed: int
    fields_total: int
    fields_skipped: int
    is_valid: bool = False
    validation_errors: Dict[str, str] = {}
    validation_warnings: Dict[str, str] = {}
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    skipped_at: Optional[datetime] = None
    fields: List[FieldDetail] = []


class SkipDetail(BaseModel):
    item_type: str
    stage_number: int
    field_name: Optional[str] = None
    reason: Optional[str] = None
    category: str
    skipped_at: datetime
    skipped_by: str


class ProgressSummary(BaseModel):
    session_id: str
    villa_id: str
    current_step: int
    total_steps: int
    steps_completed: int
    steps_skipped: int
    fields_completed: int
    fields_skipped: int
    total_fields: int
    progress_percentage: float
    status: str
    estimated_time_remaining: int = Field(..., description="Minutes for steps not yet started")
    last_activity_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProgressResponse(ProgressSummary):
    per_stage: List[StageDetail] = []
    active_skips: List[SkipDetail] = []


class ValidationResponse(BaseModel):
    step: int
    is_valid: bool
    errors: Dict[str, str] = {}
    warnings: Dict[str, str] = {}


class StageUpdateResponse(BaseModel):
    step: int
    status: str
    validation: ValidationResponse
    summary: ProgressSummary


class AutoSaveAccepted(BaseModel):
    accepted: bool = True
    villa_id: str
    step: int
    field_name: str


# ──────────────── Admin / Audit ────────────────

class AuditLogEntry(BaseModel):
    id: int
    session_id: str
    action: str
    actor: Optional[str] = None
    content_hash: Optional[str] = None
    payload_hash: Optional[str] = None
    timestamp: datetime
    log_metadata: Optional[Dict] = None

    class Config:
        from_attributes = True


class SkipReasonCount(BaseModel):
    reason: str
    count: int


class SkippedFieldStat(BaseModel):
    field_name: str
    stage_number: int
    skip_count: int
    skip_reasons: List[SkipReasonCount] = []


class CompletionStats(BaseModel):
    last_7_days: int
    last_30_days: int
    total_completed: int


class AdminDashboardResponse(BaseModel):
    sessions_in_progress: List[ProgressSummary]
    recently_completed: List[ProgressSummary]
    pending_review: List[ProgressSummary]
    total_sessions: int
    average_completion_minutes: float
    common_skipped_fields: List[SkippedFieldStat]
    completion_stats: CompletionStats


# ──────────────── Generic ────────────────

class HealthResponse(BaseModel):
    status: str
    database: str
    version: str
    uptime_seconds: float


class ErrorResponse(BaseModel):
    detail: str
    error_code: Optional[str] = None
    errors: Optional[Dict[str, str]] = None
    warnings: Optional[Dict[str, str]] = None
