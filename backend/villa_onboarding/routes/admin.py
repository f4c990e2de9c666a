"""
Admin Routes — Onboarding dashboard and audit trail access.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from villa_onboarding.routes.onboarding import get_engine
from villa_onboarding.schemas.schemas import AdminDashboardResponse, AuditLogEntry
from villa_onboarding.services.audit_service import AuditService
from villa_onboarding.services.dashboard_service import DashboardService
from villa_onboarding.services.progress_engine import ProgressEngine

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/dashboard", response_model=AdminDashboardResponse)
def get_dashboard(engine: ProgressEngine = Depends(get_engine)):
    """Get aggregated onboarding metrics for the operations team."""
    return DashboardService(engine).build()


@router.get("/audit/{villa_id}", response_model=List[AuditLogEntry])
def get_audit_trail(villa_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Get the full audit trail for a villa's onboarding session."""
    session = engine.store.get_session(villa_id)
    logs = AuditService.get_trail(engine.db, session.id)

    if not logs:
        raise HTTPException(status_code=404, detail="No audit logs found for this villa")

    return logs


@router.get("/audit/{villa_id}/verify")
def verify_audit_chain(villa_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Verify the integrity of the audit hash chain for a villa's session."""
    session = engine.store.get_session(villa_id)
    return AuditService.verify_chain(engine.db, session.id)


@router.get("/sessions")
def list_sessions(
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    engine: ProgressEngine = Depends(get_engine),
):
    """List onboarding sessions with optional status filter."""
    total, sessions = engine.store.list_sessions(status=status, limit=limit, offset=offset)

    return {
        "total": total,
        "sessions": [
            {
                "id": s.id,
                "villa_id": s.villa_id,
                "user_id": s.user_id,
                "status": s.status,
                "current_step": s.current_step,
                "steps_completed": s.steps_completed,
                "steps_skipped": s.steps_skipped,
                "created_at": s.created_at.isoformat() if s.created_at else None,
                "last_activity_at": s.last_activity_at.isoformat() if s.last_activity_at else None,
                "completed_at": s.completed_at.isoformat() if s.completed_at else None,
            }
            for s in sessions
        ],
    }
