"""
Dashboard Service — Aggregated onboarding metrics for the admin dashboard.
"""
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from villa_onboarding.models.enums import SessionStatus, SkippedItemType
from villa_onboarding.models.session import OnboardingSession
from villa_onboarding.models.skip import SkipRecord
from villa_onboarding.schemas.schemas import (
    AdminDashboardResponse, CompletionStats, ProgressSummary, SkippedFieldStat, SkipReasonCount,
)
from villa_onboarding.services.progress_engine import ProgressEngine

TOP_SKIPPED_FIELDS = 10
LIST_LIMIT = 20


class DashboardService:
    """Builds the admin dashboard from sessions and skip records."""

    def __init__(self, engine: ProgressEngine):
        self.engine = engine
        self.db: Session = engine.db

    def build(self) -> AdminDashboardResponse:
        now = datetime.utcnow()
        week_ago = now - timedelta(days=7)
        month_ago = now - timedelta(days=30)

        in_progress = self._sessions(
            OnboardingSession.status == SessionStatus.IN_PROGRESS.value,
            order=OnboardingSession.last_activity_at.desc(),
        )
        recently_completed = self._sessions(
            OnboardingSession.is_completed.is_(True),
            OnboardingSession.completed_at >= week_ago,
            order=OnboardingSession.completed_at.desc(),
        )
        pending_review = self._sessions(
            OnboardingSession.status == SessionStatus.PENDING_REVIEW.value,
            order=OnboardingSession.submitted_at.asc(),
        )

        total = self.db.query(func.count(OnboardingSession.id)).scalar() or 0

        return AdminDashboardResponse(
            sessions_in_progress=in_progress,
            recently_completed=recently_completed,
            pending_review=pending_review,
            total_sessions=total,
            average_completion_minutes=self._average_completion_minutes(),
            common_skipped_fields=self.common_skipped_fields(),
            completion_stats=CompletionStats(
                last_7_days=self._completed_since(week_ago),
                last_30_days=self._completed_since(month_ago),
                total_completed=self._completed_since(None),
            ),
        )

    def _sessions(self, *criteria, order) -> List[ProgressSummary]:
        rows = (
            self.db.query(OnboardingSession)
            .filter(*criteria)
            .order_by(order)
            .limit(LIST_LIMIT)
            .all()
        )
        return [self.engine.get_summary(s.villa_id) for s in rows]

    def _completed_since(self, since) -> int:
        query = self.db.query(func.count(OnboardingSession.id)).filter(OnboardingSession.is_completed.is_(True))
        if since is not None:
            query = query.filter(OnboardingSession.completed_at >= since)
        return query.scalar() or 0

    def _average_completion_minutes(self) -> float:
        completed = self.db.query(OnboardingSession).filter(
            OnboardingSession.is_completed.is_(True),
            OnboardingSession.completed_at.isnot(None),
        ).all()
        durations = [
            (s.completed_at - (s.session_started_at or s.created_at)).total_seconds() / 60
            for s in completed
            if s.session_started_at or s.created_at
        ]
        if not durations:
            return 0.0
        return round(sum(durations) / len(durations), 1)

    def common_skipped_fields(self, limit: int = TOP_SKIPPED_FIELDS) -> List[SkippedFieldStat]:
        """Most frequently skipped fields across all sessions, with reason categories."""
        records = self.db.query(SkipRecord).filter(
            SkipRecord.item_type == SkippedItemType.FIELD.value,
        ).all()

        counts: Counter = Counter()
        reasons: Dict[Tuple[int, str], Counter] = defaultdict(Counter)
        for r in records:
            key = (r.stage_number, r.field_name)
            counts[key] += 1
            reasons[key][r.skip_category] += 1

        return [
            SkippedFieldStat(
                field_name=field_name,
                stage_number=stage_number,
                skip_count=count,
                skip_reasons=[
                    SkipReasonCount(reason=reason, count=n)
                    for reason, n in reasons[(stage_number, field_name)].most_common()
                ],
            )
            for (stage_number, field_name), count in counts.most_common(limit)
        ]
