"""
Dashboard summary counts for the home screen.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.db_models import (
    ClaimDB, ClaimStatus, JobDB, JobStatus, LeadDB, LeadStage, NotificationDB,
)
from .tenancy import TenantScope

CLOSED_CLAIM_STATUSES = (ClaimStatus.COMPLETED.value, ClaimStatus.CLOSED.value, ClaimStatus.DENIED.value)
CLOSED_LEAD_STAGES = (LeadStage.WON.value, LeadStage.LOST.value)


def week_bounds(now: datetime):
    """Monday 00:00 to the following Monday, naive UTC."""
    start = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=7)


def dashboard_summary(db: Session, org_id: str, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    scope = TenantScope(db, org_id)
    week_start, week_end = week_bounds(now)

    open_claims = scope.query(ClaimDB).filter(ClaimDB.status.notin_(CLOSED_CLAIM_STATUSES)).count()

    leads_by_stage = {stage.value: 0 for stage in LeadStage}
    rows = (
        scope.query(LeadDB)
        .with_entities(LeadDB.stage, func.count(LeadDB.id))
        .group_by(LeadDB.stage)
        .all()
    )
    for stage, count in rows:
        leads_by_stage[stage] = count

    pipeline_value = (
        scope.query(LeadDB)
        .with_entities(func.coalesce(func.sum(LeadDB.value), 0))
        .filter(LeadDB.stage.notin_(CLOSED_LEAD_STAGES))
        .scalar()
    )

    jobs_this_week = scope.query(JobDB).filter(
        JobDB.scheduled_start >= week_start,
        JobDB.scheduled_start < week_end,
        JobDB.status != JobStatus.CANCELLED.value,
    ).count()

    unread = scope.query(NotificationDB).filter(
        NotificationDB.user_id == user_id,
        NotificationDB.is_read.is_(False),
    ).count()

    return {
        "open_claims": open_claims,
        "leads_by_stage": leads_by_stage,
        "jobs_this_week": jobs_this_week,
        "unread_notifications": unread,
        "pipeline_value": round(float(pipeline_value or 0), 2),
        "week_start": week_start.isoformat(),
        "generated_at": now.isoformat(),
    }
