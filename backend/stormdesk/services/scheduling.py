"""
Job Scheduling

Jobs put a crew on a property for a time window. A crew can only be in
one place at a time: overlapping windows for the same crew in the same
org are rejected. Cancelled and completed jobs don't block the calendar.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..errors import ConflictError, ValidationFailedError
from ..models.db_models import ClaimDB, JobDB, JobStatus, LeadDB
from .serializers import job_to_dict
from .tenancy import TenantScope, apply_changes
from .webhooks import WebhookService

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = (JobStatus.SCHEDULED.value, JobStatus.IN_PROGRESS.value)

WINDOW_FIELDS = ("scheduled_start", "scheduled_end")


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _normalize_window(data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    for field in WINDOW_FIELDS:
        if field in data:
            data[field] = naive_utc(data[field])
    return data


def validate_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is None and end is None:
        return
    if start is None or end is None:
        raise ValidationFailedError("Both scheduled_start and scheduled_end are required to schedule a job")
    if end <= start:
        raise ValidationFailedError("scheduled_end must be after scheduled_start")


class JobScheduler:
    """Job CRUD and crew calendar for one org."""

    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id
        self.scope = TenantScope(db_session, org_id)

    def get(self, job_id: str) -> JobDB:
        return self.scope.get_or_404(JobDB, job_id, "Job")

    def list(
        self,
        status: Optional[str] = None,
        crew_name: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        query = self.scope.query(JobDB)
        if status:
            query = query.filter(JobDB.status == status)
        if crew_name:
            query = query.filter(JobDB.crew_name == crew_name)
        query = query.order_by(JobDB.scheduled_start.is_(None), JobDB.scheduled_start.asc())
        return TenantScope.paginate(query, limit, offset)

    def find_conflicts(
        self,
        crew_name: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
        exclude_job_id: Optional[str] = None,
    ) -> List[JobDB]:
        if not crew_name or start is None or end is None:
            return []
        query = self.scope.query(JobDB).filter(
            JobDB.crew_name == crew_name,
            JobDB.status.in_(BLOCKING_STATUSES),
            JobDB.scheduled_start < end,
            JobDB.scheduled_end > start,
        )
        if exclude_job_id:
            query = query.filter(JobDB.id != exclude_job_id)
        return query.all()

    def _check_schedule(self, job_id: Optional[str], crew: Optional[str], start, end, status: Optional[str]) -> None:
        validate_window(start, end)
        if status not in BLOCKING_STATUSES:
            return
        conflicts = self.find_conflicts(crew, start, end, exclude_job_id=job_id)
        if conflicts:
            raise ConflictError(
                f"Crew '{crew}' is already booked during this window",
                extra={"conflicts": [{"id": j.id, "title": j.title,
                                      "scheduled_start": j.scheduled_start.isoformat(),
                                      "scheduled_end": j.scheduled_end.isoformat()} for j in conflicts]},
            )

    def _check_links(self, data: Dict[str, Any]) -> None:
        if data.get("lead_id"):
            self.scope.get_or_404(LeadDB, data["lead_id"], "Lead")
        if data.get("claim_id"):
            self.scope.get_or_404(ClaimDB, data["claim_id"], "Claim")

    def create(self, data: Dict[str, Any], user_id: Optional[str] = None, commit: bool = True) -> JobDB:
        data = _normalize_window(data)
        data.setdefault("status", JobStatus.SCHEDULED.value)
        self._check_links(data)
        self._check_schedule(None, data.get("crew_name"), data.get("scheduled_start"),
                             data.get("scheduled_end"), data["status"])

        job = self.scope.add(JobDB(created_by=user_id, **data))
        self.db.flush()
        WebhookService(self.db).trigger_event(self.org_id, "job.created", job_to_dict(job))
        if commit:
            self.db.commit()
            self.db.refresh(job)
        logger.info(f"Scheduled job {job.id} ({job.crew_name or 'unassigned'}) for org {self.org_id}")
        return job

    def update(self, job_id: str, changes: Dict[str, Any]) -> JobDB:
        changes = _normalize_window(changes)
        job = self.get(job_id)
        if "status" in changes and changes["status"] not in {s.value for s in JobStatus}:
            raise ValidationFailedError(f"Unknown job status '{changes['status']}'")
        self._check_links(changes)

        crew = changes.get("crew_name", job.crew_name)
        start = changes.get("scheduled_start", job.scheduled_start)
        end = changes.get("scheduled_end", job.scheduled_end)
        status = changes.get("status", job.status)
        if {"crew_name", "scheduled_start", "scheduled_end", "status"} & set(changes):
            self._check_schedule(job.id, crew, start, end, status)

        changed = apply_changes(job, changes)
        if not changed:
            return job

        completed = "status" in changed and job.status == JobStatus.COMPLETED.value
        if completed:
            job.completed_at = datetime.utcnow()

        self.db.flush()
        webhooks = WebhookService(self.db)
        payload = job_to_dict(job)
        payload["changed_fields"] = sorted(changed)
        webhooks.trigger_event(self.org_id, "job.updated", payload)
        if completed:
            webhooks.trigger_event(self.org_id, "job.completed", job_to_dict(job))

        self.db.commit()
        self.db.refresh(job)
        return job

    def delete(self, job_id: str) -> None:
        self.scope.delete(self.get(job_id))
        self.db.commit()

    def calendar(self, start: datetime, end: datetime, crew_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Jobs overlapping [start, end), ordered by start."""
        start, end = naive_utc(start), naive_utc(end)
        validate_window(start, end)
        query = self.scope.query(JobDB).filter(
            JobDB.scheduled_start.isnot(None),
            JobDB.scheduled_start < end,
            JobDB.scheduled_end > start,
        )
        if crew_name:
            query = query.filter(JobDB.crew_name == crew_name)
        return [
            {
                "id": job.id,
                "title": job.title,
                "start": job.scheduled_start.isoformat(),
                "end": job.scheduled_end.isoformat(),
                "crew_name": job.crew_name,
                "status": job.status,
                "job_type": job.job_type,
                "address": job.address,
            }
            for job in query.order_by(JobDB.scheduled_start.asc()).all()
        ]
