"""
StormDesk - Jobs Router
Job scheduling and the crew calendar.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..models.db_models import JobStatus
from ..rbac import require_permission
from ..services.scheduling import JobScheduler
from ..services.serializers import job_to_dict, page_to_dict

router = APIRouter(prefix="/jobs", tags=["jobs"])

JOB_STATUSES = [s.value for s in JobStatus]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class JobFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    job_type: Optional[str] = None
    status: Optional[str] = None
    crew_name: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    lead_id: Optional[str] = None
    claim_id: Optional[str] = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in JOB_STATUSES:
            raise ValueError(f'Invalid status. Must be one of: {", ".join(JOB_STATUSES)}')
        return v


class JobCreateRequest(JobFields):
    title: str


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=dict)
async def list_jobs(
    status_filter: Optional[str] = Query(None, alias="status"),
    crew_name: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(require_permission("jobs:view")),
    db: Session = Depends(get_db),
):
    page = JobScheduler(db, ctx.org_id).list(status_filter, crew_name, limit, offset)
    return page_to_dict(page, job_to_dict)


@router.get("/calendar", response_model=dict)
async def job_calendar(
    start: datetime,
    end: datetime,
    crew_name: Optional[str] = None,
    ctx: OrgContext = Depends(require_permission("jobs:view")),
    db: Session = Depends(get_db),
):
    """Jobs overlapping the [start, end) window."""
    events = JobScheduler(db, ctx.org_id).calendar(start, end, crew_name)
    return {"start": start.isoformat(), "end": end.isoformat(), "events": events}


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_job(
    request: JobCreateRequest,
    ctx: OrgContext = Depends(require_permission("jobs:create")),
    db: Session = Depends(get_db),
):
    """Schedule a job. Overlapping bookings for the same crew return 409."""
    job = JobScheduler(db, ctx.org_id).create(request.model_dump(exclude_unset=True), ctx.user_id)
    return job_to_dict(job)


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: str,
    ctx: OrgContext = Depends(require_permission("jobs:view")),
    db: Session = Depends(get_db),
):
    return job_to_dict(JobScheduler(db, ctx.org_id).get(job_id))


@router.patch("/{job_id}", response_model=dict)
async def update_job(
    job_id: str,
    request: JobFields,
    ctx: OrgContext = Depends(require_permission("jobs:edit")),
    db: Session = Depends(get_db),
):
    return job_to_dict(JobScheduler(db, ctx.org_id).update(job_id, request.model_dump(exclude_unset=True)))


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: str,
    ctx: OrgContext = Depends(require_permission("jobs:delete")),
    db: Session = Depends(get_db),
):
    JobScheduler(db, ctx.org_id).delete(job_id)
