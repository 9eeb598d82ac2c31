"""
StormDesk - Leads Router
Sales pipeline with warmth scoring and conversion to jobs or claims.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..models.db_models import LeadStage
from ..rbac import require_permission
from ..services.leads import CONVERSION_TARGETS, LeadService
from ..services.scheduling import naive_utc
from ..services.serializers import lead_to_dict, page_to_dict
from .contacts import ContactCreateRequest

router = APIRouter(prefix="/leads", tags=["leads"])

LEAD_STAGES = [s.value for s in LeadStage]
URGENCY_LEVELS = ["low", "medium", "high", "urgent"]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class LeadContact(ContactCreateRequest):
    """New contact created alongside the lead."""


class LeadFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    stage: Optional[str] = None
    temperature: Optional[str] = None
    value: Optional[float] = None
    probability: Optional[int] = None
    urgency: Optional[str] = None
    budget: Optional[int] = None  # cents
    work_type: Optional[str] = None
    job_type: Optional[str] = None
    contact_id: Optional[str] = None
    assigned_to: Optional[str] = None
    follow_up_date: Optional[datetime] = None

    @field_validator('stage')
    @classmethod
    def validate_stage(cls, v):
        if v is not None and v not in LEAD_STAGES:
            raise ValueError(f'Invalid stage. Must be one of: {", ".join(LEAD_STAGES)}')
        return v

    @field_validator('urgency')
    @classmethod
    def validate_urgency(cls, v):
        if v is not None:
            if v.lower() not in URGENCY_LEVELS:
                raise ValueError(f'Invalid urgency. Must be one of: {", ".join(URGENCY_LEVELS)}')
            return v.lower()
        return v

    @field_validator('probability')
    @classmethod
    def validate_probability(cls, v):
        if v is not None and not 0 <= v <= 100:
            raise ValueError('Probability must be between 0 and 100')
        return v

    @field_validator('budget')
    @classmethod
    def validate_budget(cls, v):
        if v is not None and v < 0:
            raise ValueError('Budget cannot be negative')
        return v

    @field_validator('follow_up_date')
    @classmethod
    def normalize_follow_up(cls, v):
        return naive_utc(v)


class LeadCreateRequest(LeadFields):
    title: str
    contact: Optional[LeadContact] = None


class ConvertRequest(BaseModel):
    target: str

    @field_validator('target')
    @classmethod
    def validate_target(cls, v):
        if v not in CONVERSION_TARGETS:
            raise ValueError(f'Invalid target. Must be one of: {", ".join(CONVERSION_TARGETS)}')
        return v


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=dict)
async def list_leads(
    stage: Optional[str] = None,
    source: Optional[str] = None,
    assigned_to: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(require_permission("leads:view")),
    db: Session = Depends(get_db),
):
    page = LeadService(db, ctx.org_id).list(stage, source, assigned_to, limit, offset)
    return page_to_dict(page, lead_to_dict)


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_lead(
    request: LeadCreateRequest,
    ctx: OrgContext = Depends(require_permission("leads:create")),
    db: Session = Depends(get_db),
):
    """
    Create a lead for an existing contact (``contact_id``) or a new one
    (``contact``). The warmth score is computed, never supplied.
    """
    lead = LeadService(db, ctx.org_id).create(
        request.model_dump(exclude_unset=True, exclude={"contact"}),
        user_id=ctx.user_id,
        contact_data=request.contact.model_dump(exclude_unset=True) if request.contact else None,
    )
    return lead_to_dict(lead)


@router.get("/{lead_id}", response_model=dict)
async def get_lead(
    lead_id: str,
    ctx: OrgContext = Depends(require_permission("leads:view")),
    db: Session = Depends(get_db),
):
    return lead_to_dict(LeadService(db, ctx.org_id).get(lead_id))


@router.patch("/{lead_id}", response_model=dict)
async def update_lead(
    lead_id: str,
    request: LeadFields,
    ctx: OrgContext = Depends(require_permission("leads:edit")),
    db: Session = Depends(get_db),
):
    return lead_to_dict(LeadService(db, ctx.org_id).update(lead_id, request.model_dump(exclude_unset=True)))


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead(
    lead_id: str,
    ctx: OrgContext = Depends(require_permission("leads:delete")),
    db: Session = Depends(get_db),
):
    LeadService(db, ctx.org_id).delete(lead_id)


@router.post("/{lead_id}/convert", response_model=dict)
async def convert_lead(
    lead_id: str,
    request: ConvertRequest,
    ctx: OrgContext = Depends(require_permission("leads:edit")),
    db: Session = Depends(get_db),
):
    """Convert a lead into a job or an insurance claim."""
    return LeadService(db, ctx.org_id).convert(lead_id, request.target, ctx.user_id)
