"""
StormDesk - Claims Router
Insurance claims and their activity timeline.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..models.db_models import ClaimStatus
from ..rbac import require_permission
from ..services.claims import ClaimService
from ..services.serializers import activity_to_dict, claim_to_dict, page_to_dict
from .contacts import ContactCreateRequest, PropertyFields

router = APIRouter(prefix="/claims", tags=["claims"])

CLAIM_STATUSES = [s.value for s in ClaimStatus]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class InlineProperty(PropertyFields):
    """New property created alongside the claim."""


class InlineContact(ContactCreateRequest):
    """New contact created alongside the claim."""


class ClaimFields(BaseModel):
    """Editable claim fields. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    claim_number: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    carrier: Optional[str] = None
    policy_number: Optional[str] = None
    damage_type: Optional[str] = None
    date_of_loss: Optional[date] = None
    status: Optional[str] = None
    lifecycle_stage: Optional[str] = None
    priority: Optional[str] = None
    insured_name: Optional[str] = None
    homeowner_email: Optional[EmailStr] = None
    adjuster_name: Optional[str] = None
    adjuster_phone: Optional[str] = None
    adjuster_email: Optional[EmailStr] = None
    estimated_value: Optional[float] = None
    approved_value: Optional[float] = None
    deductible: Optional[float] = None
    property_id: Optional[str] = None
    contact_id: Optional[str] = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in CLAIM_STATUSES:
            raise ValueError(f'Invalid status. Must be one of: {", ".join(CLAIM_STATUSES)}')
        return v

    @field_validator('estimated_value', 'approved_value', 'deductible')
    @classmethod
    def validate_amount(cls, v):
        if v is not None and v < 0:
            raise ValueError('Amounts cannot be negative')
        return v


class ClaimCreateRequest(ClaimFields):
    title: str
    property: Optional[InlineProperty] = None
    contact: Optional[InlineContact] = None


class ClaimUpdateRequest(ClaimFields):
    pass


class NoteRequest(BaseModel):
    message: str


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=dict)
async def list_claims(
    status_filter: Optional[str] = Query(None, alias="status"),
    stage: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(require_permission("claims:view")),
    db: Session = Depends(get_db),
):
    page = ClaimService(db, ctx.org_id).list(status_filter, stage, search, limit, offset)
    return page_to_dict(page, claim_to_dict)


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_claim(
    request: ClaimCreateRequest,
    ctx: OrgContext = Depends(require_permission("claims:create")),
    db: Session = Depends(get_db),
):
    """
    Create a claim. A claim number is generated when none is given; a new
    property and contact can be created inline.
    """
    data = request.model_dump(exclude_unset=True, exclude={"property", "contact"})
    claim = ClaimService(db, ctx.org_id).create(
        data,
        user_id=ctx.user_id,
        property_data=request.property.model_dump(exclude_unset=True) if request.property else None,
        contact_data=request.contact.model_dump(exclude_unset=True) if request.contact else None,
    )
    return claim_to_dict(claim, include_relations=True)


@router.get("/{claim_ref}", response_model=dict)
async def get_claim(
    claim_ref: str,
    ctx: OrgContext = Depends(require_permission("claims:view")),
    db: Session = Depends(get_db),
):
    """Fetch by id or claim number."""
    return claim_to_dict(ClaimService(db, ctx.org_id).get(claim_ref), include_relations=True)


@router.patch("/{claim_ref}", response_model=dict)
async def update_claim(
    claim_ref: str,
    request: ClaimUpdateRequest,
    ctx: OrgContext = Depends(require_permission("claims:edit")),
    db: Session = Depends(get_db),
):
    claim = ClaimService(db, ctx.org_id).update(claim_ref, request.model_dump(exclude_unset=True), ctx.user_id)
    return claim_to_dict(claim, include_relations=True)


@router.delete("/{claim_ref}", response_model=dict)
async def delete_claim(
    claim_ref: str,
    ctx: OrgContext = Depends(require_permission("claims:delete")),
    db: Session = Depends(get_db),
):
    claim_id = ClaimService(db, ctx.org_id).delete(claim_ref, ctx.user_id)
    return {"deleted": True, "id": claim_id}


# =============================================================================
# TIMELINE
# =============================================================================

@router.get("/{claim_ref}/activities", response_model=dict)
async def list_activities(
    claim_ref: str,
    ctx: OrgContext = Depends(require_permission("claims:view")),
    db: Session = Depends(get_db),
):
    activities = ClaimService(db, ctx.org_id).activities(claim_ref)
    return {"activities": [activity_to_dict(a) for a in activities]}


@router.post("/{claim_ref}/notes", response_model=dict, status_code=status.HTTP_201_CREATED)
async def add_note(
    claim_ref: str,
    request: NoteRequest,
    ctx: OrgContext = Depends(require_permission("claims:edit")),
    db: Session = Depends(get_db),
):
    return activity_to_dict(ClaimService(db, ctx.org_id).add_note(claim_ref, request.message, ctx.user_id))
