"""
StormDesk - Depreciation Router
Recoverable depreciation calculator and per-claim lifecycle.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..models.db_models import DepreciationStatus
from ..rbac import require_permission
from ..services.depreciation import (
    ALLOWED_TRANSITIONS,
    DepreciationTracker,
    age_in_years,
    calculate_depreciated_value,
    calculate_recoverable,
)
from ..services.serializers import depreciation_event_to_dict

router = APIRouter(tags=["depreciation"])

LIFECYCLE_STATUSES = [s.value for s in DepreciationStatus if s != DepreciationStatus.CALCULATED]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class CalculateRequest(BaseModel):
    """Either ``years`` or ``installed_on`` gives the material age."""
    rcv: float = Field(ge=0)
    rate: float = Field(ge=0, lt=1)
    years: Optional[float] = Field(default=None, ge=0)
    installed_on: Optional[date] = None
    note: Optional[str] = None

    @model_validator(mode="after")
    def resolve_age(self):
        if self.years is None:
            if self.installed_on is None:
                raise ValueError('Either years or installed_on is required')
            if self.installed_on > date.today():
                raise ValueError('installed_on cannot be in the future')
            self.years = age_in_years(self.installed_on)
        return self


class EventRequest(BaseModel):
    status: str
    note: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0)

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v not in LIFECYCLE_STATUSES:
            raise ValueError(f'Invalid status. Must be one of: {", ".join(LIFECYCLE_STATUSES)}')
        return v


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/depreciation/calculate", response_model=dict)
async def quick_calculate(
    request: CalculateRequest,
    ctx: OrgContext = Depends(require_permission("claims:view")),
):
    """Stateless calculator: ACV = RCV x (1 - rate) ^ years."""
    acv = calculate_depreciated_value(request.rcv, request.rate, request.years)
    return {
        "rcv": request.rcv,
        "acv": acv,
        "recoverable_depreciation": calculate_recoverable(request.rcv, acv),
        "rate": request.rate,
        "years": request.years,
    }


@router.post("/claims/{claim_id}/depreciation", response_model=dict, status_code=status.HTTP_201_CREATED)
async def calculate_for_claim(
    claim_id: str,
    request: CalculateRequest,
    ctx: OrgContext = Depends(require_permission("claims:edit")),
    db: Session = Depends(get_db),
):
    return DepreciationTracker(db, ctx.org_id).calculate(
        claim_id, request.rcv, request.rate, request.years, ctx.user_id, request.note,
    )


@router.post("/claims/{claim_id}/depreciation/events", response_model=dict, status_code=status.HTTP_201_CREATED)
async def record_event(
    claim_id: str,
    request: EventRequest,
    ctx: OrgContext = Depends(require_permission("claims:edit")),
    db: Session = Depends(get_db),
):
    """Advance the lifecycle (invoiced, submitted, recovered, denied)."""
    event = DepreciationTracker(db, ctx.org_id).advance(
        claim_id, request.status, ctx.user_id, request.note, request.amount,
    )
    return depreciation_event_to_dict(event)


@router.get("/claims/{claim_id}/depreciation", response_model=dict)
async def depreciation_history(
    claim_id: str,
    ctx: OrgContext = Depends(require_permission("claims:view")),
    db: Session = Depends(get_db),
):
    tracker = DepreciationTracker(db, ctx.org_id)
    events = tracker.history(claim_id)
    current = events[-1].status if events else None
    return {
        "claim_id": claim_id,
        "current_status": current,
        "next_statuses": ALLOWED_TRANSITIONS.get(current, []),
        "events": [depreciation_event_to_dict(e) for e in events],
    }
