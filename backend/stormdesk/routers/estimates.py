"""
StormDesk - Estimates Router
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..models.db_models import EstimateStatus
from ..rbac import require_permission
from ..services.estimates import EstimateService
from ..services.serializers import estimate_to_dict, page_to_dict

router = APIRouter(prefix="/estimates", tags=["estimates"])

ESTIMATE_STATUSES = [s.value for s in EstimateStatus]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class LineItem(BaseModel):
    description: str
    quantity: float = Field(ge=0)
    unit: Optional[str] = None
    unit_price: float = Field(ge=0)
    category: Optional[str] = None


class EstimateFields(BaseModel):
    """Totals are computed server-side and can't be set."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    status: Optional[str] = None
    claim_id: Optional[str] = None
    lead_id: Optional[str] = None
    line_items: Optional[List[LineItem]] = None
    overhead_pct: Optional[float] = Field(default=None, ge=0)
    profit_pct: Optional[float] = Field(default=None, ge=0)
    tax_rate: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ESTIMATE_STATUSES:
            raise ValueError(f'Invalid status. Must be one of: {", ".join(ESTIMATE_STATUSES)}')
        return v


class EstimateCreateRequest(EstimateFields):
    title: str


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=dict)
async def list_estimates(
    claim_id: Optional[str] = None,
    lead_id: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(require_permission("estimates:view")),
    db: Session = Depends(get_db),
):
    page = EstimateService(db, ctx.org_id).list(claim_id, lead_id, status_filter, limit, offset)
    return page_to_dict(page, estimate_to_dict)


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_estimate(
    request: EstimateCreateRequest,
    ctx: OrgContext = Depends(require_permission("estimates:create")),
    db: Session = Depends(get_db),
):
    estimate = EstimateService(db, ctx.org_id).create(request.model_dump(exclude_unset=True), ctx.user_id)
    return estimate_to_dict(estimate)


@router.get("/{estimate_id}", response_model=dict)
async def get_estimate(
    estimate_id: str,
    ctx: OrgContext = Depends(require_permission("estimates:view")),
    db: Session = Depends(get_db),
):
    return estimate_to_dict(EstimateService(db, ctx.org_id).get(estimate_id))


@router.patch("/{estimate_id}", response_model=dict)
async def update_estimate(
    estimate_id: str,
    request: EstimateFields,
    ctx: OrgContext = Depends(require_permission("estimates:edit")),
    db: Session = Depends(get_db),
):
    """Partial update; totals are recalculated."""
    estimate = EstimateService(db, ctx.org_id).update(estimate_id, request.model_dump(exclude_unset=True))
    return estimate_to_dict(estimate)


@router.delete("/{estimate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_estimate(
    estimate_id: str,
    ctx: OrgContext = Depends(require_permission("estimates:delete")),
    db: Session = Depends(get_db),
):
    EstimateService(db, ctx.org_id).delete(estimate_id)
