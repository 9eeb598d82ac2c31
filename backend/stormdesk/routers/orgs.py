"""
StormDesk - Organization Router
Org profile, branding and team management.
"""
import re
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext, get_org_context
from ..database import get_db
from ..models.db_models import MemberRole
from ..rbac import require_permission
from ..services.orgs import OrgService
from ..services.serializers import branding_to_dict, member_to_dict, org_to_dict

router = APIRouter(prefix="/org", tags=["org"])

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
ROLES = [r.value for r in MemberRole]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class OrgUpdateRequest(BaseModel):
    name: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    accent_color: Optional[str] = None
    tagline: Optional[str] = None
    license_number: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None

    @field_validator('primary_color', 'accent_color')
    @classmethod
    def validate_color(cls, v):
        if v is not None and not HEX_COLOR.match(v):
            raise ValueError('Colors must be hex values like #117CFF')
        return v


class InviteRequest(BaseModel):
    email: EmailStr
    role: str = MemberRole.MEMBER.value

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in ROLES:
            raise ValueError(f'Invalid role. Must be one of: {", ".join(ROLES)}')
        return v


class RoleChangeRequest(BaseModel):
    role: str

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in ROLES:
            raise ValueError(f'Invalid role. Must be one of: {", ".join(ROLES)}')
        return v


# =============================================================================
# ORG
# =============================================================================

@router.get("", response_model=dict)
async def get_org(ctx: OrgContext = Depends(get_org_context), db: Session = Depends(get_db)):
    return org_to_dict(OrgService(db, ctx.org_id).get())


@router.patch("", response_model=dict)
async def update_org(
    request: OrgUpdateRequest,
    ctx: OrgContext = Depends(require_permission("org:manage")),
    db: Session = Depends(get_db),
):
    org = OrgService(db, ctx.org_id).update(request.model_dump(exclude_unset=True))
    return org_to_dict(org)


@router.get("/branding", response_model=dict)
async def get_branding(ctx: OrgContext = Depends(get_org_context), db: Session = Depends(get_db)):
    return branding_to_dict(OrgService(db, ctx.org_id).get())


# =============================================================================
# TEAM
# =============================================================================

@router.get("/members", response_model=dict)
async def list_members(
    ctx: OrgContext = Depends(require_permission("team:view")),
    db: Session = Depends(get_db),
):
    members = OrgService(db, ctx.org_id).members()
    return {"members": [member_to_dict(m) for m in members], "total": len(members)}


@router.post("/members", response_model=dict, status_code=status.HTTP_201_CREATED)
async def invite_member(
    request: InviteRequest,
    ctx: OrgContext = Depends(require_permission("team:invite")),
    db: Session = Depends(get_db),
):
    """Add an existing StormDesk user to this org."""
    return member_to_dict(OrgService(db, ctx.org_id).invite(request.email, request.role))


@router.patch("/members/{membership_id}", response_model=dict)
async def change_member_role(
    membership_id: str,
    request: RoleChangeRequest,
    ctx: OrgContext = Depends(require_permission("team:edit")),
    db: Session = Depends(get_db),
):
    return member_to_dict(OrgService(db, ctx.org_id).change_role(membership_id, request.role))


@router.delete("/members/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    membership_id: str,
    ctx: OrgContext = Depends(require_permission("team:remove")),
    db: Session = Depends(get_db),
):
    OrgService(db, ctx.org_id).remove(membership_id)
