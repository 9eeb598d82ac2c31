"""
StormDesk - Compliance Router
Building code lookups by state.
"""
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator

from ..auth import OrgContext, get_org_context
from ..rbac import require_role
from ..services.compliance import (
    check_building_codes,
    get_local_codes,
    get_state_info,
    get_state_list,
    invalidate_cache,
)

router = APIRouter(prefix="/compliance", tags=["compliance"])


class ComplianceCheckRequest(BaseModel):
    state: str
    county: Optional[str] = None
    damage_type: Optional[str] = None
    trade: Optional[str] = None

    @field_validator('state')
    @classmethod
    def validate_state(cls, v):
        if len(v.strip()) != 2:
            raise ValueError('State must be a 2-letter code')
        return v.strip().upper()


@router.post("/check", response_model=dict)
async def check_codes(request: ComplianceCheckRequest, ctx: OrgContext = Depends(get_org_context)):
    """
    Check repair work against the state's residential code.
    Unknown states fall back to IRC 2021 defaults.
    """
    try:
        result = check_building_codes(request.state, request.county, request.damage_type, request.trade)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.get("/codes", response_model=dict)
async def local_codes(
    state: str,
    county: Optional[str] = None,
    trade: Optional[str] = None,
    ctx: OrgContext = Depends(get_org_context),
):
    try:
        return get_local_codes(state, county, trade)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/states", response_model=dict)
async def list_states(ctx: OrgContext = Depends(get_org_context)):
    states = get_state_list()
    return {"states": states, "total": len(states)}


@router.get("/states/{state}", response_model=dict)
async def state_info(state: str, ctx: OrgContext = Depends(get_org_context)):
    info = get_state_info(state)
    if info is None:
        raise HTTPException(status_code=404, detail=f"No code data for state '{state.upper()}'")
    data = asdict(info)
    data["amendments"] = list(info.amendments)
    return {"state": state.upper(), **data}


@router.post("/cache/invalidate", response_model=dict)
async def clear_cache(
    state: Optional[str] = None,
    ctx: OrgContext = Depends(require_role("admin")),
):
    """Drop cached results for one state (``?state=FL``) or for every state."""
    entries = invalidate_cache(state)
    return {"invalidated": True, "state": state.upper() if state else None, "entries": entries}
