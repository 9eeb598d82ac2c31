"""
StormDesk - Dashboard Router
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..rbac import require_permission
from ..services.dashboard import dashboard_summary

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=dict)
async def get_summary(
    ctx: OrgContext = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return dashboard_summary(db, ctx.org_id, ctx.user_id)
