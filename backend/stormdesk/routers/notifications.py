"""
StormDesk - Notifications Router
The caller's own in-app notifications.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import OrgContext, get_org_context
from ..database import get_db
from ..services.notifications import NotificationService
from ..services.serializers import notification_to_dict, page_to_dict

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=dict)
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_org_context),
    db: Session = Depends(get_db),
):
    service = NotificationService(db, ctx.org_id)
    result = page_to_dict(service.list(ctx.user_id, unread_only, limit, offset), notification_to_dict)
    result["unread_count"] = service.unread_count(ctx.user_id)
    return result


@router.post("/{notification_id}/read", response_model=dict)
async def mark_read(
    notification_id: str,
    ctx: OrgContext = Depends(get_org_context),
    db: Session = Depends(get_db),
):
    notification = NotificationService(db, ctx.org_id).mark_read(ctx.user_id, notification_id)
    return notification_to_dict(notification)


@router.post("/read-all", response_model=dict)
async def mark_all_read(
    ctx: OrgContext = Depends(get_org_context),
    db: Session = Depends(get_db),
):
    updated = NotificationService(db, ctx.org_id).mark_all_read(ctx.user_id)
    return {"updated": updated}
