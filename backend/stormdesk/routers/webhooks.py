"""
StormDesk - Outbound Webhooks Router
Integrator webhook subscriptions and their delivery log.
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..models.db_models import RetryStrategy
from ..rbac import require_permission
from ..services.serializers import delivery_to_dict, page_to_dict, webhook_to_dict
from ..services.webhooks import WEBHOOK_EVENTS, WebhookRegistry

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

RETRY_STRATEGIES = [s.value for s in RetryStrategy]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class WebhookFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: Optional[str] = None
    description: Optional[str] = None
    events: Optional[List[str]] = None
    is_active: Optional[bool] = None
    retry_strategy: Optional[str] = None
    max_retries: Optional[int] = Field(default=None, ge=0, le=10)
    timeout_ms: Optional[int] = Field(default=None, ge=1000, le=60000)
    headers: Optional[Dict[str, str]] = None

    @field_validator('retry_strategy')
    @classmethod
    def validate_strategy(cls, v):
        if v is not None and v not in RETRY_STRATEGIES:
            raise ValueError(f'Invalid retry strategy. Must be one of: {", ".join(RETRY_STRATEGIES)}')
        return v


class WebhookCreateRequest(WebhookFields):
    url: str
    events: List[str]


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/events", response_model=dict)
async def list_events(ctx: OrgContext = Depends(require_permission("integrations:view"))):
    return {"events": list(WEBHOOK_EVENTS)}


@router.get("", response_model=dict)
async def list_webhooks(
    ctx: OrgContext = Depends(require_permission("integrations:view")),
    db: Session = Depends(get_db),
):
    hooks = WebhookRegistry(db, ctx.org_id).list()
    return {"webhooks": [webhook_to_dict(h) for h in hooks]}


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    request: WebhookCreateRequest,
    ctx: OrgContext = Depends(require_permission("integrations:manage")),
    db: Session = Depends(get_db),
):
    """The signing secret is only returned here and on rotation."""
    hook = WebhookRegistry(db, ctx.org_id).create(request.model_dump(exclude_unset=True))
    return webhook_to_dict(hook, include_secret=True)


@router.get("/{webhook_id}", response_model=dict)
async def get_webhook(
    webhook_id: str,
    ctx: OrgContext = Depends(require_permission("integrations:view")),
    db: Session = Depends(get_db),
):
    return webhook_to_dict(WebhookRegistry(db, ctx.org_id).get(webhook_id))


@router.patch("/{webhook_id}", response_model=dict)
async def update_webhook(
    webhook_id: str,
    request: WebhookFields,
    ctx: OrgContext = Depends(require_permission("integrations:manage")),
    db: Session = Depends(get_db),
):
    hook = WebhookRegistry(db, ctx.org_id).update(webhook_id, request.model_dump(exclude_unset=True))
    return webhook_to_dict(hook)


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
    webhook_id: str,
    ctx: OrgContext = Depends(require_permission("integrations:manage")),
    db: Session = Depends(get_db),
):
    WebhookRegistry(db, ctx.org_id).delete(webhook_id)


@router.post("/{webhook_id}/rotate-secret", response_model=dict)
async def rotate_secret(
    webhook_id: str,
    ctx: OrgContext = Depends(require_permission("integrations:manage")),
    db: Session = Depends(get_db),
):
    hook = WebhookRegistry(db, ctx.org_id).rotate_secret(webhook_id)
    return webhook_to_dict(hook, include_secret=True)


@router.get("/{webhook_id}/deliveries", response_model=dict)
async def list_deliveries(
    webhook_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(require_permission("integrations:view")),
    db: Session = Depends(get_db),
):
    page = WebhookRegistry(db, ctx.org_id).deliveries(webhook_id, status_filter, limit, offset)
    return page_to_dict(page, delivery_to_dict)


@router.post("/{webhook_id}/test", response_model=dict, status_code=status.HTTP_202_ACCEPTED)
async def send_test_event(
    webhook_id: str,
    ctx: OrgContext = Depends(require_permission("integrations:manage")),
    db: Session = Depends(get_db),
):
    """Queue a test delivery; it goes out on the next processing run."""
    return delivery_to_dict(WebhookRegistry(db, ctx.org_id).send_test(webhook_id))
