"""
Scheduler API Routes

Internal endpoints hit by the cron runner: outbound webhook delivery and
lead follow-up reminders. Guarded by a shared key, not user auth.
"""
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..services.notifications import send_follow_up_reminders
from ..services.webhooks import WebhookService

router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != config.INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


def get_http_client() -> Optional[httpx.Client]:
    """Outbound client for webhook delivery; None lets the service open its own."""
    return None


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/webhooks/process", response_model=dict)
def process_webhooks(
    db: Session = Depends(get_db),
    http_client: Optional[httpx.Client] = Depends(get_http_client),
    _: bool = Depends(verify_internal_key),
):
    """
    Send due webhook deliveries (pending, or retrying past next_retry_at).
    One batch per call.
    """
    return WebhookService(db, http_client=http_client).process_pending()


@router.post("/lead-follow-ups", response_model=dict)
def lead_follow_ups(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """Notify reps whose lead follow-up date has passed."""
    return send_follow_up_reminders(db)
