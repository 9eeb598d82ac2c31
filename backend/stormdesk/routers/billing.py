"""
StormDesk - Billing Router
Inbound Stripe webhooks and the org's billing overview.
"""
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..auth import OrgContext
from ..database import get_db
from ..rbac import require_permission
from ..services.billing import StripeWebhookProcessor, billing_overview

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])


def get_stripe_processor(db: Session = Depends(get_db)) -> StripeWebhookProcessor:
    return StripeWebhookProcessor(
        db,
        webhook_secret=config.STRIPE_WEBHOOK_SECRET,
        tolerance=config.STRIPE_SIGNATURE_TOLERANCE,
    )


@router.post("/webhooks/stripe", response_model=dict)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    processor: StripeWebhookProcessor = Depends(get_stripe_processor),
):
    """
    Receive a Stripe event.

    Verified against the raw body, recorded by event id so redeliveries are
    acknowledged without being applied twice, then dispatched.
    """
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="No signature")
    if not processor.webhook_secret:
        logger.error("[STRIPE] STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()
    try:
        event = processor.verify(payload, stripe_signature)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"[STRIPE] Signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        is_new = processor.record_event(event)
    except SQLAlchemyError as e:
        logger.error(f"[STRIPE] Could not record event {event.get('id')}: {e}")
        raise HTTPException(status_code=500, detail="Database error")

    if not is_new:
        return {"received": True, "processed": False}

    try:
        # Handlers block on the Stripe API and on email delivery
        handled = await run_in_threadpool(processor.handle, event)
    except Exception as e:
        processor.db.rollback()
        logger.exception(f"[STRIPE] Handler failed for {event.get('type')} ({event.get('id')}): {e}")
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    logger.info(f"[STRIPE] Processed {event.get('type')} ({event.get('id')})")
    return {"received": True, "processed": True, "handled": handled}


@router.get("/billing", response_model=dict)
async def get_billing(
    ctx: OrgContext = Depends(require_permission("billing:view")),
    db: Session = Depends(get_db),
):
    """Plan, seats and the current period for the caller's org."""
    return billing_overview(db, ctx.org_id)
