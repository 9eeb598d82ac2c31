"""
Outbound Webhook Delivery

Integrators register URLs for domain events. Events become delivery rows;
the scheduler sends due deliveries, signing each body with the hook's
secret (HMAC-SHA256, hex, ``X-Webhook-Signature``).

Retry schedule for attempt n:
- exponential: 2^n minutes
- linear:      n * 5 minutes
- fixed:       10 minutes
A delivery is failed once attempts reach the hook's max_retries. Ten failed
deliveries in a row disable the hook; any success resets the counter.
"""
import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...config import (
    WEBHOOK_BATCH_SIZE,
    WEBHOOK_MAX_CONSECUTIVE_FAILURES,
    WEBHOOK_USER_AGENT,
)
from ...models.db_models import (
    DeliveryStatus, RetryStrategy, WebhookDB, WebhookDeliveryDB,
)

logger = logging.getLogger(__name__)


WEBHOOK_EVENTS = (
    "claim.created",
    "claim.updated",
    "claim.deleted",
    "job.created",
    "job.updated",
    "job.completed",
    "lead.created",
    "estimate.created",
    "document.generated",
    "invoice.paid",
    "payment.received",
)

TEST_EVENT = "webhook.test"
RESPONSE_BODY_LIMIT = 4000


# =============================================================================
# SIGNING
# =============================================================================

def generate_webhook_secret() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def serialize_payload(payload: Dict[str, Any]) -> str:
    """Canonical JSON body; what gets signed is exactly what gets sent."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def sign_payload(body: Union[str, bytes], secret: str) -> str:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: Union[str, bytes], signature: str, secret: str) -> bool:
    """Constant-time comparison of a received signature."""
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(body, secret), signature)


def calculate_next_retry(
    attempt: int,
    strategy: str,
    max_retries: int,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """When to retry after ``attempt`` attempts; None once retries are exhausted."""
    if attempt >= max_retries:
        return None

    if strategy == RetryStrategy.EXPONENTIAL.value:
        delay_seconds = (2 ** attempt) * 60
    elif strategy == RetryStrategy.LINEAR.value:
        delay_seconds = attempt * 300
    elif strategy == RetryStrategy.FIXED.value:
        delay_seconds = 600
    else:
        delay_seconds = 60

    return (now or datetime.utcnow()) + timedelta(seconds=delay_seconds)


# =============================================================================
# WEBHOOK SERVICE
# =============================================================================

class WebhookService:
    """
    Queues and sends outbound webhook deliveries.

    Queueing is tenant-bound (``trigger_event`` takes the org id). Sending is
    a system task and works across all orgs.
    """

    def __init__(self, db_session: Session, http_client: Optional[httpx.Client] = None):
        self.db = db_session
        self.http_client = http_client

    # =========================================================================
    # QUEUEING
    # =========================================================================

    def trigger_event(self, org_id: str, event: str, payload: Dict[str, Any]) -> List[WebhookDeliveryDB]:
        """Create a pending delivery for every active hook subscribed to ``event``."""
        if event not in WEBHOOK_EVENTS:
            raise ValueError(f"Unknown webhook event '{event}'")

        hooks = self.db.query(WebhookDB).filter(
            WebhookDB.org_id == org_id,
            WebhookDB.is_active.is_(True),
        ).all()

        deliveries = []
        for hook in hooks:
            if event not in (hook.events or []):
                continue
            deliveries.append(self._create_delivery(hook, event, payload))

        if deliveries:
            logger.info(f"[WEBHOOK] Queued {len(deliveries)} deliveries for {event} (org {org_id})")
        return deliveries

    def queue_test(self, hook: WebhookDB) -> WebhookDeliveryDB:
        payload = {
            "message": "This is a test event from StormDesk",
            "webhook_id": hook.id,
        }
        return self._create_delivery(hook, TEST_EVENT, payload)

    def _create_delivery(self, hook: WebhookDB, event: str, payload: Dict[str, Any]) -> WebhookDeliveryDB:
        delivery = WebhookDeliveryDB(
            id=secrets.token_hex(16),
            webhook_id=hook.id,
            org_id=hook.org_id,
            event=event,
            payload=payload,
            status=DeliveryStatus.PENDING.value,
            attempts=0,
        )
        self.db.add(delivery)
        return delivery

    # =========================================================================
    # SENDING
    # =========================================================================

    def due_deliveries(self, now: Optional[datetime] = None, limit: int = WEBHOOK_BATCH_SIZE) -> List[WebhookDeliveryDB]:
        now = now or datetime.utcnow()
        return (
            self.db.query(WebhookDeliveryDB)
            .filter(
                WebhookDeliveryDB.status.in_([
                    DeliveryStatus.PENDING.value,
                    DeliveryStatus.RETRYING.value,
                ]),
                or_(
                    WebhookDeliveryDB.next_retry_at.is_(None),
                    WebhookDeliveryDB.next_retry_at <= now,
                ),
            )
            .order_by(WebhookDeliveryDB.created_at.asc())
            .limit(limit)
            .all()
        )

    def process_pending(self, now: Optional[datetime] = None, limit: int = WEBHOOK_BATCH_SIZE) -> Dict[str, Any]:
        """Send every due delivery. Called by the internal scheduler."""
        now = now or datetime.utcnow()
        deliveries = self.due_deliveries(now, limit)

        summary = {"processed": 0, "sent": 0, "retrying": 0, "failed": 0, "skipped": 0}
        client = self.http_client or httpx.Client()
        try:
            for delivery in deliveries:
                if not delivery.webhook.is_active:
                    # Hook was disabled after the delivery was queued
                    delivery.status = DeliveryStatus.FAILED.value
                    delivery.error = "Webhook disabled"
                    delivery.next_retry_at = None
                    summary["skipped"] += 1
                    continue
                try:
                    self.send_delivery(delivery, client=client, now=now)
                except Exception as e:
                    # One broken row must not hold back the rest of the batch
                    logger.exception(f"[WEBHOOK] Delivery {delivery.id} could not be processed")
                    delivery.status = DeliveryStatus.FAILED.value
                    delivery.error = str(e) or e.__class__.__name__
                    delivery.next_retry_at = None
                summary["processed"] += 1
                summary[delivery.status] += 1
        finally:
            if self.http_client is None:
                client.close()

        self.db.commit()
        logger.info(f"[WEBHOOK] Delivery run complete: {summary}")
        return summary

    def build_request(self, delivery: WebhookDeliveryDB) -> Dict[str, Any]:
        """Body and headers for one delivery attempt."""
        hook = delivery.webhook
        body = serialize_payload({
            "id": delivery.id,
            "event": delivery.event,
            "created_at": delivery.created_at.isoformat() if delivery.created_at else None,
            "data": delivery.payload,
        })
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(body, hook.secret),
            "X-Webhook-Event": delivery.event,
            "X-Webhook-Delivery": delivery.id,
            "User-Agent": WEBHOOK_USER_AGENT,
        }
        headers.update(hook.headers or {})
        return {"body": body, "headers": headers}

    def send_delivery(
        self,
        delivery: WebhookDeliveryDB,
        client: httpx.Client,
        now: Optional[datetime] = None,
    ) -> WebhookDeliveryDB:
        """Make one attempt and record the outcome on the delivery and its hook."""
        now = now or datetime.utcnow()
        hook = delivery.webhook
        request = self.build_request(delivery)

        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.last_attempt_at = now

        try:
            response = client.post(
                hook.url,
                content=request["body"],
                headers=request["headers"],
                timeout=(hook.timeout_ms or 30000) / 1000,
            )
        except httpx.HTTPError as e:
            delivery.response_status = None
            delivery.error = str(e) or e.__class__.__name__
            logger.warning(f"[WEBHOOK] Delivery {delivery.id} to {hook.url} errored: {delivery.error}")
            self._record_failed_attempt(delivery, hook, now)
            return delivery

        delivery.response_status = response.status_code
        delivery.response_body = response.text[:RESPONSE_BODY_LIMIT]

        if response.is_success:
            delivery.status = DeliveryStatus.SENT.value
            delivery.next_retry_at = None
            delivery.error = None
            hook.failure_count = 0
        else:
            delivery.error = f"HTTP {response.status_code}"
            logger.warning(f"[WEBHOOK] Delivery {delivery.id} to {hook.url} got HTTP {response.status_code}")
            self._record_failed_attempt(delivery, hook, now)
        return delivery

    def _record_failed_attempt(self, delivery: WebhookDeliveryDB, hook: WebhookDB, now: datetime) -> None:
        next_retry = calculate_next_retry(delivery.attempts, hook.retry_strategy, hook.max_retries, now)
        delivery.next_retry_at = next_retry
        if next_retry is not None:
            delivery.status = DeliveryStatus.RETRYING.value
            return

        delivery.status = DeliveryStatus.FAILED.value
        hook.failure_count = (hook.failure_count or 0) + 1
        if hook.failure_count >= WEBHOOK_MAX_CONSECUTIVE_FAILURES and hook.is_active:
            hook.is_active = False
            hook.disabled_at = now
            logger.error(
                f"[WEBHOOK] Disabled webhook {hook.id} ({hook.url}) after {hook.failure_count} failed deliveries"
            )
