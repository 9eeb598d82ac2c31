"""
Stripe Webhook Processing

Verifies inbound Stripe events, records their ids for idempotency and
applies them to orgs and the seat-billing subscription mirror.

Flow:
    verify(payload, header)  -> event dict (raises SignatureVerificationError)
    record_event(event)      -> False if this event id was already seen
    handle(event)            -> side effects (org status, emails, outbound hooks)
"""
import json
import logging
import math
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import (
    DEFAULT_PRICE_PER_SEAT,
    STRIPE_SECRET_KEY,
    STRIPE_SIGNATURE_TOLERANCE,
    STRIPE_WEBHOOK_SECRET,
)
from ...models.db_models import (
    MemberRole, MembershipDB, OrgDB, StripeEventDB, SubscriptionDB,
    SubscriptionStatus, UserDB,
)
from ..email import (
    Brand, payment_failed_email, safe_send_email, trial_ending_email, welcome_email,
)
from ..webhooks import WebhookService

logger = logging.getLogger(__name__)


# Stripe status -> org subscription_status
STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIALING.value,
    "active": SubscriptionStatus.ACTIVE.value,
    "past_due": SubscriptionStatus.PAST_DUE.value,
    "canceled": SubscriptionStatus.CANCELED.value,
    "unpaid": SubscriptionStatus.CANCELED.value,
    "incomplete": SubscriptionStatus.INCOMPLETE.value,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE_EXPIRED.value,
    "paused": SubscriptionStatus.PAUSED.value,
}

SECONDS_PER_DAY = 24 * 60 * 60


def map_subscription_status(stripe_status: str) -> str:
    return STATUS_MAP.get(stripe_status, stripe_status)


def days_until(timestamp: Optional[int], now: Optional[float] = None) -> int:
    """Whole days remaining until a unix timestamp, never less than 1."""
    if not timestamp:
        return 1
    now = time.time() if now is None else now
    return max(1, math.ceil((timestamp - now) / SECONDS_PER_DAY))


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.utcfromtimestamp(value) if value else None


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _first_item(sub: Dict[str, Any]) -> Dict[str, Any]:
    items = (sub.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period_end(sub: Dict[str, Any]) -> Optional[int]:
    # Newer API versions moved the period onto the subscription item
    return sub.get("current_period_end") or _first_item(sub).get("current_period_end")


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    sub = invoice.get("subscription")
    if sub:
        return _object_id(sub)
    details = ((invoice.get("parent") or {}).get("subscription_details") or {})
    return _object_id(details.get("subscription"))


def _name_from_email(email: str) -> str:
    return email.split("@")[0] or "there"


class StripeWebhookProcessor:
    """Applies verified Stripe events to the local billing state."""

    def __init__(
        self,
        db_session: Session,
        webhook_secret: str = STRIPE_WEBHOOK_SECRET,
        tolerance: int = STRIPE_SIGNATURE_TOLERANCE,
        now: Optional[Callable[[], float]] = None,
    ):
        self.db = db_session
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.now = now or time.time

        self.handlers: Dict[str, Callable[[Dict[str, Any], str], None]] = {
            "checkout.session.completed": self._handle_checkout_completed,
            "customer.subscription.created": self._handle_subscription_changed,
            "customer.subscription.updated": self._handle_subscription_changed,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "customer.subscription.trial_will_end": self._handle_trial_will_end,
            "invoice.upcoming": self._handle_invoice_upcoming,
            "invoice.payment_succeeded": self._handle_payment_succeeded,
            "invoice.payment_failed": self._handle_payment_failed,
        }

    # =========================================================================
    # VERIFICATION & IDEMPOTENCY
    # =========================================================================

    def verify(self, payload: bytes, signature_header: str) -> Dict[str, Any]:
        """
        Check the Stripe-Signature header against the raw body and parse it.
        Raises stripe.SignatureVerificationError on any mismatch.
        """
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        stripe.WebhookSignature.verify_header(body, signature_header, self.webhook_secret, self.tolerance)
        try:
            return json.loads(body)
        except ValueError as e:
            raise stripe.SignatureVerificationError("Payload is not valid JSON", signature_header, body) from e

    def record_event(self, event: Dict[str, Any]) -> bool:
        """
        Insert the event id. Returns False when the id is already stored.
        Other database errors propagate.
        """
        self.db.add(StripeEventDB(id=event["id"], event_type=event.get("type", "unknown")))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"[STRIPE] Skipping already processed event: {event['id']}")
            return False
        return True

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def handle(self, event: Dict[str, Any]) -> bool:
        """Apply one event. Returns False for event types we only acknowledge."""
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info(f"[STRIPE] Unhandled event type: {event_type}")
            return False

        handler(obj, event_type)
        self.db.commit()
        return True

    # =========================================================================
    # STRIPE API LOOKUPS
    # =========================================================================

    def fetch_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        if not STRIPE_SECRET_KEY:
            return None
        sub = stripe.Subscription.retrieve(subscription_id, api_key=STRIPE_SECRET_KEY)
        return sub.to_dict()

    def fetch_customer_email(self, customer_id: str) -> Optional[str]:
        if not STRIPE_SECRET_KEY:
            return None
        customer = stripe.Customer.retrieve(customer_id, api_key=STRIPE_SECRET_KEY)
        return customer.get("email")

    # =========================================================================
    # LOCAL LOOKUPS
    # =========================================================================

    def _org_for_customer(self, customer_id: Optional[str]) -> Optional[OrgDB]:
        if not customer_id:
            return None
        return self.db.query(OrgDB).filter(OrgDB.stripe_customer_id == customer_id).first()

    def _org_for_subscription(self, subscription_id: Optional[str]) -> Optional[OrgDB]:
        if not subscription_id:
            return None
        return self.db.query(OrgDB).filter(OrgDB.stripe_subscription_id == subscription_id).first()

    def _org_admin_email(self, org: OrgDB) -> Optional[str]:
        if org.email:
            return org.email
        admin = (
            self.db.query(UserDB)
            .join(MembershipDB, MembershipDB.user_id == UserDB.id)
            .filter(MembershipDB.org_id == org.id, MembershipDB.role == MemberRole.ADMIN.value)
            .order_by(MembershipDB.created_at.asc())
            .first()
        )
        return admin.email if admin else None

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _handle_checkout_completed(self, session: Dict[str, Any], event_type: str) -> None:
        email = (session.get("customer_details") or {}).get("email")
        if not email:
            logger.error(f"[STRIPE] checkout.session.completed without email (session {session.get('id')})")
            return

        org = self._org_for_customer(_object_id(session.get("customer")))
        content = welcome_email(_name_from_email(email), Brand.from_org(org))
        safe_send_email(email, **content)
        logger.info(f"[EMAIL:WELCOME] Sent to {email}")

    def _handle_subscription_changed(self, sub: Dict[str, Any], event_type: str) -> None:
        customer_id = _object_id(sub.get("customer"))
        org = self._org_for_customer(customer_id)
        if org is None:
            logger.warning(f"[STRIPE] {event_type}: no org for customer {customer_id}")
            return

        item = _first_item(sub)
        metadata = (item.get("price") or {}).get("metadata") or {}
        plan_key = metadata.get("plan_key") or metadata.get("planKey") or org.plan_key
        status = map_subscription_status(sub.get("status", ""))

        org.stripe_subscription_id = sub["id"]
        org.subscription_status = status
        org.plan_key = plan_key

        quantity = item.get("quantity") or 1
        period_end = _from_timestamp(_period_end(sub))

        record = self.db.query(SubscriptionDB).filter(SubscriptionDB.org_id == org.id).first()
        if record is None:
            record = SubscriptionDB(
                id=sub["id"],
                org_id=org.id,
                stripe_customer_id=customer_id,
                price_per_seat=DEFAULT_PRICE_PER_SEAT,
            )
            self.db.add(record)
        elif record.id != sub["id"]:
            # Re-subscribed after a cancel: the mirror follows the new subscription
            logger.info(f"[STRIPE] Org {org.id} moved from subscription {record.id} to {sub['id']}")
            record.id = sub["id"]
        record.status = sub.get("status", status)
        record.seat_count = quantity
        record.stripe_subscription_item_id = item.get("id")
        record.current_period_end = period_end

        logger.info(
            f"[STRIPE] {event_type}: org {org.id} status={status} plan={plan_key} sub={sub['id']} seats={quantity}"
        )

    def _handle_subscription_deleted(self, sub: Dict[str, Any], event_type: str) -> None:
        org = self._org_for_customer(_object_id(sub.get("customer")))
        if org is None:
            logger.warning(f"[STRIPE] {event_type}: no org for subscription {sub.get('id')}")
            return

        org.subscription_status = SubscriptionStatus.CANCELED.value
        if org.subscription is not None:
            org.subscription.status = SubscriptionStatus.CANCELED.value
        logger.info(f"[STRIPE] Canceled subscription for org {org.id}")

    def _handle_trial_will_end(self, sub: Dict[str, Any], event_type: str) -> None:
        customer = sub.get("customer")
        email = customer.get("email") if isinstance(customer, dict) else None
        org = self._org_for_customer(_object_id(customer))
        if not email and isinstance(customer, str):
            email = self.fetch_customer_email(customer)
        if not email and org is not None:
            email = self._org_admin_email(org)

        if not email:
            logger.error(f"[STRIPE] trial_will_end without email (subscription {sub.get('id')})")
            return

        days = days_until(sub.get("trial_end"), self.now())
        content = trial_ending_email(_name_from_email(email), days, Brand.from_org(org))
        safe_send_email(email, **content)
        logger.info(f"[EMAIL:TRIAL_ENDING] Sent to {email} ({days} days)")

    def _handle_invoice_upcoming(self, invoice: Dict[str, Any], event_type: str) -> None:
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id or invoice.get("status") != "draft":
            return

        email = invoice.get("customer_email")
        if not email:
            logger.error(f"[STRIPE] invoice.upcoming without customer_email (invoice {invoice.get('id')})")
            return

        days = 1
        sub = self.fetch_subscription(subscription_id)
        if sub and sub.get("trial_end"):
            days = days_until(sub["trial_end"], self.now())

        org = self._org_for_subscription(subscription_id)
        content = trial_ending_email(_name_from_email(email), days, Brand.from_org(org))
        safe_send_email(email, **content)
        logger.info(f"[EMAIL:TRIAL_ENDING] Sent to {email} ({days} days)")

    def _handle_payment_succeeded(self, invoice: Dict[str, Any], event_type: str) -> None:
        subscription_id = _invoice_subscription_id(invoice)
        record = None
        if subscription_id:
            record = self.db.query(SubscriptionDB).filter(SubscriptionDB.id == subscription_id).first()

        if record is not None:
            sub = self.fetch_subscription(subscription_id)
            if sub:
                record.status = sub.get("status", record.status)
                record.current_period_end = _from_timestamp(_period_end(sub)) or record.current_period_end
                record.seat_count = _first_item(sub).get("quantity") or record.seat_count
            else:
                # No API access: the invoice line carries the renewed period
                lines = (invoice.get("lines") or {}).get("data") or []
                period_end = ((lines[0].get("period") or {}).get("end")) if lines else None
                record.status = "active"
                record.current_period_end = _from_timestamp(period_end) or record.current_period_end
            logger.info(f"[STRIPE] Renewed subscription {subscription_id}, seats={record.seat_count}")

        org = record.org if record is not None else self._org_for_customer(_object_id(invoice.get("customer")))
        if org is not None:
            WebhookService(self.db).trigger_event(org.id, "invoice.paid", {
                "invoice_id": invoice.get("id"),
                "amount_paid": (invoice.get("amount_paid") or 0) / 100,
                "currency": invoice.get("currency"),
                "subscription_id": subscription_id,
            })
        logger.info(f"[STRIPE] Invoice {invoice.get('id')} paid")

    def _handle_payment_failed(self, invoice: Dict[str, Any], event_type: str) -> None:
        subscription_id = _invoice_subscription_id(invoice)
        org = self._org_for_subscription(subscription_id)

        email = invoice.get("customer_email")
        if email:
            amount_due = (invoice.get("amount_due") or 0) / 100
            content = payment_failed_email(_name_from_email(email), amount_due, Brand.from_org(org))
            safe_send_email(email, **content)
            logger.info(f"[EMAIL:PAYMENT_FAILED] Sent dunning email to {email}")
        else:
            logger.error(f"[STRIPE] No customer email for failed invoice {invoice.get('id')}")

        if org is not None:
            org.subscription_status = SubscriptionStatus.PAST_DUE.value
            logger.info(f"[STRIPE] Org {org.id} is past_due")
