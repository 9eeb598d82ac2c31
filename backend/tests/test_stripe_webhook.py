"""
Tests for inbound Stripe webhooks.

Test Coverage:
1. Signature checks (missing header, bad signature, unconfigured secret)
2. Idempotency - a redelivered event id is acknowledged but not applied
3. Subscription lifecycle updates the org and the seat mirror
4. Payment failure marks the org past_due
5. Handler failures roll back and return 500
6. Checkout welcome email, upcoming-invoice trial reminder, paid-invoice renewal
"""
import hashlib
import hmac
import json
import time
from datetime import datetime
from unittest.mock import patch
from uuid import uuid4

import pytest

from stormdesk import config
from stormdesk.models.db_models import OrgDB, StripeEventDB, SubscriptionDB, WebhookDeliveryDB
from stormdesk.services.billing import StripeWebhookProcessor
from stormdesk.services.billing.stripe_events import days_until, map_subscription_status

SECRET = "whsec_test_secret"


def sign(payload: str, secret: str = SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = None) -> str:
    return json.dumps({
        "id": event_id or f"evt_{uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def post_event(client, payload: str, signature: str = None):
    headers = {"Content-Type": "application/json"}
    if signature is not False:
        headers["Stripe-Signature"] = signature or sign(payload)
    return client.post("/webhooks/stripe", content=payload, headers=headers)


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", SECRET)


@pytest.fixture
def billed_org(org, db_session):
    record = db_session.query(OrgDB).filter(OrgDB.id == org["org_id"]).first()
    record.stripe_customer_id = "cus_test123"
    record.stripe_subscription_id = "sub_test123"
    db_session.commit()
    return record


# =============================================================================
# TEST: SIGNATURE VERIFICATION
# =============================================================================

class TestSignatureVerification:

    def test_missing_signature_rejected(self, client):
        response = post_event(client, make_event("invoice.paid", {}), signature=False)
        assert response.status_code == 400
        assert response.json()["detail"] == "No signature"

    def test_invalid_signature_rejected(self, client, db_session):
        payload = make_event("customer.subscription.updated", {"id": "sub_1"})
        response = post_event(client, payload, signature=sign(payload, secret="whsec_wrong"))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"
        # Nothing recorded for unverified events
        assert db_session.query(StripeEventDB).count() == 0

    def test_tampered_body_rejected(self, client):
        payload = make_event("customer.subscription.updated", {"id": "sub_1"})
        signature = sign(payload)
        response = post_event(client, payload.replace("sub_1", "sub_2"), signature=signature)
        assert response.status_code == 400

    def test_stale_timestamp_rejected(self, client):
        payload = make_event("customer.subscription.updated", {"id": "sub_1"})
        signature = sign(payload, timestamp=int(time.time()) - 3600)
        response = post_event(client, payload, signature=signature)
        assert response.status_code == 400

    def test_unconfigured_secret_returns_500(self, client, monkeypatch):
        monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "")
        payload = make_event("customer.subscription.updated", {"id": "sub_1"})
        response = post_event(client, payload)
        assert response.status_code == 500
        assert response.json()["detail"] == "Webhook secret not configured"


# =============================================================================
# TEST: IDEMPOTENCY
# =============================================================================

class TestIdempotency:

    def test_unhandled_event_is_acknowledged(self, client):
        response = post_event(client, make_event("charge.refunded", {"id": "ch_1"}))
        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": True, "handled": False}

    def test_duplicate_event_not_processed_twice(self, client, billed_org, db_session):
        payload = make_event("invoice.payment_failed", {
            "id": "in_1",
            "subscription": "sub_test123",
            "customer_email": "billing@example.com",
            "amount_due": 16000,
        }, event_id="evt_duplicate")

        first = post_event(client, payload)
        assert first.status_code == 200
        assert first.json()["processed"] is True

        second = post_event(client, payload)
        assert second.status_code == 200
        assert second.json() == {"received": True, "processed": False}
        assert db_session.query(StripeEventDB).filter(StripeEventDB.id == "evt_duplicate").count() == 1

    def test_record_event_returns_false_for_seen_id(self, db_session):
        processor = StripeWebhookProcessor(db_session, webhook_secret=SECRET)
        event = {"id": "evt_seen", "type": "invoice.paid"}
        assert processor.record_event(event) is True
        assert processor.record_event(event) is False

    def test_handler_failure_returns_500(self, client, billed_org, db_session):
        payload = make_event("customer.subscription.updated", {
            "id": "sub_test123", "customer": "cus_test123", "status": "active",
        }, event_id="evt_boom")

        with patch.object(StripeWebhookProcessor, "handle", side_effect=RuntimeError("boom")):
            response = post_event(client, payload)

        assert response.status_code == 500
        assert response.json()["detail"] == "Webhook handler failed"
        # The event id stays recorded, so Stripe's retry is acknowledged only
        retry = post_event(client, payload)
        assert retry.json()["processed"] is False


# =============================================================================
# TEST: EVENT HANDLERS
# =============================================================================

class TestSubscriptionEvents:

    def test_subscription_updated_syncs_org_and_seats(self, client, billed_org, db_session):
        period_end = int(time.time()) + 30 * 86400
        payload = make_event("customer.subscription.updated", {
            "id": "sub_new456",
            "customer": "cus_test123",
            "status": "active",
            "current_period_end": period_end,
            "items": {"data": [{
                "id": "si_1",
                "quantity": 4,
                "price": {"metadata": {"plan_key": "team"}},
            }]},
        })

        response = post_event(client, payload)
        assert response.status_code == 200
        assert response.json()["handled"] is True

        db_session.refresh(billed_org)
        assert billed_org.subscription_status == "active"
        assert billed_org.stripe_subscription_id == "sub_new456"
        assert billed_org.plan_key == "team"

        record = db_session.query(SubscriptionDB).filter(SubscriptionDB.org_id == billed_org.id).first()
        assert record is not None
        assert record.seat_count == 4
        assert record.stripe_subscription_item_id == "si_1"
        assert record.current_period_end is not None

    def test_subscription_for_unknown_customer_is_ignored(self, client, billed_org, db_session):
        payload = make_event("customer.subscription.updated", {
            "id": "sub_x", "customer": "cus_unknown", "status": "active",
        })
        response = post_event(client, payload)
        assert response.status_code == 200
        db_session.refresh(billed_org)
        assert billed_org.subscription_status == "trialing"

    def test_subscription_deleted_cancels_org(self, client, billed_org, db_session):
        payload = make_event("customer.subscription.deleted", {"id": "sub_test123", "customer": "cus_test123"})
        response = post_event(client, payload)
        assert response.status_code == 200
        db_session.refresh(billed_org)
        assert billed_org.subscription_status == "canceled"

    def test_payment_failed_marks_org_past_due(self, client, billed_org, db_session):
        payload = make_event("invoice.payment_failed", {
            "id": "in_2",
            "subscription": "sub_test123",
            "customer_email": "billing@example.com",
            "amount_due": 24000,
        })
        with patch("stormdesk.services.billing.stripe_events.safe_send_email") as mock_send:
            response = post_event(client, payload)

        assert response.status_code == 200
        db_session.refresh(billed_org)
        assert billed_org.subscription_status == "past_due"
        mock_send.assert_called_once()
        assert mock_send.call_args.args[0] == "billing@example.com"
        assert "$240.00" in mock_send.call_args.kwargs["html"]

    def test_trial_will_end_emails_org_admin(self, client, billed_org, db_session):
        payload = make_event("customer.subscription.trial_will_end", {
            "id": "sub_test123",
            "customer": "cus_test123",
            "trial_end": int(time.time()) + 3 * 86400,
        })
        with patch("stormdesk.services.billing.stripe_events.safe_send_email") as mock_send:
            response = post_event(client, payload)

        assert response.status_code == 200
        mock_send.assert_called_once()
        # Org contact email is the registering admin
        assert mock_send.call_args.args[0] == billed_org.email

    def test_resubscribe_moves_mirror_to_new_subscription(self, client, billed_org, db_session):
        def subscription(sub_id, status="active"):
            return {
                "id": sub_id, "customer": "cus_test123", "status": status,
                "items": {"data": [{"id": f"si_{sub_id}", "quantity": 2}]},
            }

        post_event(client, make_event("customer.subscription.created", subscription("sub_old")))
        post_event(client, make_event("customer.subscription.deleted", subscription("sub_old", "canceled")))
        response = post_event(client, make_event("customer.subscription.created", subscription("sub_new")))
        assert response.status_code == 200

        records = db_session.query(SubscriptionDB).filter(SubscriptionDB.org_id == billed_org.id).all()
        assert len(records) == 1
        db_session.refresh(records[0])
        assert records[0].id == "sub_new"
        assert records[0].status == "active"
        assert records[0].stripe_subscription_item_id == "si_sub_new"

        # Renewals for the new subscription find the mirror
        period_end = int(time.time()) + 30 * 86400
        post_event(client, make_event("invoice.payment_succeeded", {
            "id": "in_renew", "subscription": "sub_new", "customer": "cus_test123", "amount_paid": 16000,
            "lines": {"data": [{"period": {"end": period_end}}]},
        }))
        db_session.refresh(records[0])
        assert records[0].current_period_end == datetime.utcfromtimestamp(period_end)


class TestCheckoutAndInvoiceEvents:

    def test_checkout_completed_sends_branded_welcome(self, client, billed_org):
        payload = make_event("checkout.session.completed", {
            "id": "cs_1",
            "customer": "cus_test123",
            "customer_details": {"email": "owner@acme.example.com"},
        })
        with patch("stormdesk.services.billing.stripe_events.safe_send_email") as mock_send:
            response = post_event(client, payload)

        assert response.status_code == 200
        mock_send.assert_called_once()
        assert mock_send.call_args.args[0] == "owner@acme.example.com"
        assert mock_send.call_args.kwargs["subject"] == "Welcome to Acme Roofing!"
        assert "Hi owner," in mock_send.call_args.kwargs["html"]

    def test_checkout_without_email_sends_nothing(self, client, billed_org):
        payload = make_event("checkout.session.completed", {"id": "cs_2", "customer": "cus_test123"})
        with patch("stormdesk.services.billing.stripe_events.safe_send_email") as mock_send:
            response = post_event(client, payload)
        assert response.status_code == 200
        mock_send.assert_not_called()

    def test_invoice_upcoming_draft_defaults_to_one_day(self, client, billed_org):
        payload = make_event("invoice.upcoming", {
            "id": "in_up1", "status": "draft", "subscription": "sub_test123",
            "customer_email": "billing@example.com",
        })
        with patch("stormdesk.services.billing.stripe_events.safe_send_email") as mock_send:
            response = post_event(client, payload)

        assert response.status_code == 200
        mock_send.assert_called_once()
        assert mock_send.call_args.args[0] == "billing@example.com"
        assert mock_send.call_args.kwargs["subject"] == "Your trial ends in 1 day"

    def test_invoice_upcoming_uses_trial_end(self, client, billed_org):
        payload = make_event("invoice.upcoming", {
            "id": "in_up2", "status": "draft", "subscription": "sub_test123",
            "customer_email": "billing@example.com",
        })
        trial_end = int(time.time()) + 5 * 86400 - 60
        with patch.object(StripeWebhookProcessor, "fetch_subscription", return_value={"trial_end": trial_end}), \
                patch("stormdesk.services.billing.stripe_events.safe_send_email") as mock_send:
            response = post_event(client, payload)

        assert response.status_code == 200
        assert mock_send.call_args.kwargs["subject"] == "Your trial ends in 5 days"

    def test_invoice_upcoming_not_draft_is_ignored(self, client, billed_org):
        payload = make_event("invoice.upcoming", {
            "id": "in_up3", "status": "open", "subscription": "sub_test123",
            "customer_email": "billing@example.com",
        })
        with patch("stormdesk.services.billing.stripe_events.safe_send_email") as mock_send:
            response = post_event(client, payload)
        assert response.status_code == 200
        mock_send.assert_not_called()

    def test_payment_succeeded_refreshes_period_and_triggers_webhook(self, client, billed_org, db_session, org):
        db_session.add(SubscriptionDB(
            id="sub_test123", org_id=billed_org.id, status="past_due", seat_count=2,
        ))
        db_session.commit()
        client.post("/webhooks", json={
            "url": "https://accounting.example.com/in", "events": ["invoice.paid"],
        }, headers=org["headers"])

        period_end = int(time.time()) + 30 * 86400
        payload = make_event("invoice.payment_succeeded", {
            "id": "in_paid", "subscription": "sub_test123", "customer": "cus_test123",
            "amount_paid": 16000, "currency": "usd",
            "lines": {"data": [{"period": {"end": period_end}}]},
        })
        response = post_event(client, payload)
        assert response.status_code == 200

        record = db_session.query(SubscriptionDB).filter(SubscriptionDB.id == "sub_test123").one()
        db_session.refresh(record)
        assert record.status == "active"
        assert record.current_period_end == datetime.utcfromtimestamp(period_end)

        delivery = db_session.query(WebhookDeliveryDB).filter(WebhookDeliveryDB.event == "invoice.paid").one()
        assert delivery.org_id == billed_org.id
        assert delivery.payload == {
            "invoice_id": "in_paid", "amount_paid": 160.0, "currency": "usd", "subscription_id": "sub_test123",
        }

    def test_payment_succeeded_syncs_seats_from_stripe(self, client, billed_org, db_session):
        db_session.add(SubscriptionDB(id="sub_test123", org_id=billed_org.id, status="active", seat_count=2))
        db_session.commit()

        period_end = int(time.time()) + 30 * 86400
        live = {"status": "active", "items": {"data": [{"quantity": 6, "current_period_end": period_end}]}}
        payload = make_event("invoice.payment_succeeded", {"id": "in_seats", "subscription": "sub_test123"})
        with patch.object(StripeWebhookProcessor, "fetch_subscription", return_value=live):
            post_event(client, payload)

        record = db_session.query(SubscriptionDB).filter(SubscriptionDB.id == "sub_test123").one()
        db_session.refresh(record)
        assert record.seat_count == 6
        assert record.current_period_end == datetime.utcfromtimestamp(period_end)

    def test_handlers_run_off_the_event_loop(self, client, billed_org):
        calls = []

        async def recording_threadpool(func, *args):
            calls.append(func.__name__)
            return func(*args)

        payload = make_event("checkout.session.completed", {"id": "cs_3", "customer": "cus_test123"})
        with patch("stormdesk.routers.billing.run_in_threadpool", side_effect=recording_threadpool):
            response = post_event(client, payload)
        assert response.status_code == 200
        assert calls == ["handle"]

    def test_billing_overview_reads_seats_from_subscription(self, client, org, billed_org, add_member):
        add_member(billed_org.id, "member")
        post_event(client, make_event("customer.subscription.updated", {
            "id": "sub_test123", "customer": "cus_test123", "status": "active",
            "items": {"data": [{"id": "si_1", "quantity": 5}]},
        }))

        billing = client.get("/billing", headers=org["headers"]).json()
        assert billing["seat_count"] == 5
        assert billing["seats_used"] == 2
        assert billing["seats_available"] == 3


class TestHelpers:

    def test_status_map(self):
        assert map_subscription_status("unpaid") == "canceled"
        assert map_subscription_status("past_due") == "past_due"
        assert map_subscription_status("something_new") == "something_new"

    def test_days_until_rounds_up_and_floors_at_one(self):
        now = 1_700_000_000
        assert days_until(now + 2 * 86400 + 60, now) == 3
        assert days_until(now - 86400, now) == 1
        assert days_until(None, now) == 1
