"""
Seat billing overview for the org's billing page.
"""
from typing import Any, Dict

from sqlalchemy.orm import Session

from ...config import DEFAULT_PRICE_PER_SEAT
from ...errors import NotFoundError
from ...models.db_models import MembershipDB, OrgDB, SubscriptionDB


def billing_overview(db: Session, org_id: str) -> Dict[str, Any]:
    org = db.query(OrgDB).filter(OrgDB.id == org_id).first()
    if org is None:
        raise NotFoundError("Organization not found")

    members = db.query(MembershipDB).filter(MembershipDB.org_id == org_id).count()
    sub = db.query(SubscriptionDB).filter(SubscriptionDB.org_id == org_id).first()

    seat_count = sub.seat_count if sub else 1
    price_per_seat = sub.price_per_seat if sub else DEFAULT_PRICE_PER_SEAT

    return {
        "plan_key": org.plan_key,
        "subscription_status": org.subscription_status,
        "stripe_customer_id": org.stripe_customer_id,
        "stripe_subscription_id": org.stripe_subscription_id,
        "seat_count": seat_count,
        "seats_used": members,
        "seats_available": max(seat_count - members, 0),
        "price_per_seat": price_per_seat / 100,
        "monthly_total": seat_count * price_per_seat / 100,
        "current_period_end": sub.current_period_end.isoformat() if sub and sub.current_period_end else None,
    }
