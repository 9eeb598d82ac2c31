"""
StormDesk - Billing
"""
from .seats import billing_overview
from .stripe_events import (
    STATUS_MAP,
    StripeWebhookProcessor,
    days_until,
    map_subscription_status,
)

__all__ = [
    "billing_overview",
    "STATUS_MAP",
    "StripeWebhookProcessor",
    "days_until",
    "map_subscription_status",
]
