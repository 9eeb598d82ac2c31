"""
StormDesk - Transactional Email
"""
from .mailer import send_email, safe_send_email
from .templates import (
    Brand,
    notification_email,
    payment_failed_email,
    trial_ending_email,
    welcome_email,
)

__all__ = [
    "send_email",
    "safe_send_email",
    "Brand",
    "notification_email",
    "payment_failed_email",
    "trial_ending_email",
    "welcome_email",
]
