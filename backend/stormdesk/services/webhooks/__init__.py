"""
StormDesk - Outbound Webhooks
"""
from .delivery import (
    WEBHOOK_EVENTS,
    TEST_EVENT,
    WebhookService,
    calculate_next_retry,
    generate_webhook_secret,
    serialize_payload,
    sign_payload,
    verify_signature,
)
from .registry import WebhookRegistry, validate_events

__all__ = [
    "WEBHOOK_EVENTS",
    "TEST_EVENT",
    "WebhookService",
    "WebhookRegistry",
    "calculate_next_retry",
    "generate_webhook_secret",
    "serialize_payload",
    "sign_payload",
    "verify_signature",
    "validate_events",
]
