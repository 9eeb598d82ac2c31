"""
Webhook subscriptions owned by one org.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...errors import ValidationFailedError
from ...models.db_models import RetryStrategy, WebhookDB, WebhookDeliveryDB
from ..tenancy import TenantScope, apply_changes
from .delivery import WEBHOOK_EVENTS, WebhookService, generate_webhook_secret

logger = logging.getLogger(__name__)

MAX_RETRIES_LIMIT = 10
TIMEOUT_MS_RANGE = (1000, 60000)
# Nullable in the table, but the sender needs a value for each
REQUIRED_SETTINGS = ("url", "events", "is_active", "retry_strategy", "max_retries", "timeout_ms")


def validate_events(events: List[str]) -> List[str]:
    if not events:
        raise ValidationFailedError("At least one event is required")
    unknown = sorted(set(events) - set(WEBHOOK_EVENTS))
    if unknown:
        raise ValidationFailedError(
            f"Unknown webhook events: {', '.join(unknown)}",
            extra={"allowed": list(WEBHOOK_EVENTS)},
        )
    # keep caller order, drop repeats
    return list(dict.fromkeys(events))


def _validate_settings(data: Dict[str, Any]) -> None:
    for field in REQUIRED_SETTINGS:
        if field in data and data[field] is None:
            raise ValidationFailedError(f"{field} cannot be null", extra={"field": field})
    url = data.get("url")
    if url is not None and not url.startswith(("http://", "https://")):
        raise ValidationFailedError("Webhook URL must start with http:// or https://")
    strategy = data.get("retry_strategy")
    if strategy is not None and strategy not in {s.value for s in RetryStrategy}:
        raise ValidationFailedError(f"Unknown retry strategy '{strategy}'")
    max_retries = data.get("max_retries")
    if max_retries is not None and not 0 <= max_retries <= MAX_RETRIES_LIMIT:
        raise ValidationFailedError(f"max_retries must be between 0 and {MAX_RETRIES_LIMIT}")
    timeout_ms = data.get("timeout_ms")
    if timeout_ms is not None and not TIMEOUT_MS_RANGE[0] <= timeout_ms <= TIMEOUT_MS_RANGE[1]:
        raise ValidationFailedError("timeout_ms must be between 1000 and 60000")


class WebhookRegistry:
    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id
        self.scope = TenantScope(db_session, org_id)

    def list(self) -> List[WebhookDB]:
        return self.scope.query(WebhookDB).order_by(WebhookDB.created_at.desc()).all()

    def get(self, webhook_id: str) -> WebhookDB:
        return self.scope.get_or_404(WebhookDB, webhook_id, "Webhook")

    def create(self, data: Dict[str, Any]) -> WebhookDB:
        data = dict(data)
        _validate_settings(data)
        data["events"] = validate_events(data.get("events") or [])
        data.setdefault("retry_strategy", RetryStrategy.EXPONENTIAL.value)

        hook = self.scope.add(WebhookDB(
            secret=generate_webhook_secret(),
            is_active=True,
            failure_count=0,
            **data,
        ))
        self.db.commit()
        self.db.refresh(hook)
        logger.info(f"[WEBHOOK] Registered {hook.url} for org {self.org_id}")
        return hook

    def update(self, webhook_id: str, changes: Dict[str, Any]) -> WebhookDB:
        hook = self.get(webhook_id)
        changes = dict(changes)
        _validate_settings(changes)
        if "events" in changes:
            changes["events"] = validate_events(changes["events"])

        changed = apply_changes(hook, changes)
        # Re-enabling gives the hook a clean slate
        if changed.get("is_active") == (False, True):
            hook.failure_count = 0
            hook.disabled_at = None
        self.db.commit()
        self.db.refresh(hook)
        return hook

    def rotate_secret(self, webhook_id: str) -> WebhookDB:
        hook = self.get(webhook_id)
        hook.secret = generate_webhook_secret()
        self.db.commit()
        self.db.refresh(hook)
        return hook

    def delete(self, webhook_id: str) -> None:
        self.scope.delete(self.get(webhook_id))
        self.db.commit()

    def deliveries(
        self,
        webhook_id: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        self.get(webhook_id)
        query = self.scope.query(WebhookDeliveryDB).filter(WebhookDeliveryDB.webhook_id == webhook_id)
        if status:
            query = query.filter(WebhookDeliveryDB.status == status)
        return TenantScope.paginate(query.order_by(WebhookDeliveryDB.created_at.desc()), limit, offset)

    def send_test(self, webhook_id: str) -> WebhookDeliveryDB:
        """Queue a ``webhook.test`` delivery; the scheduler sends it."""
        hook = self.get(webhook_id)
        delivery = WebhookService(self.db).queue_test(hook)
        self.db.commit()
        self.db.refresh(delivery)
        return delivery
