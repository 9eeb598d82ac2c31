"""StormDesk - Data Models"""
from .db_models import (
    # Enums
    MemberRole, SubscriptionStatus, ClaimStatus, LeadStage, JobStatus,
    EstimateStatus, DeliveryStatus, RetryStrategy, ConnectionStatus,
    DepreciationStatus, DocumentType,
    # Tenants
    OrgDB, UserDB, MembershipDB,
    # CRM
    PropertyDB, ContactDB, LeadDB,
    # Claims
    ClaimDB, ClaimActivityDB, EstimateDB, DepreciationEventDB, AIDocumentDB,
    # Scheduling
    JobDB, NotificationDB,
    # Integrations
    WebhookDB, WebhookDeliveryDB, StripeEventDB, SubscriptionDB,
    TradeConnectionDB,
    TENANT_MODELS,
)

__all__ = [
    "MemberRole", "SubscriptionStatus", "ClaimStatus", "LeadStage", "JobStatus",
    "EstimateStatus", "DeliveryStatus", "RetryStrategy", "ConnectionStatus",
    "DepreciationStatus", "DocumentType",
    "OrgDB", "UserDB", "MembershipDB",
    "PropertyDB", "ContactDB", "LeadDB",
    "ClaimDB", "ClaimActivityDB", "EstimateDB", "DepreciationEventDB", "AIDocumentDB",
    "JobDB", "NotificationDB",
    "WebhookDB", "WebhookDeliveryDB", "StripeEventDB", "SubscriptionDB",
    "TradeConnectionDB",
    "TENANT_MODELS",
]
