"""
StormDesk - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage.

Every tenant-owned table carries an ``org_id`` column; access to those
tables goes through ``services.tenancy.TenantScope``.
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Date, Text, JSON, Boolean,
    ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class MemberRole(str, Enum):
    """Team roles, highest first."""
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"
    VIEWER = "viewer"


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


class ClaimStatus(str, Enum):
    NEW = "new"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    FILED = "filed"
    ADJUSTER_MEETING = "adjuster_meeting"
    APPROVED = "approved"
    DENIED = "denied"
    SUPPLEMENT = "supplement"
    IN_PRODUCTION = "in_production"
    COMPLETED = "completed"
    CLOSED = "closed"


class LeadStage(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EstimateStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"


class DeliveryStatus(str, Enum):
    """Outbound webhook delivery states."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    RETRYING = "retrying"


class RetryStrategy(str, Enum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


class ConnectionStatus(str, Enum):
    """Trades network connection states."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class DepreciationStatus(str, Enum):
    """Recoverable depreciation lifecycle."""
    CALCULATED = "calculated"
    INVOICED = "invoiced"
    SUBMITTED = "submitted"
    RECOVERED = "recovered"
    DENIED = "denied"


class DocumentType(str, Enum):
    CLAIM_SUMMARY = "claim_summary"
    SUPPLEMENT_REQUEST = "supplement_request"
    SCOPE_OF_WORK = "scope_of_work"
    DEPRECIATION_LETTER = "depreciation_letter"
    HOMEOWNER_UPDATE = "homeowner_update"


# =============================================================================
# TENANTS, USERS, MEMBERSHIP
# =============================================================================

class OrgDB(Base):
    """A contracting company (tenant)."""
    __tablename__ = "orgs"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)

    # Branding - used on generated documents and emails
    logo_url = Column(String(500), nullable=True)
    primary_color = Column(String(7), default="#0A1A2F")
    accent_color = Column(String(7), default="#117CFF")
    tagline = Column(String(255), nullable=True)
    license_number = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(255), nullable=True)

    # Billing
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    subscription_status = Column(String(30), default=SubscriptionStatus.TRIALING.value)
    plan_key = Column(String(50), default="solo")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship("MembershipDB", back_populates="org", cascade="all, delete-orphan")
    subscription = relationship("SubscriptionDB", back_populates="org", uselist=False, cascade="all, delete-orphan")


class UserDB(Base):
    """User account."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship("MembershipDB", back_populates="user", cascade="all, delete-orphan")


class MembershipDB(Base):
    """User <-> org link carrying the team role."""
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("user_id", "org_id", name="uq_membership_user_org"),)

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=MemberRole.MEMBER.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("UserDB", back_populates="memberships")
    org = relationship("OrgDB", back_populates="memberships")


# =============================================================================
# CRM: PROPERTIES, CONTACTS, LEADS
# =============================================================================

class PropertyDB(Base):
    """A structure we inspect or repair."""
    __tablename__ = "properties"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=True)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)  # 2-letter code - drives the code checker
    zip_code = Column(String(10), nullable=True)

    roof_type = Column(String(100), nullable=True)
    stories = Column(Integer, nullable=True)
    square_footage = Column(Integer, nullable=True)
    year_built = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ContactDB(Base):
    """Client / homeowner."""
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(30), nullable=True)
    company = Column(String(255), nullable=True)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)
    zip_code = Column(String(10), nullable=True)
    slug = Column(String(255), nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LeadDB(Base):
    """Sales pipeline entry."""
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    source = Column(String(100), nullable=True)
    stage = Column(String(30), default=LeadStage.NEW.value, index=True)
    temperature = Column(String(20), default="warm")
    value = Column(Float, nullable=True)
    probability = Column(Integer, nullable=True)
    urgency = Column(String(20), nullable=True)  # low, medium, high, urgent
    budget = Column(Integer, nullable=True)  # cents
    work_type = Column(String(100), nullable=True)
    job_type = Column(String(100), nullable=True)
    job_category = Column(String(30), default="lead")
    warmth_score = Column(Integer, default=50)

    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    assigned_to = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    follow_up_date = Column(DateTime, nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)

    converted_job_id = Column(String(36), nullable=True)
    converted_claim_id = Column(String(36), nullable=True)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contact = relationship("ContactDB")


# =============================================================================
# CLAIMS
# =============================================================================

class ClaimDB(Base):
    """Insurance claim for a property."""
    __tablename__ = "claims"
    __table_args__ = (UniqueConstraint("org_id", "claim_number", name="uq_claim_number_per_org"),)

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    claim_number = Column(String(100), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    carrier = Column(String(255), nullable=True)
    policy_number = Column(String(100), nullable=True)
    damage_type = Column(String(100), nullable=True)  # hail, wind, water, fire...
    date_of_loss = Column(Date, nullable=True)
    status = Column(String(30), default=ClaimStatus.NEW.value, index=True)
    lifecycle_stage = Column(String(50), nullable=True)
    priority = Column(String(20), default="medium")

    insured_name = Column(String(255), nullable=True)
    homeowner_email = Column(String(255), nullable=True)
    adjuster_name = Column(String(255), nullable=True)
    adjuster_phone = Column(String(30), nullable=True)
    adjuster_email = Column(String(255), nullable=True)

    estimated_value = Column(Float, nullable=True)
    approved_value = Column(Float, nullable=True)
    deductible = Column(Float, nullable=True)

    property_id = Column(String(36), ForeignKey("properties.id", ondelete="SET NULL"), nullable=True)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("PropertyDB")
    contact = relationship("ContactDB")
    activities = relationship(
        "ClaimActivityDB", back_populates="claim", cascade="all, delete-orphan",
        order_by="ClaimActivityDB.created_at.desc()",
    )


class ClaimActivityDB(Base):
    """Claim timeline entry."""
    __tablename__ = "claim_activities"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    claim_id = Column(String(36), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=True)

    event_type = Column(String(50), nullable=False)  # created, updated, note, status_change, document
    message = Column(Text, nullable=False)
    event_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    claim = relationship("ClaimDB", back_populates="activities")


class EstimateDB(Base):
    """Line-item estimate for a claim or a retail lead."""
    __tablename__ = "estimates"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    claim_id = Column(String(36), ForeignKey("claims.id", ondelete="SET NULL"), nullable=True, index=True)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    status = Column(String(20), default=EstimateStatus.DRAFT.value)

    # Format: [{"description": "...", "quantity": 32.5, "unit": "SQ", "unit_price": 245.0, "category": "roofing"}]
    line_items = Column(JSON, default=list)
    overhead_pct = Column(Float, default=0.0)
    profit_pct = Column(Float, default=0.0)
    tax_rate = Column(Float, default=0.0)

    # Computed on every write
    subtotal = Column(Float, default=0.0)
    overhead_amount = Column(Float, default=0.0)
    profit_amount = Column(Float, default=0.0)
    tax_amount = Column(Float, default=0.0)
    total = Column(Float, default=0.0)

    notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DepreciationEventDB(Base):
    """Recoverable depreciation lifecycle entry for a claim."""
    __tablename__ = "depreciation_events"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    claim_id = Column(String(36), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), nullable=False)
    rcv = Column(Float, nullable=True)  # replacement cost value
    acv = Column(Float, nullable=True)  # actual cash value
    depreciation_amount = Column(Float, nullable=True)
    rate = Column(Float, nullable=True)
    years = Column(Float, nullable=True)
    note = Column(Text, nullable=True)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AIDocumentDB(Base):
    """AI-generated document."""
    __tablename__ = "ai_documents"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    claim_id = Column(String(36), ForeignKey("claims.id", ondelete="SET NULL"), nullable=True, index=True)

    document_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    model = Column(String(100), nullable=True)
    word_count = Column(Integer, default=0)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# SCHEDULING & NOTIFICATIONS
# =============================================================================

class JobDB(Base):
    """Scheduled crew work."""
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    job_type = Column(String(50), default="retail")  # retail, insurance, repair, inspection
    status = Column(String(20), default=JobStatus.SCHEDULED.value, index=True)
    crew_name = Column(String(100), nullable=True, index=True)
    scheduled_start = Column(DateTime, nullable=True, index=True)
    scheduled_end = Column(DateTime, nullable=True)
    address = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)

    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="SET NULL"), nullable=True)
    claim_id = Column(String(36), ForeignKey("claims.id", ondelete="SET NULL"), nullable=True)

    completed_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationDB(Base):
    """In-app notification for one user."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    kind = Column(String(50), default="info")
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    link = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    read_at = Column(DateTime, nullable=True)


# =============================================================================
# INTEGRATIONS: OUTBOUND WEBHOOKS, STRIPE
# =============================================================================

class WebhookDB(Base):
    """Outbound webhook registered by an integrator."""
    __tablename__ = "webhooks"

    id = Column(String(36), primary_key=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    url = Column(String(1000), nullable=False)
    description = Column(String(255), nullable=True)
    events = Column(JSON, nullable=False, default=list)  # ["claim.created", ...]
    secret = Column(String(128), nullable=False)
    is_active = Column(Boolean, default=True)
    retry_strategy = Column(String(20), default=RetryStrategy.EXPONENTIAL.value)
    max_retries = Column(Integer, default=3)
    timeout_ms = Column(Integer, default=30000)
    headers = Column(JSON, nullable=True)

    failure_count = Column(Integer, default=0)
    disabled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    deliveries = relationship("WebhookDeliveryDB", back_populates="webhook", cascade="all, delete-orphan")


class WebhookDeliveryDB(Base):
    """One attempt-tracked delivery of an event to a webhook."""
    __tablename__ = "webhook_deliveries"

    id = Column(String(36), primary_key=True)
    webhook_id = Column(String(36), ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    event = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), default=DeliveryStatus.PENDING.value, index=True)
    attempts = Column(Integer, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    next_retry_at = Column(DateTime, nullable=True, index=True)

    response_status = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    webhook = relationship("WebhookDB", back_populates="deliveries")


class StripeEventDB(Base):
    """Seen Stripe event ids. The primary key makes processing idempotent."""
    __tablename__ = "stripe_events"

    id = Column(String(255), primary_key=True)  # Stripe event id (evt_...)
    event_type = Column(String(100), nullable=False)
    received_at = Column(DateTime, default=datetime.utcnow)


class SubscriptionDB(Base):
    """Seat-billing mirror of the org's Stripe subscription."""
    __tablename__ = "subscriptions"

    id = Column(String(255), primary_key=True)  # Stripe subscription id
    org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, unique=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_item_id = Column(String(255), nullable=True)
    seat_count = Column(Integer, default=1)
    price_per_seat = Column(Integer, default=8000)  # cents
    status = Column(String(30), nullable=False)
    current_period_end = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    org = relationship("OrgDB", back_populates="subscription")


# =============================================================================
# TRADES NETWORK
# =============================================================================

class TradeConnectionDB(Base):
    """
    Connection between two contractor orgs (e.g. a roofer and a gutter sub).
    Spans two tenants, so it is filtered explicitly on both org columns.
    """
    __tablename__ = "trade_connections"

    id = Column(String(36), primary_key=True)
    requester_org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    target_org_id = Column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    trade = Column(String(50), nullable=False)
    message = Column(Text, nullable=True)
    status = Column(String(20), default=ConnectionStatus.PENDING.value)

    requested_by = Column(String(36), nullable=True)
    responded_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    responded_at = Column(DateTime, nullable=True)

    requester_org = relationship("OrgDB", foreign_keys=[requester_org_id])
    target_org = relationship("OrgDB", foreign_keys=[target_org_id])


# Tables isolated per tenant by org_id
TENANT_MODELS = (
    PropertyDB, ContactDB, LeadDB, ClaimDB, ClaimActivityDB, EstimateDB,
    DepreciationEventDB, AIDocumentDB, JobDB, NotificationDB, WebhookDB,
    WebhookDeliveryDB,
)
