"""
Leads Service

Sales pipeline. New leads get a warmth score from urgency, budget and the
kind of work; converted leads become a scheduled job or an insurance claim.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..errors import ConflictError, ValidationFailedError
from ..models.db_models import JobStatus, LeadDB, LeadStage, MembershipDB
from .claims import ClaimService
from .contacts import ContactService, PropertyService
from .scheduling import JobScheduler
from .tenancy import TenantScope, apply_changes
from .webhooks import WebhookService

logger = logging.getLogger(__name__)


BASE_WARMTH = 50
MAX_WARMTH = 100

URGENCY_POINTS = {"urgent": 30, "high": 20, "medium": 10}

# (threshold in cents, points) - first match wins
BUDGET_POINTS = (
    (5_000_000, 20),  # > $50k
    (2_500_000, 15),  # > $25k
    (1_000_000, 10),  # > $10k
)

HIGH_VALUE_WORK = ("roof replacement", "solar", "full-remodel")
HIGH_VALUE_WORK_POINTS = 10

CONVERSION_TARGETS = ("job", "claim")


def calculate_warmth_score(
    urgency: Optional[str] = None,
    budget: Optional[int] = None,
    work_type: Optional[str] = None,
) -> int:
    """Lead warmth, 0-100."""
    score = BASE_WARMTH
    score += URGENCY_POINTS.get((urgency or "").lower(), 0)

    if budget:
        for threshold, points in BUDGET_POINTS:
            if budget > threshold:
                score += points
                break

    if work_type and any(kind in work_type.lower() for kind in HIGH_VALUE_WORK):
        score += HIGH_VALUE_WORK_POINTS

    return min(MAX_WARMTH, score)


class LeadService:
    """Pipeline operations for one org."""

    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id
        self.scope = TenantScope(db_session, org_id)

    def list(
        self,
        stage: Optional[str] = None,
        source: Optional[str] = None,
        assigned_to: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        query = self.scope.query(LeadDB)
        if stage:
            query = query.filter(LeadDB.stage == stage)
        if source:
            query = query.filter(LeadDB.source == source)
        if assigned_to:
            query = query.filter(LeadDB.assigned_to == assigned_to)
        return TenantScope.paginate(query.order_by(LeadDB.created_at.desc()), limit, offset)

    def get(self, lead_id: str) -> LeadDB:
        return self.scope.get_or_404(LeadDB, lead_id, "Lead")

    def _check_assignee(self, user_id: Optional[str]) -> None:
        if not user_id:
            return
        member = self.db.query(MembershipDB).filter(
            MembershipDB.org_id == self.org_id,
            MembershipDB.user_id == user_id,
        ).first()
        if member is None:
            raise ValidationFailedError("Assigned user is not a member of this organization")

    def create(
        self,
        data: Dict[str, Any],
        user_id: Optional[str] = None,
        contact_data: Optional[Dict[str, Any]] = None,
    ) -> LeadDB:
        """
        Create a lead for an existing contact or a new one built from
        ``contact_data`` (plus a property when it carries an address).
        """
        data = dict(data)
        contacts = ContactService(self.db, self.org_id)

        if data.get("contact_id"):
            contacts.get(data["contact_id"])
        elif contact_data:
            contact = contacts.build(contact_data)
            data["contact_id"] = contact.id
            address = {k: contact_data.get(k) for k in ("street", "city", "state", "zip_code")}
            if any(address.values()):
                PropertyService(self.db, self.org_id).build(address)
        else:
            raise ValidationFailedError("contact_id or contact is required")

        data.setdefault("assigned_to", user_id)
        self._check_assignee(data.get("assigned_to"))
        data.setdefault("source", "direct")

        lead = LeadDB(
            created_by=user_id,
            warmth_score=calculate_warmth_score(data.get("urgency"), data.get("budget"), data.get("work_type")),
            **data,
        )
        self.scope.add(lead)
        self.db.flush()

        WebhookService(self.db).trigger_event(self.org_id, "lead.created", {
            "id": lead.id,
            "title": lead.title,
            "source": lead.source,
            "stage": lead.stage,
            "warmth_score": lead.warmth_score,
            "contact_id": lead.contact_id,
        })
        self.db.commit()
        self.db.refresh(lead)
        logger.info(f"Created lead {lead.id} (warmth {lead.warmth_score}) for org {self.org_id}")
        return lead

    def update(self, lead_id: str, changes: Dict[str, Any]) -> LeadDB:
        lead = self.get(lead_id)
        if "stage" in changes and changes["stage"] not in {s.value for s in LeadStage}:
            raise ValidationFailedError(f"Unknown lead stage '{changes['stage']}'")
        if changes.get("contact_id"):
            ContactService(self.db, self.org_id).get(changes["contact_id"])
        if "assigned_to" in changes:
            self._check_assignee(changes["assigned_to"])
        if "follow_up_date" in changes:
            lead.reminder_sent_at = None

        changed = apply_changes(lead, changes)
        if {"urgency", "budget", "work_type"} & set(changed):
            lead.warmth_score = calculate_warmth_score(lead.urgency, lead.budget, lead.work_type)

        self.db.commit()
        self.db.refresh(lead)
        return lead

    def delete(self, lead_id: str) -> None:
        self.scope.delete(self.get(lead_id))
        self.db.commit()

    def convert(self, lead_id: str, target: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Turn a lead into a job or a claim and mark it won."""
        if target not in CONVERSION_TARGETS:
            raise ValidationFailedError(f"Cannot convert a lead to '{target}'", extra={"allowed": list(CONVERSION_TARGETS)})

        lead = self.get(lead_id)
        if target == "job" and lead.converted_job_id:
            raise ConflictError("Lead already converted to a job")
        if target == "claim" and lead.converted_claim_id:
            raise ConflictError("Lead already converted to a claim")

        contact = lead.contact
        if target == "job":
            job = JobScheduler(self.db, self.org_id).create({
                "title": lead.title,
                "job_type": (lead.job_type or "retail").lower(),
                "status": JobStatus.SCHEDULED.value,
                "notes": lead.description,
                "lead_id": lead.id,
                "address": ", ".join(p for p in (contact.street, contact.city, contact.state) if p) if contact else None,
            }, user_id=user_id, commit=False)
            lead.converted_job_id = job.id
            result = {"target": "job", "id": job.id}
        else:
            claim = ClaimService(self.db, self.org_id).create({
                "title": lead.title,
                "description": lead.description,
                "contact_id": lead.contact_id,
                "insured_name": f"{contact.first_name} {contact.last_name}" if contact else None,
                "homeowner_email": contact.email if contact else None,
                "estimated_value": lead.value,
            }, user_id=user_id)
            lead.converted_claim_id = claim.id
            result = {"target": "claim", "id": claim.id, "claim_number": claim.claim_number}

        lead.stage = LeadStage.WON.value
        self.db.commit()
        logger.info(f"Converted lead {lead.id} to {target} {result['id']}")
        return result


def leads_due_for_follow_up(db: Session, now: Optional[datetime] = None) -> List[LeadDB]:
    """Open leads across all orgs whose follow-up date has passed and who haven't been reminded."""
    now = now or datetime.utcnow()
    closed = (LeadStage.WON.value, LeadStage.LOST.value)
    return (
        db.query(LeadDB)
        .filter(
            LeadDB.follow_up_date.isnot(None),
            LeadDB.follow_up_date <= now,
            LeadDB.reminder_sent_at.is_(None),
            LeadDB.assigned_to.isnot(None),
            LeadDB.stage.notin_(closed),
        )
        .order_by(LeadDB.follow_up_date.asc())
        .all()
    )
