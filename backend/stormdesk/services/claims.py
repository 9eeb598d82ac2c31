"""
Claims Service

Claim CRUD within one org. Every mutation leaves a timeline entry
(claim_activities) and queues the matching outbound webhook event.
"""
import logging
import secrets
import string
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..errors import ConflictError, ValidationFailedError
from ..models.db_models import ClaimActivityDB, ClaimDB, ClaimStatus
from .contacts import ContactService, PropertyService
from .serializers import claim_to_dict
from .tenancy import TenantScope, apply_changes
from .webhooks import WebhookService

logger = logging.getLogger(__name__)

CLAIM_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
CLAIM_NUMBER_ATTEMPTS = 5


def generate_claim_number(now: Optional[datetime] = None) -> str:
    """``CLM-YYYYMMDD-XXXX`` with a random alphanumeric suffix."""
    now = now or datetime.utcnow()
    suffix = "".join(secrets.choice(CLAIM_NUMBER_ALPHABET) for _ in range(4))
    return f"CLM-{now:%Y%m%d}-{suffix}"


class ClaimService:
    """Claims for one org."""

    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id
        self.scope = TenantScope(db_session, org_id)
        self.webhooks = WebhookService(db_session)

    # =========================================================================
    # READS
    # =========================================================================

    def list(
        self,
        status: Optional[str] = None,
        stage: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        query = self.scope.query(ClaimDB)
        if status:
            query = query.filter(ClaimDB.status == status)
        if stage:
            query = query.filter(ClaimDB.lifecycle_stage == stage)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                ClaimDB.title.ilike(term),
                ClaimDB.claim_number.ilike(term),
                ClaimDB.insured_name.ilike(term),
            ))
        return TenantScope.paginate(query.order_by(ClaimDB.created_at.desc()), limit, offset)

    def get(self, claim_ref: str) -> ClaimDB:
        """Look up by id, falling back to claim number."""
        claim = self.scope.get(ClaimDB, claim_ref)
        if claim is None:
            claim = self.scope.query(ClaimDB).filter(ClaimDB.claim_number == claim_ref).first()
        if claim is None:
            # Same message either way so ids from other orgs aren't confirmed
            return self.scope.get_or_404(ClaimDB, claim_ref, "Claim")
        return claim

    def activities(self, claim_ref: str) -> List[ClaimActivityDB]:
        return list(self.get(claim_ref).activities)

    # =========================================================================
    # WRITES
    # =========================================================================

    def _unique_claim_number(self) -> str:
        for _ in range(CLAIM_NUMBER_ATTEMPTS):
            number = generate_claim_number()
            exists = self.scope.query(ClaimDB).filter(ClaimDB.claim_number == number).first()
            if not exists:
                return number
        raise ConflictError("Could not allocate a unique claim number")

    def create(
        self,
        data: Dict[str, Any],
        user_id: Optional[str] = None,
        property_data: Optional[Dict[str, Any]] = None,
        contact_data: Optional[Dict[str, Any]] = None,
    ) -> ClaimDB:
        """Create a claim, optionally with a new property and contact inline."""
        data = dict(data)
        if data.get("claim_number"):
            duplicate = self.scope.query(ClaimDB).filter(ClaimDB.claim_number == data["claim_number"]).first()
            if duplicate:
                raise ConflictError(f"Claim number {data['claim_number']} already exists")
        else:
            data["claim_number"] = self._unique_claim_number()

        if data.get("property_id"):
            PropertyService(self.db, self.org_id).get(data["property_id"])
        elif property_data:
            data["property_id"] = PropertyService(self.db, self.org_id).build(property_data).id

        if data.get("contact_id"):
            ContactService(self.db, self.org_id).get(data["contact_id"])
        elif contact_data:
            data["contact_id"] = ContactService(self.db, self.org_id).build(contact_data).id

        claim = self.scope.add(ClaimDB(created_by=user_id, **data))
        self.db.flush()
        self.log_activity(claim, "created", f"Claim {claim.claim_number} created", user_id)
        self.webhooks.trigger_event(self.org_id, "claim.created", claim_to_dict(claim))
        self.db.commit()
        self.db.refresh(claim)

        logger.info(f"Created claim {claim.claim_number} for org {self.org_id}")
        return claim

    def update(self, claim_ref: str, changes: Dict[str, Any], user_id: Optional[str] = None) -> ClaimDB:
        claim = self.get(claim_ref)

        if "status" in changes and changes["status"] not in {s.value for s in ClaimStatus}:
            raise ValidationFailedError(f"Unknown claim status '{changes['status']}'")
        if changes.get("claim_number") and changes["claim_number"] != claim.claim_number:
            duplicate = self.scope.query(ClaimDB).filter(ClaimDB.claim_number == changes["claim_number"]).first()
            if duplicate:
                raise ConflictError(f"Claim number {changes['claim_number']} already exists")
        if changes.get("property_id"):
            PropertyService(self.db, self.org_id).get(changes["property_id"])
        if changes.get("contact_id"):
            ContactService(self.db, self.org_id).get(changes["contact_id"])

        changed = apply_changes(claim, changes)
        if not changed:
            return claim

        if "status" in changed:
            old, new = changed["status"]
            self.log_activity(
                claim, "status_change", f"Status changed from {old} to {new}", user_id,
                {"from": old, "to": new},
            )
        other_fields = sorted(f for f in changed if f != "status")
        if other_fields:
            self.log_activity(
                claim, "updated", f"Updated {', '.join(other_fields)}", user_id,
                {"fields": other_fields},
            )

        self.db.flush()
        payload = claim_to_dict(claim)
        payload["changed_fields"] = sorted(changed)
        self.webhooks.trigger_event(self.org_id, "claim.updated", payload)
        self.db.commit()
        self.db.refresh(claim)
        return claim

    def delete(self, claim_ref: str, user_id: Optional[str] = None) -> str:
        claim = self.get(claim_ref)
        payload = {"id": claim.id, "claim_number": claim.claim_number, "deleted_by": user_id}
        self.scope.delete(claim)
        self.webhooks.trigger_event(self.org_id, "claim.deleted", payload)
        self.db.commit()
        logger.info(f"Deleted claim {payload['claim_number']} for org {self.org_id}")
        return payload["id"]

    def add_note(self, claim_ref: str, message: str, user_id: Optional[str] = None) -> ClaimActivityDB:
        if not message or not message.strip():
            raise ValidationFailedError("Note cannot be empty")
        claim = self.get(claim_ref)
        activity = self.log_activity(claim, "note", message.strip(), user_id)
        self.db.commit()
        self.db.refresh(activity)
        return activity

    def log_activity(
        self,
        claim: ClaimDB,
        event_type: str,
        message: str,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClaimActivityDB:
        activity = ClaimActivityDB(
            claim_id=claim.id,
            user_id=user_id,
            event_type=event_type,
            message=message,
            event_metadata=metadata,
        )
        return self.scope.add(activity)
