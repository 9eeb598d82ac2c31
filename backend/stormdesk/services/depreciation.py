"""
Depreciation Lifecycle

Recoverable depreciation is the gap between replacement cost (RCV) and
actual cash value (ACV) that the carrier releases once work is complete.

Value decay:  value x (1 - rate) ^ years

Lifecycle:
    calculated -> invoiced -> submitted -> recovered
                                       \\-> denied -> submitted (resubmission)
"""
from datetime import date
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ..errors import ValidationFailedError
from ..models.db_models import ClaimDB, DepreciationEventDB, DepreciationStatus
from .tenancy import TenantScope


ALLOWED_TRANSITIONS: Dict[Optional[str], List[str]] = {
    None: [DepreciationStatus.CALCULATED.value],
    DepreciationStatus.CALCULATED.value: [
        DepreciationStatus.CALCULATED.value,  # recalculation
        DepreciationStatus.INVOICED.value,
    ],
    DepreciationStatus.INVOICED.value: [DepreciationStatus.SUBMITTED.value],
    DepreciationStatus.SUBMITTED.value: [
        DepreciationStatus.RECOVERED.value,
        DepreciationStatus.DENIED.value,
    ],
    DepreciationStatus.DENIED.value: [DepreciationStatus.SUBMITTED.value],
    DepreciationStatus.RECOVERED.value: [],  # Terminal
}


def calculate_depreciated_value(value: float, rate: float, years: float) -> float:
    """Exponential decay of ``value`` at annual ``rate`` over ``years``."""
    if value < 0:
        raise ValidationFailedError("Value must be non-negative")
    if not 0 <= rate < 1:
        raise ValidationFailedError("Rate must be in [0, 1)")
    if years < 0:
        raise ValidationFailedError("Years must be non-negative")
    return round(value * (1 - rate) ** years, 2)


def calculate_recoverable(rcv: float, acv: float) -> float:
    """Recoverable depreciation (never negative)."""
    return round(max(rcv - acv, 0.0), 2)


def age_in_years(installed_on: date, as_of: Optional[date] = None) -> float:
    """Fractional material age, month resolution."""
    as_of = as_of or date.today()
    if installed_on > as_of:
        raise ValidationFailedError("Install date is in the future")
    delta = relativedelta(as_of, installed_on)
    return round(delta.years + delta.months / 12, 2)


def can_transition(current: Optional[str], target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, [])


class DepreciationTracker:
    """Records depreciation lifecycle events for claims within one org."""

    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.scope = TenantScope(db_session, org_id)

    def current_status(self, claim_id: str) -> Optional[str]:
        latest = (
            self.scope.query(DepreciationEventDB)
            .filter(DepreciationEventDB.claim_id == claim_id)
            .order_by(DepreciationEventDB.created_at.desc())
            .first()
        )
        return latest.status if latest else None

    def calculate(
        self,
        claim_id: str,
        rcv: float,
        rate: float,
        years: float,
        user_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Compute ACV/recoverable for a claim and log a ``calculated`` event."""
        self.scope.get_or_404(ClaimDB, claim_id, "Claim")
        acv = calculate_depreciated_value(rcv, rate, years)
        recoverable = calculate_recoverable(rcv, acv)

        event = self._record(
            claim_id,
            DepreciationStatus.CALCULATED.value,
            user_id=user_id,
            rcv=rcv,
            acv=acv,
            depreciation_amount=recoverable,
            rate=rate,
            years=years,
            note=note,
        )
        return {
            "claim_id": claim_id,
            "rcv": rcv,
            "acv": acv,
            "recoverable_depreciation": recoverable,
            "rate": rate,
            "years": years,
            "event_id": event.id,
        }

    def advance(
        self,
        claim_id: str,
        status: str,
        user_id: Optional[str] = None,
        note: Optional[str] = None,
        amount: Optional[float] = None,
    ) -> DepreciationEventDB:
        """Move a claim's depreciation to the next lifecycle state."""
        self.scope.get_or_404(ClaimDB, claim_id, "Claim")
        if status == DepreciationStatus.CALCULATED.value:
            raise ValidationFailedError("Use the calculate endpoint to record calculations")
        return self._record(claim_id, status, user_id=user_id, note=note, depreciation_amount=amount)

    def history(self, claim_id: str) -> List[DepreciationEventDB]:
        self.scope.get_or_404(ClaimDB, claim_id, "Claim")
        return (
            self.scope.query(DepreciationEventDB)
            .filter(DepreciationEventDB.claim_id == claim_id)
            .order_by(DepreciationEventDB.created_at.asc())
            .all()
        )

    def _record(self, claim_id: str, status: str, user_id: Optional[str] = None, **fields) -> DepreciationEventDB:
        valid = {s.value for s in DepreciationStatus}
        if status not in valid:
            raise ValidationFailedError(f"Unknown depreciation status '{status}'")

        current = self.current_status(claim_id)
        if not can_transition(current, status):
            raise ValidationFailedError(
                f"Cannot move depreciation from {current or 'none'} to {status}",
                extra={"current_status": current, "allowed": ALLOWED_TRANSITIONS.get(current, [])},
            )

        event = DepreciationEventDB(claim_id=claim_id, status=status, created_by=user_id, **fields)
        self.scope.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event
