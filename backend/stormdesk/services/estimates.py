"""
Estimates

    subtotal = sum(quantity x unit_price)
    overhead = subtotal x overhead_pct / 100
    profit   = subtotal x profit_pct / 100
    tax      = (subtotal + overhead + profit) x tax_rate / 100
    total    = subtotal + overhead + profit + tax

All amounts are rounded half-up to cents. Totals are recomputed on every
write; clients never send them.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..errors import ValidationFailedError
from ..models.db_models import ClaimDB, EstimateDB, EstimateStatus, LeadDB
from .serializers import estimate_to_dict
from .tenancy import TenantScope, apply_changes
from .webhooks import WebhookService

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _dec(value: Any) -> Decimal:
    return Decimal(str(value or 0))


def _cents(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def line_total(item: Dict[str, Any]) -> float:
    return _cents(_dec(item.get("quantity")) * _dec(item.get("unit_price")))


def calculate_totals(
    line_items: Iterable[Dict[str, Any]],
    overhead_pct: float = 0.0,
    profit_pct: float = 0.0,
    tax_rate: float = 0.0,
) -> Dict[str, float]:
    for pct, name in ((overhead_pct, "overhead_pct"), (profit_pct, "profit_pct"), (tax_rate, "tax_rate")):
        if pct is not None and pct < 0:
            raise ValidationFailedError(f"{name} cannot be negative")

    subtotal = sum((_dec(i.get("quantity")) * _dec(i.get("unit_price")) for i in line_items), Decimal("0"))
    subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)
    overhead = (subtotal * _dec(overhead_pct) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    profit = (subtotal * _dec(profit_pct) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    tax = ((subtotal + overhead + profit) * _dec(tax_rate) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)

    return {
        "subtotal": _cents(subtotal),
        "overhead_amount": _cents(overhead),
        "profit_amount": _cents(profit),
        "tax_amount": _cents(tax),
        "total": _cents(subtotal + overhead + profit + tax),
    }


def normalize_line_items(items: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    normalized = []
    for item in items or []:
        if _dec(item.get("quantity")) < 0 or _dec(item.get("unit_price")) < 0:
            raise ValidationFailedError("Line item quantity and unit_price cannot be negative")
        entry = dict(item)
        entry["line_total"] = line_total(item)
        normalized.append(entry)
    return normalized


class EstimateService:
    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id
        self.scope = TenantScope(db_session, org_id)

    def list(self, claim_id: Optional[str] = None, lead_id: Optional[str] = None,
             status: Optional[str] = None, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        query = self.scope.query(EstimateDB)
        if claim_id:
            query = query.filter(EstimateDB.claim_id == claim_id)
        if lead_id:
            query = query.filter(EstimateDB.lead_id == lead_id)
        if status:
            query = query.filter(EstimateDB.status == status)
        return TenantScope.paginate(query.order_by(EstimateDB.created_at.desc()), limit, offset)

    def get(self, estimate_id: str) -> EstimateDB:
        return self.scope.get_or_404(EstimateDB, estimate_id, "Estimate")

    def _recalculate(self, estimate: EstimateDB) -> None:
        totals = calculate_totals(
            estimate.line_items or [], estimate.overhead_pct or 0, estimate.profit_pct or 0, estimate.tax_rate or 0,
        )
        for field, value in totals.items():
            setattr(estimate, field, value)

    def _check_links(self, data: Dict[str, Any]) -> None:
        if data.get("claim_id"):
            self.scope.get_or_404(ClaimDB, data["claim_id"], "Claim")
        if data.get("lead_id"):
            self.scope.get_or_404(LeadDB, data["lead_id"], "Lead")

    def create(self, data: Dict[str, Any], user_id: Optional[str] = None) -> EstimateDB:
        data = dict(data)
        self._check_links(data)
        data["line_items"] = normalize_line_items(data.get("line_items"))

        estimate = EstimateDB(created_by=user_id, **data)
        self._recalculate(estimate)
        self.scope.add(estimate)
        self.db.flush()

        WebhookService(self.db).trigger_event(self.org_id, "estimate.created", estimate_to_dict(estimate))
        self.db.commit()
        self.db.refresh(estimate)
        return estimate

    def update(self, estimate_id: str, changes: Dict[str, Any]) -> EstimateDB:
        estimate = self.get(estimate_id)
        changes = dict(changes)
        if "status" in changes and changes["status"] not in {s.value for s in EstimateStatus}:
            raise ValidationFailedError(f"Unknown estimate status '{changes['status']}'")
        self._check_links(changes)
        if "line_items" in changes:
            changes["line_items"] = normalize_line_items(changes["line_items"])

        apply_changes(estimate, changes)
        self._recalculate(estimate)
        self.db.commit()
        self.db.refresh(estimate)
        return estimate

    def delete(self, estimate_id: str) -> None:
        self.scope.delete(self.get(estimate_id))
        self.db.commit()
