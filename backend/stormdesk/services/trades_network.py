"""
Trades Network

Contractors connect their org with partner orgs by trade (a roofer
bringing in a gutter sub, say). A request goes from the requester org to
the target org; only the target can accept or decline it.

Connections span two tenants, so they are not tenant-scoped rows: every
query here filters on the caller's org being one of the two sides.
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationFailedError
from ..models.db_models import ConnectionStatus, OrgDB, TradeConnectionDB
from .notifications import NotificationService

logger = logging.getLogger(__name__)

TRADE_TYPES = (
    "roofing",
    "siding",
    "gutters",
    "windows",
    "painting",
    "hvac",
    "plumbing",
    "electrical",
    "general_contractor",
    "flooring",
    "landscaping",
    "concrete",
    "fencing",
    "solar",
)

OPEN_STATUSES = (ConnectionStatus.PENDING.value, ConnectionStatus.ACCEPTED.value)

LIST_KINDS = ("incoming", "outgoing", "accepted")


class TradesNetwork:
    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id

    def _involving_me(self):
        return self.db.query(TradeConnectionDB).filter(
            or_(
                TradeConnectionDB.requester_org_id == self.org_id,
                TradeConnectionDB.target_org_id == self.org_id,
            )
        )

    def get(self, connection_id: str) -> TradeConnectionDB:
        connection = self._involving_me().filter(TradeConnectionDB.id == connection_id).first()
        if connection is None:
            raise NotFoundError("Connection not found")
        return connection

    def list(self, kind: str = "accepted") -> List[TradeConnectionDB]:
        if kind not in LIST_KINDS:
            raise ValidationFailedError(f"Unknown connection list '{kind}'", extra={"allowed": list(LIST_KINDS)})

        if kind == "incoming":
            query = self.db.query(TradeConnectionDB).filter(
                TradeConnectionDB.target_org_id == self.org_id,
                TradeConnectionDB.status == ConnectionStatus.PENDING.value,
            )
        elif kind == "outgoing":
            query = self.db.query(TradeConnectionDB).filter(
                TradeConnectionDB.requester_org_id == self.org_id,
                TradeConnectionDB.status == ConnectionStatus.PENDING.value,
            )
        else:
            query = self._involving_me().filter(TradeConnectionDB.status == ConnectionStatus.ACCEPTED.value)
        return query.order_by(TradeConnectionDB.created_at.desc()).all()

    def request(
        self,
        target_org_id: str,
        trade: str,
        message: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> TradeConnectionDB:
        trade = (trade or "").lower()
        if trade not in TRADE_TYPES:
            raise ValidationFailedError(f"Unknown trade '{trade}'", extra={"allowed": list(TRADE_TYPES)})
        if target_org_id == self.org_id:
            raise ValidationFailedError("Cannot connect an organization to itself")

        target = self.db.query(OrgDB).filter(OrgDB.id == target_org_id).first()
        if target is None:
            raise NotFoundError("Organization not found")

        existing = self.db.query(TradeConnectionDB).filter(
            or_(
                (TradeConnectionDB.requester_org_id == self.org_id)
                & (TradeConnectionDB.target_org_id == target_org_id),
                (TradeConnectionDB.requester_org_id == target_org_id)
                & (TradeConnectionDB.target_org_id == self.org_id),
            ),
            TradeConnectionDB.trade == trade,
            TradeConnectionDB.status.in_(OPEN_STATUSES),
        ).first()
        if existing:
            raise ConflictError(
                f"A {existing.status} {trade} connection already exists with this organization",
                extra={"connection_id": existing.id},
            )

        connection = TradeConnectionDB(
            id=str(uuid4()),
            requester_org_id=self.org_id,
            target_org_id=target_org_id,
            trade=trade,
            message=message,
            status=ConnectionStatus.PENDING.value,
            requested_by=user_id,
        )
        self.db.add(connection)
        self.db.flush()

        requester = self.db.query(OrgDB).filter(OrgDB.id == self.org_id).first()
        NotificationService(self.db, target_org_id).notify_org_members(
            title=f"{requester.name if requester else 'A contractor'} wants to connect",
            body=f"Connection request for {trade.replace('_', ' ')}.",
            link="/network",
            kind="network_request",
            roles=["admin", "manager"],
        )
        self.db.refresh(connection)
        logger.info(f"Org {self.org_id} requested a {trade} connection with {target_org_id}")
        return connection

    def respond(self, connection_id: str, accept: bool, user_id: Optional[str] = None) -> TradeConnectionDB:
        connection = self.get(connection_id)
        if connection.target_org_id != self.org_id:
            raise PermissionDeniedError("Only the invited organization can respond to a connection request")
        if connection.status != ConnectionStatus.PENDING.value:
            raise ConflictError(f"Connection request is already {connection.status}")

        connection.status = (ConnectionStatus.ACCEPTED if accept else ConnectionStatus.DECLINED).value
        connection.responded_by = user_id
        connection.responded_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(connection)
        return connection

    def accept(self, connection_id: str, user_id: Optional[str] = None) -> TradeConnectionDB:
        return self.respond(connection_id, True, user_id)

    def decline(self, connection_id: str, user_id: Optional[str] = None) -> TradeConnectionDB:
        return self.respond(connection_id, False, user_id)
