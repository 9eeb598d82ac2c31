"""
StormDesk - Trades Network Router
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import OrgContext, get_org_context
from ..database import get_db
from ..rbac import require_permission
from ..services.serializers import connection_to_dict
from ..services.trades_network import TRADE_TYPES, TradesNetwork

router = APIRouter(prefix="/network", tags=["network"])


class ConnectionRequest(BaseModel):
    target_org_id: str
    trade: str
    message: Optional[str] = None


@router.get("/trades", response_model=dict)
async def list_trades(ctx: OrgContext = Depends(get_org_context)):
    return {"trades": list(TRADE_TYPES)}


@router.get("/connections", response_model=dict)
async def list_connections(
    kind: str = "accepted",
    ctx: OrgContext = Depends(get_org_context),
    db: Session = Depends(get_db),
):
    """``kind`` is incoming, outgoing (both pending) or accepted."""
    connections = TradesNetwork(db, ctx.org_id).list(kind)
    return {"kind": kind, "connections": [connection_to_dict(c, ctx.org_id) for c in connections]}


@router.post("/connections", response_model=dict, status_code=status.HTTP_201_CREATED)
async def request_connection(
    request: ConnectionRequest,
    ctx: OrgContext = Depends(require_permission("network:manage")),
    db: Session = Depends(get_db),
):
    connection = TradesNetwork(db, ctx.org_id).request(
        request.target_org_id, request.trade, request.message, ctx.user_id,
    )
    return connection_to_dict(connection, ctx.org_id)


@router.post("/connections/{connection_id}/accept", response_model=dict)
async def accept_connection(
    connection_id: str,
    ctx: OrgContext = Depends(require_permission("network:manage")),
    db: Session = Depends(get_db),
):
    return connection_to_dict(TradesNetwork(db, ctx.org_id).accept(connection_id, ctx.user_id), ctx.org_id)


@router.post("/connections/{connection_id}/decline", response_model=dict)
async def decline_connection(
    connection_id: str,
    ctx: OrgContext = Depends(require_permission("network:manage")),
    db: Session = Depends(get_db),
):
    return connection_to_dict(TradesNetwork(db, ctx.org_id).decline(connection_id, ctx.user_id), ctx.org_id)
