"""StormDesk - API Routers"""
from .auth import router as auth_router
from .billing import router as billing_router
from .claims import router as claims_router
from .compliance import router as compliance_router
from .contacts import router as contacts_router
from .dashboard import router as dashboard_router
from .depreciation import router as depreciation_router
from .documents import router as documents_router
from .estimates import router as estimates_router
from .internal import router as internal_router
from .jobs import router as jobs_router
from .leads import router as leads_router
from .network import router as network_router
from .notifications import router as notifications_router
from .orgs import router as orgs_router
from .webhooks import router as webhooks_router

__all__ = [
    "auth_router",
    "billing_router",
    "claims_router",
    "compliance_router",
    "contacts_router",
    "dashboard_router",
    "depreciation_router",
    "documents_router",
    "estimates_router",
    "internal_router",
    "jobs_router",
    "leads_router",
    "network_router",
    "notifications_router",
    "orgs_router",
    "webhooks_router",
]
