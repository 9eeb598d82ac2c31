"""
StormDesk - FastAPI Application

Main entry point for the StormDesk backend: claims, CRM and scheduling
for storm-restoration contractors.

Architecture:
- Router → Service → TenantScope → SQLAlchemy ORM
- Every tenant-owned query goes through TenantScope (org_id predicate)
- Side calls: Stripe (inbound webhooks), Resend (email), LLM gateway,
  integrator URLs (signed outbound webhooks)
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import CORS_ORIGINS, LOG_LEVEL
from .database import init_db
from .errors import StormDeskError
from .routers import (
    auth_router,
    billing_router,
    claims_router,
    compliance_router,
    contacts_router,
    dashboard_router,
    depreciation_router,
    documents_router,
    estimates_router,
    internal_router,
    jobs_router,
    leads_router,
    network_router,
    notifications_router,
    orgs_router,
    webhooks_router,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="StormDesk",
    description="""
    StormDesk - Storm Restoration Operations Platform

    Multi-tenant backend for roofing and restoration contractors.

    ## Areas
    - **Claims**: insurance claims, timeline, depreciation lifecycle
    - **CRM**: contacts, properties, leads with warmth scoring
    - **Operations**: estimates, job scheduling, crew calendar
    - **Integrations**: signed outbound webhooks, Stripe billing, email
    - **AI**: claim documents drafted from claim data and local building codes
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StormDeskError)
async def stormdesk_error_handler(request: Request, exc: StormDeskError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers (Stripe's /webhooks/stripe before the /webhooks/{id} routes)
app.include_router(auth_router)
app.include_router(orgs_router)
app.include_router(billing_router)
app.include_router(webhooks_router)
app.include_router(claims_router)
app.include_router(depreciation_router)
app.include_router(contacts_router)
app.include_router(leads_router)
app.include_router(estimates_router)
app.include_router(jobs_router)
app.include_router(notifications_router)
app.include_router(documents_router)
app.include_router(compliance_router)
app.include_router(network_router)
app.include_router(dashboard_router)
app.include_router(internal_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "StormDesk",
        "version": __version__,
        "description": "Storm Restoration Operations Platform",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m stormdesk.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
