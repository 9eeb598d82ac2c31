#!/usr/bin/env python3
"""
Demo Org Seed Script
Creates an organization with an admin user, a few contacts, a lead, a claim
and a scheduled job for local development.

Usage:
    python -m scripts.seed_demo_org <email> <password> [org name]

Example:
    python -m scripts.seed_demo_org owner@summitroofing.com securepassword123 "Summit Roofing"
"""
import sys
import os
from datetime import datetime, timedelta

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from stormdesk.auth import MAX_PASSWORD_BYTES
from stormdesk.database import SessionLocal, engine, Base
from stormdesk.errors import StormDeskError
from stormdesk.services.claims import ClaimService
from stormdesk.services.leads import LeadService
from stormdesk.services.orgs import register_account
from stormdesk.services.scheduling import JobScheduler

ADDRESS = {"street": "12 Oak St", "city": "Tulsa", "state": "OK", "zip_code": "74103"}


def seed_demo_org(email: str, password: str, org_name: str) -> bool:
    """Register the account and fill the org with sample records."""
    # Ensure tables exist
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()
    try:
        result = register_account(db, email, password, "Demo Admin", org_name)
        org, user = result["org"], result["user"]

        lead = LeadService(db, org.id).create({
            "title": "Roof replacement - Ortiz",
            "urgency": "high",
            "budget": 3_000_000,
            "work_type": "roof replacement",
        }, user.id, contact_data=dict(
            first_name="Ana", last_name="Ortiz", email="ana.ortiz@example.com", **ADDRESS,
        ))

        claim = ClaimService(db, org.id).create({
            "title": "Hail damage - Ortiz",
            "damage_type": "hail",
            "carrier": "State Farm",
            "estimated_value": 18500,
            "contact_id": lead.contact_id,
        }, user.id, property_data=ADDRESS)

        start = (datetime.utcnow() + timedelta(days=2)).replace(hour=8, minute=0, second=0, microsecond=0)
        JobScheduler(db, org.id).create({
            "title": "Tear-off and install",
            "crew_name": "Crew A",
            "claim_id": claim.id,
            "scheduled_start": start,
            "scheduled_end": start + timedelta(hours=9),
        }, user.id)

        print(f"Demo org created successfully!")
        print(f"  Org: {org.name} ({org.id})")
        print(f"  Admin: {email}")
        print(f"  Claim: {claim.claim_number}")
        print(f"  Lead warmth: {lead.warmth_score}")
        return True

    except StormDeskError as e:
        print(f"Error seeding demo org: {e.detail}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) not in (3, 4):
        print(__doc__)
        sys.exit(1)

    email = sys.argv[1]
    password = sys.argv[2]
    org_name = sys.argv[3] if len(sys.argv) == 4 else "Demo Roofing"

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"Error: Password cannot be longer than {MAX_PASSWORD_BYTES} bytes.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    success = seed_demo_org(email, password, org_name)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
