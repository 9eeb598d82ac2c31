"""
Orgs & Team

Registration creates the user, their org and an admin membership in one
transaction. Team changes keep at least one admin in every org.
"""
import logging
import re
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..auth import hash_password, verify_password
from ..errors import ConflictError, NotFoundError, ValidationFailedError
from ..models.db_models import MemberRole, MembershipDB, OrgDB, SubscriptionStatus, UserDB
from .email import Brand, safe_send_email, welcome_email
from .tenancy import apply_changes

logger = logging.getLogger(__name__)

BRANDING_FIELDS = (
    "name", "logo_url", "primary_color", "accent_color", "tagline",
    "license_number", "phone", "email", "website",
)


def slugify_org(name: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "org"
    return f"{base}-{secrets.token_hex(3)}"


def register_account(
    db: Session,
    email: str,
    password: str,
    full_name: Optional[str],
    org_name: str,
) -> Dict[str, Any]:
    """Create user + org + admin membership. Returns the three rows."""
    email = email.lower()
    if db.query(UserDB).filter(UserDB.email == email).first():
        raise ConflictError("Email already registered")

    user = UserDB(
        id=str(uuid4()),
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
    )
    org = OrgDB(
        id=str(uuid4()),
        name=org_name,
        slug=slugify_org(org_name),
        email=email,
        subscription_status=SubscriptionStatus.TRIALING.value,
    )
    membership = MembershipDB(
        id=str(uuid4()),
        user_id=user.id,
        org_id=org.id,
        role=MemberRole.ADMIN.value,
    )
    db.add_all([user, org, membership])
    db.commit()
    db.refresh(user)
    db.refresh(org)

    content = welcome_email(full_name or email.split("@")[0], Brand.from_org(org))
    safe_send_email(email, **content)

    logger.info(f"Registered {email} with new org {org.id}")
    return {"user": user, "org": org, "membership": membership}


class OrgService:
    """Org profile, branding and team for one org."""

    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id

    def get(self) -> OrgDB:
        org = self.db.query(OrgDB).filter(OrgDB.id == self.org_id).first()
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    def update(self, changes: Dict[str, Any]) -> OrgDB:
        org = self.get()
        for field in changes:
            if field not in BRANDING_FIELDS:
                raise ValidationFailedError(f"Field '{field}' cannot be updated")
        apply_changes(org, changes)
        self.db.commit()
        self.db.refresh(org)
        return org

    # =========================================================================
    # TEAM
    # =========================================================================

    def members(self) -> List[MembershipDB]:
        return (
            self.db.query(MembershipDB)
            .filter(MembershipDB.org_id == self.org_id)
            .order_by(MembershipDB.created_at.asc())
            .all()
        )

    def _membership(self, membership_id: str) -> MembershipDB:
        membership = self.db.query(MembershipDB).filter(
            MembershipDB.id == membership_id,
            MembershipDB.org_id == self.org_id,
        ).first()
        if membership is None:
            raise NotFoundError("Member not found")
        return membership

    def _admin_count(self) -> int:
        return self.db.query(MembershipDB).filter(
            MembershipDB.org_id == self.org_id,
            MembershipDB.role == MemberRole.ADMIN.value,
        ).count()

    def invite(self, email: str, role: str) -> MembershipDB:
        """Add an existing user to the org."""
        if role not in {r.value for r in MemberRole}:
            raise ValidationFailedError(f"Unknown role '{role}'")
        user = self.db.query(UserDB).filter(UserDB.email == email.lower()).first()
        if user is None:
            raise NotFoundError("No account exists for that email")

        existing = self.db.query(MembershipDB).filter(
            MembershipDB.org_id == self.org_id,
            MembershipDB.user_id == user.id,
        ).first()
        if existing:
            raise ConflictError("User is already a member of this organization")

        membership = MembershipDB(id=str(uuid4()), user_id=user.id, org_id=self.org_id, role=role)
        self.db.add(membership)
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"Added {user.email} to org {self.org_id} as {role}")
        return membership

    def change_role(self, membership_id: str, role: str) -> MembershipDB:
        if role not in {r.value for r in MemberRole}:
            raise ValidationFailedError(f"Unknown role '{role}'")
        membership = self._membership(membership_id)
        if (
            membership.role == MemberRole.ADMIN.value
            and role != MemberRole.ADMIN.value
            and self._admin_count() <= 1
        ):
            raise ValidationFailedError("Cannot demote the last admin of the organization")

        membership.role = role
        self.db.commit()
        self.db.refresh(membership)
        return membership

    def remove(self, membership_id: str) -> None:
        membership = self._membership(membership_id)
        if membership.role == MemberRole.ADMIN.value and self._admin_count() <= 1:
            raise ValidationFailedError("Cannot remove the last admin of the organization")
        self.db.delete(membership)
        self.db.commit()


def authenticate(db: Session, email: str, password: str) -> Optional[UserDB]:
    """The active user for these credentials, or None. Records the login time."""
    user = db.query(UserDB).filter(UserDB.email == email.lower()).first()
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        return None
    user.last_login_at = datetime.utcnow()
    db.commit()
    return user


def change_password(db: Session, user: UserDB, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailedError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationFailedError("New password must be different from the current password")
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info(f"Password changed for {user.email}")
