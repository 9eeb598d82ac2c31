"""
Contacts and properties - the people and structures claims and leads hang off.
"""
import re
import secrets
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.db_models import ContactDB, PropertyDB
from .tenancy import TenantScope, apply_changes


def generate_contact_slug(first_name: str, last_name: str) -> str:
    """URL slug from the name plus a short random suffix: ``jane-doe-3f9a1c``."""
    base = re.sub(r"[^a-z0-9]+", "-", f"{first_name} {last_name}".lower()).strip("-") or "contact"
    return f"{base}-{secrets.token_hex(3)}"


def property_name(data: Dict[str, Any]) -> Optional[str]:
    parts = [data.get(key) for key in ("street", "city", "state", "zip_code")]
    return ", ".join(p for p in parts if p) or None


class ContactService:
    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.scope = TenantScope(db_session, org_id)

    def list(self, search: Optional[str] = None, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        query = self.scope.query(ContactDB)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                ContactDB.first_name.ilike(term),
                ContactDB.last_name.ilike(term),
                ContactDB.email.ilike(term),
                ContactDB.company.ilike(term),
            ))
        query = query.order_by(ContactDB.last_name.asc(), ContactDB.first_name.asc())
        return TenantScope.paginate(query, limit, offset)

    def get(self, contact_id: str) -> ContactDB:
        return self.scope.get_or_404(ContactDB, contact_id, "Contact")

    def build(self, data: Dict[str, Any]) -> ContactDB:
        """Stage a new contact in the session without committing."""
        contact = ContactDB(
            slug=generate_contact_slug(data["first_name"], data["last_name"]),
            **data,
        )
        return self.scope.add(contact)

    def create(self, data: Dict[str, Any]) -> ContactDB:
        contact = self.build(data)
        self.db.commit()
        self.db.refresh(contact)
        return contact

    def update(self, contact_id: str, changes: Dict[str, Any]) -> ContactDB:
        contact = self.get(contact_id)
        changed = apply_changes(contact, changes)
        if "first_name" in changed or "last_name" in changed:
            contact.slug = generate_contact_slug(contact.first_name, contact.last_name)
        self.db.commit()
        self.db.refresh(contact)
        return contact

    def delete(self, contact_id: str) -> None:
        self.scope.delete(self.get(contact_id))
        self.db.commit()


class PropertyService:
    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.scope = TenantScope(db_session, org_id)

    def list(self, state: Optional[str] = None, search: Optional[str] = None,
             limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        query = self.scope.query(PropertyDB)
        if state:
            query = query.filter(PropertyDB.state == state.upper())
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                PropertyDB.name.ilike(term),
                PropertyDB.street.ilike(term),
                PropertyDB.city.ilike(term),
            ))
        return TenantScope.paginate(query.order_by(PropertyDB.created_at.desc()), limit, offset)

    def get(self, property_id: str) -> PropertyDB:
        return self.scope.get_or_404(PropertyDB, property_id, "Property")

    def build(self, data: Dict[str, Any]) -> PropertyDB:
        data = dict(data)
        if data.get("state"):
            data["state"] = data["state"].upper()
        if not data.get("name"):
            data["name"] = property_name(data)
        return self.scope.add(PropertyDB(**data))

    def create(self, data: Dict[str, Any]) -> PropertyDB:
        prop = self.build(data)
        self.db.commit()
        self.db.refresh(prop)
        return prop

    def update(self, property_id: str, changes: Dict[str, Any]) -> PropertyDB:
        prop = self.get(property_id)
        if changes.get("state"):
            changes = {**changes, "state": changes["state"].upper()}
        apply_changes(prop, changes)
        self.db.commit()
        self.db.refresh(prop)
        return prop

    def delete(self, property_id: str) -> None:
        self.scope.delete(self.get(property_id))
        self.db.commit()
