"""
StormDesk - Contacts & Properties Router
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..rbac import require_permission
from ..services.contacts import ContactService, PropertyService
from ..services.serializers import contact_to_dict, page_to_dict, property_to_dict

router = APIRouter(tags=["contacts"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

def _state_code(v):
    if v is not None:
        if len(v) != 2 or not v.isalpha():
            raise ValueError('State must be a 2-letter code')
        return v.upper()
    return v


class ContactFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('state')
    @classmethod
    def validate_state(cls, v):
        return _state_code(v)


class ContactCreateRequest(ContactFields):
    first_name: str
    last_name: str


class PropertyFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    roof_type: Optional[str] = None
    stories: Optional[int] = None
    square_footage: Optional[int] = None
    year_built: Optional[int] = None

    @field_validator('state')
    @classmethod
    def validate_state(cls, v):
        return _state_code(v)


# =============================================================================
# CONTACTS
# =============================================================================

@router.get("/contacts", response_model=dict)
async def list_contacts(
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(require_permission("contacts:view")),
    db: Session = Depends(get_db),
):
    return page_to_dict(ContactService(db, ctx.org_id).list(search, limit, offset), contact_to_dict)


@router.post("/contacts", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_contact(
    request: ContactCreateRequest,
    ctx: OrgContext = Depends(require_permission("contacts:create")),
    db: Session = Depends(get_db),
):
    return contact_to_dict(ContactService(db, ctx.org_id).create(request.model_dump(exclude_unset=True)))


@router.get("/contacts/{contact_id}", response_model=dict)
async def get_contact(
    contact_id: str,
    ctx: OrgContext = Depends(require_permission("contacts:view")),
    db: Session = Depends(get_db),
):
    return contact_to_dict(ContactService(db, ctx.org_id).get(contact_id))


@router.patch("/contacts/{contact_id}", response_model=dict)
async def update_contact(
    contact_id: str,
    request: ContactFields,
    ctx: OrgContext = Depends(require_permission("contacts:edit")),
    db: Session = Depends(get_db),
):
    contact = ContactService(db, ctx.org_id).update(contact_id, request.model_dump(exclude_unset=True))
    return contact_to_dict(contact)


@router.delete("/contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    contact_id: str,
    ctx: OrgContext = Depends(require_permission("contacts:delete")),
    db: Session = Depends(get_db),
):
    ContactService(db, ctx.org_id).delete(contact_id)


# =============================================================================
# PROPERTIES
# =============================================================================

@router.get("/properties", response_model=dict)
async def list_properties(
    state: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(require_permission("contacts:view")),
    db: Session = Depends(get_db),
):
    page = PropertyService(db, ctx.org_id).list(state, search, limit, offset)
    return page_to_dict(page, property_to_dict)


@router.post("/properties", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_property(
    request: PropertyFields,
    ctx: OrgContext = Depends(require_permission("contacts:create")),
    db: Session = Depends(get_db),
):
    return property_to_dict(PropertyService(db, ctx.org_id).create(request.model_dump(exclude_unset=True)))


@router.get("/properties/{property_id}", response_model=dict)
async def get_property(
    property_id: str,
    ctx: OrgContext = Depends(require_permission("contacts:view")),
    db: Session = Depends(get_db),
):
    return property_to_dict(PropertyService(db, ctx.org_id).get(property_id))


@router.patch("/properties/{property_id}", response_model=dict)
async def update_property(
    property_id: str,
    request: PropertyFields,
    ctx: OrgContext = Depends(require_permission("contacts:edit")),
    db: Session = Depends(get_db),
):
    prop = PropertyService(db, ctx.org_id).update(property_id, request.model_dump(exclude_unset=True))
    return property_to_dict(prop)


@router.delete("/properties/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    property_id: str,
    ctx: OrgContext = Depends(require_permission("contacts:delete")),
    db: Session = Depends(get_db),
):
    PropertyService(db, ctx.org_id).delete(property_id)
