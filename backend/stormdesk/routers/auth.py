"""
StormDesk - Authentication Router
Registration (user + org), login, current session and password changes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..auth import (
    MAX_PASSWORD_BYTES,
    OrgContext,
    create_access_token,
    get_current_user,
    get_org_context,
    resolve_membership,
)
from ..database import get_db
from ..models.db_models import UserDB
from ..services.orgs import OrgService, authenticate, change_password, register_account
from ..services.serializers import org_to_dict, user_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

def _check_password_length(v: str) -> str:
    if len(v.encode('utf-8')) > MAX_PASSWORD_BYTES:
        raise ValueError(f'Password cannot be longer than {MAX_PASSWORD_BYTES} bytes')
    return v


def _check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters')
    return _check_password_length(v)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    org_name: str

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        return _check_password_strength(v)

    @field_validator('org_name')
    @classmethod
    def validate_org_name(cls, v):
        if not v.strip():
            raise ValueError('Organization name is required')
        return v.strip()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator('password')
    @classmethod
    def validate_password_length(cls, v):
        return _check_password_length(v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    org_id: Optional[str] = None
    role: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class ChangePasswordRequest(BaseModel):
    """Request model for changing password."""
    current_password: str
    new_password: str
    confirm_password: str

    @field_validator('current_password')
    @classmethod
    def validate_current_password(cls, v):
        return _check_password_length(v)

    @field_validator('new_password')
    @classmethod
    def validate_password_strength(cls, v):
        return _check_password_strength(v)

    @field_validator('confirm_password')
    @classmethod
    def passwords_match(cls, v, info):
        if 'new_password' in info.data and v != info.data['new_password']:
            raise ValueError('Passwords do not match')
        return v


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Create an account together with its organization.
    The new user is the org's first admin.
    """
    result = register_account(db, request.email, request.password, request.full_name, request.org_name)
    user, org = result["user"], result["org"]

    token = create_access_token(user.id, user.email, org.id, result["membership"].role)
    return TokenResponse(access_token=token, org_id=org.id, role=result["membership"].role)


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate user and return JWT token scoped to their org.
    """
    user = authenticate(db, request.email, request.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    membership = resolve_membership(db, user.id)
    org_id = membership.org_id if membership else None
    role = membership.role if membership else None
    access_token = create_access_token(user.id, user.email, org_id, role)

    logger.info(f"User logged in: {user.email}")
    return TokenResponse(access_token=access_token, org_id=org_id, role=role)


@router.get("/me", response_model=dict)
async def get_me(
    ctx: OrgContext = Depends(get_org_context),
    db: Session = Depends(get_db),
):
    """
    Current user, their active org and role.
    """
    org = OrgService(db, ctx.org_id).get()
    return {
        "user": user_to_dict(ctx.user),
        "org": org_to_dict(org),
        "role": ctx.role,
    }


@router.post("/change-password", response_model=MessageResponse)
async def change_my_password(
    request: ChangePasswordRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    change_password(db, current_user, request.current_password, request.new_password)
    return MessageResponse(message="Password updated successfully")
