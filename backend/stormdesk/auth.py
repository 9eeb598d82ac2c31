"""
StormDesk - Authentication Utilities
Password hashing, JWT tokens, and auth/org-context dependencies
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .config import JWT_SECRET_KEY, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_HOURS
from .database import get_db
from .models.db_models import UserDB, MembershipDB

# Bearer token security
security = HTTPBearer()


# bcrypt only looks at the first 72 bytes; newer releases refuse anything longer
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def create_access_token(
    user_id: str,
    email: str,
    org_id: Optional[str] = None,
    role: Optional[str] = None,
    expires_in: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token carrying the active org and role."""
    expire = datetime.now(timezone.utc) + (expires_in or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode = {
        "sub": user_id,
        "email": email,
        "org": org_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT token.
    Raises JWTError (ExpiredSignatureError for stale tokens).
    """
    return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """Dependency returning the verified token claims."""
    try:
        payload = decode_token(credentials.credentials)
    except ExpiredSignatureError:
        raise _credentials_exception("Token has expired")
    except JWTError:
        raise _credentials_exception()

    if payload.get("sub") is None:
        raise _credentials_exception()
    return payload


async def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db),
) -> UserDB:
    """
    Dependency to get the current authenticated user.
    Validates JWT token and fetches user from database.
    """
    user = db.query(UserDB).filter(UserDB.id == payload["sub"]).first()
    if user is None or not user.is_active:
        raise _credentials_exception()
    return user


@dataclass
class OrgContext:
    """The caller and the tenant every query in the request is scoped to."""
    user: UserDB
    org_id: str
    role: str

    @property
    def user_id(self) -> str:
        return self.user.id


def resolve_membership(db: Session, user_id: str, org_id: Optional[str] = None) -> Optional[MembershipDB]:
    """
    Find the membership for the requested org, falling back to the user's
    oldest membership when the token carries no (or a stale) org claim.
    """
    query = db.query(MembershipDB).filter(MembershipDB.user_id == user_id)
    if org_id:
        membership = query.filter(MembershipDB.org_id == org_id).first()
        if membership:
            return membership
    return query.order_by(MembershipDB.created_at.asc()).first()


async def get_org_context(
    payload: dict = Depends(get_token_payload),
    user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> OrgContext:
    """
    Dependency resolving the active org for the caller.
    The database membership is the source of truth, not the token's role claim.
    """
    membership = resolve_membership(db, user.id, payload.get("org"))
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Organization not found", "code": "NO_ORG"},
        )
    return OrgContext(user=user, org_id=membership.org_id, role=membership.role)
