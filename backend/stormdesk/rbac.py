"""
StormDesk - Role-Based Access Control

Role hierarchy (highest first):
- admin:   everything, including billing and team roles
- manager: manages most resources, but not billing or the team
- member:  creates and edits day-to-day records
- viewer:  read-only
"""
from typing import Callable, Dict, FrozenSet

from fastapi import Depends, HTTPException, status

from .auth import OrgContext, get_org_context
from .models.db_models import MemberRole


ROLE_LEVELS: Dict[str, int] = {
    MemberRole.ADMIN.value: 4,
    MemberRole.MANAGER.value: 3,
    MemberRole.MEMBER.value: 2,
    MemberRole.VIEWER.value: 1,
}

_VIEW = frozenset({
    "claims:view", "contacts:view", "leads:view", "jobs:view", "estimates:view",
    "team:view", "reports:view", "documents:view",
})

_MEMBER = _VIEW | frozenset({
    "claims:create", "claims:edit",
    "contacts:create", "contacts:edit",
    "leads:create", "leads:edit",
    "jobs:create", "jobs:edit",
    "estimates:create", "estimates:edit",
    "reports:create", "documents:create",
})

_MANAGER = _MEMBER | frozenset({
    "contacts:delete", "leads:delete", "jobs:delete", "estimates:delete",
    "documents:delete", "billing:view", "integrations:view", "analytics:view",
    "network:manage",
})

_ADMIN = _MANAGER | frozenset({
    "claims:delete", "team:invite", "team:edit", "team:remove",
    "billing:manage", "integrations:manage", "org:manage",
})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    MemberRole.ADMIN.value: _ADMIN,
    MemberRole.MANAGER.value: _MANAGER,
    MemberRole.MEMBER.value: _MEMBER,
    MemberRole.VIEWER.value: _VIEW,
}

ALL_PERMISSIONS: FrozenSet[str] = _ADMIN


def has_permission(role: str, permission: str) -> bool:
    """Check a role against the permission matrix. Unknown roles get nothing."""
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def has_role_at_least(role: str, minimum: str) -> bool:
    return ROLE_LEVELS.get(role, 0) >= ROLE_LEVELS.get(minimum, 99)


def require_permission(permission: str) -> Callable:
    """
    Dependency factory. Usage:

        ctx: OrgContext = Depends(require_permission("claims:edit"))
    """
    if permission not in ALL_PERMISSIONS:
        raise ValueError(f"Unknown permission: {permission}")

    async def dependency(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
        if not has_permission(ctx.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": f"You don't have permission to perform this action ({permission})",
                    "current_role": ctx.role,
                    "required_permission": permission,
                },
            )
        return ctx

    return dependency


def require_role(minimum: str) -> Callable:
    """Dependency factory gating on the role hierarchy."""

    async def dependency(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
        if not has_role_at_least(ctx.role, minimum):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": f"{minimum} role required",
                    "current_role": ctx.role,
                    "required_role": minimum,
                },
            )
        return ctx

    return dependency
