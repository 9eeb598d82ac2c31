"""
Tenant Scope

Single data-access entry point for tenant-owned tables. Every query built
here carries the ``org_id`` predicate, and every row added through it is
stamped with the caller's org. Routers never query tenant tables directly.
"""
from typing import Any, Dict, Optional, Type, TypeVar
from uuid import uuid4

from sqlalchemy.orm import Query, Session

from ..errors import NotFoundError, PermissionDeniedError, ValidationFailedError
from ..models.db_models import TENANT_MODELS

M = TypeVar("M")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class TenantScope:
    """Database access bound to a single org."""

    def __init__(self, db_session: Session, org_id: str):
        if not org_id:
            raise PermissionDeniedError("Organization context required")
        self.db = db_session
        self.org_id = org_id

    @staticmethod
    def _check_model(model: Type[Any]) -> None:
        if model not in TENANT_MODELS:
            raise TypeError(f"{model.__name__} is not a tenant-scoped model")

    def query(self, model: Type[M]) -> Query:
        """Query pre-filtered to this org."""
        self._check_model(model)
        return self.db.query(model).filter(model.org_id == self.org_id)

    def get(self, model: Type[M], obj_id: str) -> Optional[M]:
        """Fetch by id; another org's row is indistinguishable from a missing one."""
        if not obj_id:
            return None
        return self.query(model).filter(model.id == obj_id).first()

    def get_or_404(self, model: Type[M], obj_id: str, label: Optional[str] = None) -> M:
        obj = self.get(model, obj_id)
        if obj is None:
            raise NotFoundError(f"{label or model.__name__.replace('DB', '')} not found")
        return obj

    def add(self, obj: M) -> M:
        """Stamp the org (and an id when missing) and add to the session."""
        self._check_model(type(obj))
        existing = getattr(obj, "org_id", None)
        if existing and existing != self.org_id:
            raise PermissionDeniedError("Cannot write a record into another organization")
        obj.org_id = self.org_id
        if not getattr(obj, "id", None):
            obj.id = str(uuid4())
        self.db.add(obj)
        return obj

    def delete(self, obj: Any) -> None:
        self._check_model(type(obj))
        if obj.org_id != self.org_id:
            raise PermissionDeniedError("Cannot delete a record owned by another organization")
        self.db.delete(obj)

    def count(self, model: Type[M]) -> int:
        return self.query(model).count()

    @staticmethod
    def paginate(query: Query, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> Dict[str, Any]:
        """Apply limit/offset and report totals for list endpoints."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        total = query.order_by(None).count()
        items = query.limit(limit).offset(offset).all()
        return {
            "items": items,
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        }


def apply_changes(obj: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Set attributes from a partial update; returns {field: (old, new)} for those that changed.

    An explicit null for a NOT NULL column is refused before anything on
    ``obj`` is touched.
    """
    columns = obj.__table__.columns
    for field, value in changes.items():
        if value is not None:
            continue
        if field in columns and not columns[field].nullable:
            raise ValidationFailedError(f"{field} cannot be null", extra={"field": field})

    changed = {}
    for field, value in changes.items():
        old = getattr(obj, field)
        if old != value:
            setattr(obj, field, value)
            changed[field] = (old, value)
    return changed
