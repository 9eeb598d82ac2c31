"""
StormDesk - Domain Errors

Services raise these; main.py maps them onto JSON error responses so
routers don't have to translate every failure by hand.
"""
from typing import Any, Dict, Optional


class StormDeskError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, detail: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.detail, "code": self.code}
        body.update(self.extra)
        return body


class NotFoundError(StormDeskError):
    status_code = 404
    code = "NOT_FOUND"


class PermissionDeniedError(StormDeskError):
    status_code = 403
    code = "FORBIDDEN"


class ValidationFailedError(StormDeskError):
    status_code = 422
    code = "VALIDATION_FAILED"


class ConflictError(StormDeskError):
    status_code = 409
    code = "CONFLICT"


class IntegrationError(StormDeskError):
    """A third-party service (LLM, Stripe, email) failed."""

    status_code = 502
    code = "INTEGRATION_ERROR"
