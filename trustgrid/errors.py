"""
TrustGrid — Error taxonomy

Every failure the core can surface to a caller is one of these.
The HTTP layer maps them to status codes in main.py; services raise them
and never return error dicts.
"""
from typing import Optional


class TrustGridError(Exception):
    """Base class for domain errors."""
    status_code = 500
    code = "trustgrid_error"

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(TrustGridError):
    """Malformed input. Nothing has been written."""
    status_code = 400
    code = "validation_error"


class NotFoundError(TrustGridError):
    """An id, handle or token did not resolve."""
    status_code = 404
    code = "not_found"


class ConflictError(TrustGridError):
    """Transition attempted from an incompatible state."""
    status_code = 409
    code = "conflict"


class DependencyError(TrustGridError):
    """Analyzer or notifier unavailable."""
    status_code = 503
    code = "dependency_unavailable"

    def __init__(self, message: str, dependency: str, detail: Optional[dict] = None):
        super().__init__(message, detail)
        self.dependency = dependency
