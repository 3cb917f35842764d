# errors.py — Domain error hierarchy with TH-{DOMAIN}-{NUMBER} codes
from typing import Optional

# ============================================================
# ERROR CODE CATALOGUE
# Domains: VAL, AUTHZ, NF, CONF, DB
# ============================================================

ERROR_CATALOGUE = {
    "TH-VAL-001": {"message": "Task can only be assigned to either users or a team, not both", "http_status": 400},
    "TH-VAL-002": {"message": "Required field missing", "http_status": 400},
    "TH-VAL-003": {"message": "Invalid field value", "http_status": 400},
    "TH-VAL-004": {"message": "Unknown field in update", "http_status": 400},

    "TH-AUTHZ-001": {"message": "Not authorized for this action", "http_status": 403},

    "TH-NF-001": {"message": "Task not found", "http_status": 404},
    "TH-NF-002": {"message": "Team not found", "http_status": 404},
    "TH-NF-003": {"message": "User not found", "http_status": 404},
    "TH-NF-004": {"message": "Comment not found", "http_status": 404},

    "TH-CONF-001": {"message": "Email already in use", "http_status": 409},

    "TH-DB-001": {"message": "Failed to persist change", "http_status": 503},
}


class DomainError(Exception):
    """Base for errors that map onto a structured JSON response."""

    default_code = "TH-VAL-003"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.code = code or self.default_code
        entry = ERROR_CATALOGUE.get(self.code, {})
        self.message = message or entry.get("message", "Request failed")
        self.http_status = entry.get("http_status", 400)
        super().__init__(self.message)

    def to_response(self, request_id: Optional[str] = None) -> dict:
        return {
            "detail": self.message,
            "code": self.code,
            "request_id": request_id,
        }


class ValidationError(DomainError):
    """Structural constraint violated. Raised before authorization."""
    default_code = "TH-VAL-003"


class AuthorizationError(DomainError):
    default_code = "TH-AUTHZ-001"


class NotFoundError(DomainError):
    default_code = "TH-NF-001"


class ConflictError(DomainError):
    default_code = "TH-CONF-001"


class PersistenceError(DomainError):
    """The store write itself failed."""
    default_code = "TH-DB-001"
