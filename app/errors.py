"""Error kinds shared by the services and the HTTP layer."""
from typing import Dict, List, Optional


class StudentRecordsError(Exception):
    """Base class: a machine-checkable kind plus a human-readable message."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "errors": self.errors}


class ValidationError(StudentRecordsError):
    """One or more field-level violations, raised before any store mutation."""

    kind = "validation_error"
    status_code = 422

    @property
    def fields(self) -> List[str]:
        return [e["field"] for e in self.errors]


class NotFound(StudentRecordsError):
    kind = "not_found"
    status_code = 404


class AuthenticationFailure(StudentRecordsError):
    """Credentials or session token rejected; the cause is never disclosed."""

    kind = "authentication_failure"
    status_code = 401


class TransientStoreError(StudentRecordsError):
    """The backing store is unreachable or timed out. Safe for callers to retry."""

    kind = "transient_store_error"
    status_code = 503


class CallerError(StudentRecordsError):
    kind = "caller_error"
    status_code = 400


def field_errors(pydantic_errors) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts into {field, message, code} entries."""
    entries = []
    for err in pydantic_errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        entries.append({
            "field": ".".join(loc) or "body",
            "message": err.get("msg", "Invalid value"),
            "code": err.get("type", "invalid"),
        })
    return entries
