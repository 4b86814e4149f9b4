"""Error taxonomy shared by the services and the HTTP layer.

Each error carries a stable ``code`` that clients branch on and the HTTP
status it maps to. Extra keyword details are merged into the JSON body.
"""

from typing import Any, Optional


class DocCreditError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class ValidationError(DocCreditError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 422


class TemplateNotFound(DocCreditError):
    code = "TEMPLATE_NOT_FOUND"
    status_code = 404


class PermissionDenied(DocCreditError):
    code = "PERMISSION_DENIED"
    status_code = 403


class InsufficientCredits(DocCreditError):
    code = "INSUFFICIENT_CREDITS"
    status_code = 402

    def __init__(self, message: str, *, required: int, available: int):
        super().__init__(message, details={"required": required, "available": available})
        self.required = required
        self.available = available


class ConflictError(DocCreditError):
    code = "CONFLICT"
    status_code = 409


class NotFoundError(DocCreditError):
    code = "NOT_FOUND"
    status_code = 404


class StorageError(DocCreditError):
    code = "STORAGE_ERROR"
    status_code = 503
