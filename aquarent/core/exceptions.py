"""
Typed errors raised by the rental lifecycle services.

Every error carries a stable machine-readable ``kind`` and an HTTP status code.
The API layer renders them as ``{"error": {"kind": ..., "message": ...}}``.
"""

from typing import Optional


class RentalError(Exception):
    """Base class for all business errors."""

    kind: str = "error"
    status_code: int = 400

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(RentalError):
    """Referenced entity does not exist."""
    kind = "not_found"
    status_code = 404


class PermissionDeniedError(RentalError):
    """Role or ownership check failed."""
    kind = "permission_denied"
    status_code = 403


class InvalidStateError(RentalError):
    """Operation is not legal for the entity's current status."""
    kind = "invalid_state"
    status_code = 422


class InvalidSignatureError(RentalError):
    """Payment callback signature did not match."""
    kind = "invalid_signature"
    status_code = 400


class ConflictError(RentalError):
    """A concurrent mutation won the race for this entity."""
    kind = "conflict"
    status_code = 409


class ValidationFailedError(RentalError):
    """Malformed input that passed schema validation."""
    kind = "validation_error"
    status_code = 400


class GatewayError(RentalError):
    """The payment gateway rejected or failed an outbound call."""
    kind = "gateway_error"
    status_code = 502
