"""Exception hierarchy shared by services and blueprints."""

from __future__ import annotations


class ClubsiteError(Exception):
    """Base error carrying the HTTP status it should surface as."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(ClubsiteError):
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.field:
            payload["field"] = self.field
        return payload


class AuthenticationError(ClubsiteError):
    status_code = 401
    default_message = "Not authenticated"


class PermissionDenied(ClubsiteError):
    status_code = 403
    default_message = "You do not have permission to manage this club"


class NotFoundError(ClubsiteError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ClubsiteError):
    status_code = 409
    default_message = "Conflict"


class PaymentNotConfigured(ClubsiteError):
    status_code = 500
    default_message = "Stripe is not correctly configured on the server."


__all__ = [
    "ClubsiteError",
    "ValidationError",
    "AuthenticationError",
    "PermissionDenied",
    "NotFoundError",
    "ConflictError",
    "PaymentNotConfigured",
]
