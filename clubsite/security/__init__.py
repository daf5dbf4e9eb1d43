"""Security helpers for clubsite."""

from .config import (
    configure_security_headers,
    like_rate_limit,
    registration_rate_limit,
    validate_input_length,
)

__all__ = [
    "configure_security_headers",
    "validate_input_length",
    "registration_rate_limit",
    "like_rate_limit",
]
