"""JSON API blueprint and its error handling."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from clubsite.errors import ClubsiteError, ValidationError

api_bp = Blueprint('api', __name__)


def json_body() -> dict[str, Any]:
    """Return the request's JSON object or raise a 400."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def required_str(body: dict[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", field=name)
    return value.strip()


@api_bp.errorhandler(ClubsiteError)
def handle_clubsite_error(error: ClubsiteError):
    if error.status_code >= 500:
        current_app.logger.error(f"{request.method} {request.path}: {error.message}")
    return jsonify(error.to_dict()), error.status_code


@api_bp.errorhandler(HTTPException)
def handle_http_error(error: HTTPException):
    return jsonify({'message': error.description or error.name}), error.code


@api_bp.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    current_app.logger.exception(f"Unhandled error on {request.method} {request.path}")
    return jsonify({'message': 'Internal server error'}), 500


__all__ = ['api_bp', 'json_body', 'required_str']
