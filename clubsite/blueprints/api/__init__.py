from .routes import api_bp
from . import admin_routes, billing_routes, club_routes, public_routes  # noqa: F401

__all__ = ['api_bp']
