"""Authentication helpers shared across blueprints.

Requests authenticate with ``Authorization: Bearer <id token>``. The token is
issued by the external identity provider and verified here with PyJWT; no
server-side session is kept.
"""

from __future__ import annotations

from functools import lru_cache, wraps
from typing import Any, Callable, TypeVar, cast

import jwt
from flask import current_app, g, jsonify
from flask_login import UserMixin, current_user
from jwt import InvalidTokenError

from clubsite.errors import AuthenticationError, PermissionDenied
from clubsite.extensions import login_manager
from clubsite.services.identity import ResolveMode, require_club

F = TypeVar('F', bound=Callable[..., object])

UID_CLAIMS = ('sub', 'user_id', 'uid')


class Account(UserMixin):
    """An identity-provider account authenticated for one request."""

    def __init__(self, uid: str, claims: dict[str, Any]):
        self.uid = uid
        self.claims = claims

    def get_id(self) -> str:
        return self.uid

    @property
    def email(self) -> str | None:
        return self.claims.get('email')

    def __repr__(self) -> str:
        return f'<Account {self.uid}>'


@lru_cache(maxsize=4)
def _jwk_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


def verify_id_token(token: str) -> dict[str, Any]:
    """
    Decode and validate an ID token.

    Uses the provider's JWKS (RS256) when ``IDENTITY_JWKS_URL`` is set, else
    the shared ``IDENTITY_TOKEN_SECRET`` (HS256).

    Raises:
        jwt.InvalidTokenError: on any verification failure
    """
    config = current_app.config
    jwks_url = config.get('IDENTITY_JWKS_URL')
    if jwks_url:
        key = _jwk_client(jwks_url).get_signing_key_from_jwt(token).key
        algorithms = ['RS256']
    else:
        key = config.get('IDENTITY_TOKEN_SECRET')
        if not key:
            raise InvalidTokenError('no verification key configured')
        algorithms = ['HS256']

    audience = config.get('IDENTITY_AUDIENCE')
    options = {'require': ['exp', 'iat']}
    if not audience:
        options['verify_aud'] = False
    return jwt.decode(
        token,
        key,
        algorithms=algorithms,
        audience=audience,
        issuer=config.get('IDENTITY_ISSUER'),
        leeway=5,
        options=options,
    )


def uid_from_claims(claims: dict[str, Any]) -> str | None:
    for name in UID_CLAIMS:
        value = claims.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def _bearer_token(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


@login_manager.request_loader
def load_account_from_request(request) -> Account | None:
    token = _bearer_token(request.headers.get('Authorization'))
    if token is None:
        return None
    try:
        claims = verify_id_token(token)
    except InvalidTokenError as exc:
        current_app.logger.info(f"Rejected bearer token: {exc}")
        return None
    except jwt.PyJWKClientError:
        current_app.logger.exception("Could not fetch identity provider keys")
        return None
    uid = uid_from_claims(claims)
    if uid is None:
        return None
    return Account(uid, claims)


@login_manager.user_loader
def load_user(user_id: str) -> None:
    # Bearer tokens are verified per request; there is no session user.
    return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(AuthenticationError().to_dict()), 401


def token_required(func: F) -> F:
    """Decorator requiring a verified bearer token."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            raise AuthenticationError()
        return func(*args, **kwargs)
    return cast(F, wrapper)


def club_admin_required(func: F) -> F:
    """Decorator resolving the caller's club into ``g.club``.

    The caller must be the club owner or one of its delegated admins.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            raise AuthenticationError()
        club = require_club(current_user.uid, mode=ResolveMode.DELEGATED)
        if not club.profile.can_manage(current_user.uid):
            raise PermissionDenied()
        g.club = club
        return func(*args, **kwargs)
    return cast(F, wrapper)


__all__ = [
    'Account',
    'verify_id_token',
    'uid_from_claims',
    'token_required',
    'club_admin_required',
]
