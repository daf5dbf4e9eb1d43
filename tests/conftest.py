"""Shared fixtures: an app on in-memory SQLite, bearer tokens and seed helpers."""

import hashlib
import hmac
import time

import jwt
import pytest

from clubsite import create_app
from clubsite.config import Config
from clubsite.extensions import db
from clubsite.services.clubs import register_club
from clubsite.services.docstore import get_store

TOKEN_SECRET = 'test-identity-secret'
WEBHOOK_SECRET = 'whsec_test_secret'


class IsolatedConfig(Config):
    __test__ = False

    TESTING = True
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    AUTO_CREATE_TABLES = True
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False

    IDENTITY_TOKEN_SECRET = TOKEN_SECRET
    IDENTITY_JWKS_URL = None
    IDENTITY_ISSUER = 'https://identity.example.com'
    IDENTITY_AUDIENCE = 'clubsite-test'

    STRIPE_SECRET_KEY = 'sk_test_123'
    STRIPE_PRICE_ID = 'price_pro'
    STRIPE_PRICE_ID_OFFICIA = 'price_officia'
    STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    CHECKOUT_DEDUP_WINDOW_SECONDS = 600

    PUBLIC_SITE_URL = 'https://clubs.example.com'
    HERO_NEWS_LIMIT = 3
    BATCH_CHUNK_SIZE = 450
    PLAYER_STATS_CACHE_TTL_SECONDS = 300


@pytest.fixture
def app():
    """Create and configure a test application instance.

    No app context stays pushed: each test client request gets its own,
    so the authenticated account never leaks between requests.
    """
    app = create_app(IsolatedConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """Push an app context for tests that call services directly."""
    with app.app_context():
        yield app


@pytest.fixture
def store(ctx):
    return get_store()


def make_token(uid, secret=TOKEN_SECRET, **claims):
    now = int(time.time())
    body = {
        'sub': uid,
        'iss': IsolatedConfig.IDENTITY_ISSUER,
        'aud': IsolatedConfig.IDENTITY_AUDIENCE,
        'iat': now,
        'exp': now + 3600,
    }
    body.update(claims)
    return jwt.encode(body, secret, algorithm='HS256')


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def auth_headers():
    def _headers(uid, **claims):
        return {'Authorization': f'Bearer {make_token(uid, **claims)}'}
    return _headers


def sign_stripe_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a ``Stripe-Signature`` header the way Stripe signs webhooks."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f'{timestamp}.{payload}'.encode('utf-8')
    signature = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f't={timestamp},v1={signature}'


def seed_club(app, owner_uid='owner-1', club_id='fc-demo', club_name='FC Demo', **profile_fields):
    """Register a club and optionally patch extra profile fields."""
    with app.app_context():
        profile = register_club(owner_uid, club_id, club_name)
        if profile_fields:
            get_store().collection('club_profiles').document(profile.doc_id).set(profile_fields, merge=True)
        return profile.main_team_id


def add_player(store, owner_uid, team_id, name, **fields):
    ref = store.collection('clubs').document(owner_uid).collection('teams').document(team_id).collection('players').document()
    ref.set({'name': name, 'isPublished': True, 'seasons': [], 'seasonData': {}, **fields})
    return ref.id
