import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return int(raw)


class Config:
    # Provide a safe development fallback to avoid 500s when SECRET_KEY is missing.
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-me'
    DATABASE_URL = os.getenv('DATABASE_URL')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL or 'sqlite:///clubsite.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Create the document table on startup when no migration has been applied
    AUTO_CREATE_TABLES = os.getenv('AUTO_CREATE_TABLES', 'true').lower() in ('1', 'true', 'yes')

    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    WTF_CSRF_TIME_LIMIT = None
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')

    # Identity provider (ID tokens presented as "Authorization: Bearer <token>")
    IDENTITY_TOKEN_SECRET = os.getenv('IDENTITY_TOKEN_SECRET')
    IDENTITY_JWKS_URL = os.getenv('IDENTITY_JWKS_URL')
    IDENTITY_ISSUER = os.getenv('IDENTITY_ISSUER')
    IDENTITY_AUDIENCE = os.getenv('IDENTITY_AUDIENCE')

    # Stripe billing; absent keys leave billing endpoints answering 500
    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_PRICE_ID = os.getenv('STRIPE_PRICE_ID')
    STRIPE_PRICE_ID_OFFICIA = os.getenv('STRIPE_PRICE_ID_OFFICIA')
    STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET')
    CHECKOUT_DEDUP_WINDOW_SECONDS = _int_env('CHECKOUT_DEDUP_WINDOW_SECONDS', 600)

    PUBLIC_SITE_URL = os.getenv('PUBLIC_SITE_URL', 'http://localhost:5000')

    HERO_NEWS_LIMIT = _int_env('HERO_NEWS_LIMIT', 3)
    # Stay below the 500 operation cap of a single write batch
    BATCH_CHUNK_SIZE = _int_env('BATCH_CHUNK_SIZE', 450)
    PLAYER_STATS_CACHE_TTL_SECONDS = _int_env('PLAYER_STATS_CACHE_TTL_SECONDS', 300)
    MAX_REQUEST_BYTES = _int_env('MAX_REQUEST_BYTES', 1024 * 1024)
