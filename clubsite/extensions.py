"""Extension singletons bound to the app by ``create_app``.

``db`` owns the ``document`` table behind the document store. ``login_manager``
never reads a session cookie: ``clubsite.auth`` registers a request loader
that turns the bearer ID token into an account. CSRF protection applies to
the server-rendered pages; the JSON API blueprint is exempted in the factory.
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()

# SQLite needs batch mode for ALTER TABLE in generated revisions
migrate = Migrate(render_as_batch=True)

login_manager = LoginManager()

csrf = CSRFProtect()

# Public club pages are anonymous, so limits key on the client address.
# Storage comes from RATELIMIT_STORAGE_URI.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per day", "200 per hour"],
    headers_enabled=True,
)
