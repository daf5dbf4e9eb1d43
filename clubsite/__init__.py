"""Application factory for the club website platform."""

from __future__ import annotations

import os
from flask import Flask, jsonify, render_template, request

from clubsite.blueprints.api import api_bp
from clubsite.blueprints.public import public_bp
from clubsite.config import Config
from clubsite.extensions import (
    db,
    migrate,
    login_manager,
    csrf,
    limiter,
)
from clubsite.security.config import (
    configure_security_headers,
    validate_input_length,
)
from clubsite.services.docstore import MAX_BATCH_OPERATIONS, DocumentStore


def init_docstore(app: Flask) -> DocumentStore:
    """Build the document store once; a broken database stops startup."""
    chunk_size = int(app.config.get('BATCH_CHUNK_SIZE', 450))
    if not 1 <= chunk_size <= MAX_BATCH_OPERATIONS:
        raise RuntimeError(
            f"BATCH_CHUNK_SIZE must be between 1 and {MAX_BATCH_OPERATIONS}, got {chunk_size}"
        )

    store = DocumentStore(db)
    with app.app_context():
        if app.config.get('AUTO_CREATE_TABLES'):
            db.create_all()
        store.ping()
    app.extensions['docstore'] = store
    return store


def create_app(config_class=Config):
    """Create Flask application."""
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_object(config_class)

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # Ensure models are registered for migrations
    import clubsite.models  # noqa: F401
    # Registers the bearer-token loaders on login_manager
    import clubsite.auth  # noqa: F401

    init_docstore(app)

    configure_security_headers(app)
    validate_input_length(app)

    if os.getenv("FLASK_ENV") == "development":
        app.config["TEMPLATES_AUTO_RELOAD"] = True
        app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 0
        app.jinja_env.auto_reload = True

    # The JSON API authenticates with bearer tokens, not cookies
    csrf.exempt(api_bp)
    app.register_blueprint(api_bp, url_prefix='/api')
    app.register_blueprint(public_bp)

    @app.errorhandler(404)
    def not_found(error):
        if request.path.startswith('/api/'):
            return jsonify({'message': 'Not found'}), 404
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    def internal_error(error):
        return render_template('errors/500.html'), 500

    from clubsite.commands import register_commands
    register_commands(app)

    return app
