"""Response hardening and request guards."""

from flask import abort, request


def configure_security_headers(app):
    """Configure security headers."""

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        if response.mimetype == 'text/html':
            # Club pages show logos from any https host and embed YouTube videos
            csp_directives = [
                "default-src 'self'",
                "script-src 'self'",
                "style-src 'self' 'unsafe-inline'",
                "img-src 'self' data: https:",
                "frame-src https://www.youtube.com https://www.youtube-nocookie.com",
                "connect-src 'self'",
                "frame-ancestors 'none'",
                "base-uri 'self'",
                "form-action 'self'"
            ]
            response.headers['Content-Security-Policy'] = "; ".join(csp_directives)

        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response

    return app


def validate_input_length(app):
    """Reject request bodies above ``MAX_REQUEST_BYTES``."""
    limit = app.config.get('MAX_REQUEST_BYTES', 1024 * 1024)

    @app.before_request
    def limit_request_size():
        if request.content_length and request.content_length > limit:
            abort(413)

    return app


# Rate limits for unauthenticated or cheap-to-abuse endpoints
def registration_rate_limit():
    return "10 per hour"


def like_rate_limit():
    return "30 per minute"


__all__ = [
    'configure_security_headers',
    'validate_input_length',
    'registration_rate_limit',
    'like_rate_limit',
]
