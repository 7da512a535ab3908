import os
import secrets
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from logging_helper import LoggingHelper, LogType

load_dotenv()

# Get logger instances
logger = LoggingHelper.get_logger(LogType.MAIN)

from database import Database, get_database
from error_handler import SecurityError
from routes.datatables_routes import bp as datatables_bp, init_datatables_routes
from settings import DatatablesSettings
from tables.columns import validate_registry
from tables.registry import TableRegistry
from tables.service import DatatablesService

# SECURITY: Headers that should never be logged in full
SENSITIVE_HEADERS = {
    'Authorization', 'Cookie', 'X-API-Key', 'X-Auth-Token',
    'X-CSRFToken', 'X-Session-Token', 'API-Key', 'Bearer'
}


def _sanitize_headers(headers: dict) -> dict:
    """Sanitize sensitive headers before logging."""
    sanitized = {}
    for key, value in headers.items():
        if key in SENSITIVE_HEADERS or key.lower() in {'authorization', 'cookie'}:
            sanitized[key] = '***REDACTED***'
        else:
            sanitized[key] = value
    return sanitized


def _get_secret_key() -> str:
    """Secret key from FLASK_SECRET_KEY, else a per-process key."""
    env_key = os.environ.get('FLASK_SECRET_KEY')
    if env_key:
        return env_key
    logger.warning("FLASK_SECRET_KEY not set. Using a per-process key.")
    return secrets.token_hex(32)


def create_app(db: Optional[Database] = None, settings: Optional[DatatablesSettings] = None,
               registry: Optional[TableRegistry] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        db: Database to read from (default: the shared database)
        settings: Datatables settings (default: loaded from the environment)
        registry: Registered tables (default: loaded from CANVASTACK_DT_TABLES_FILE)
    """
    # Fail fast when a column option has no handler
    validate_registry()

    app = Flask(__name__)

    # ============================================================================
    # FLASK CONFIGURATION
    # ============================================================================

    app.config['SECRET_KEY'] = _get_secret_key()
    app.config['WTF_CSRF_SSL_STRICT'] = False

    # SECURITY: Enable CSRF protection for all POST/PUT/DELETE requests
    csrf = CSRFProtect(app)

    # ============================================================================
    # SERVICE INITIALIZATION
    # ============================================================================

    settings = settings or DatatablesSettings.from_env()
    service = DatatablesService(
        db if db is not None else get_database(),
        settings,
        registry if registry is not None else TableRegistry.from_file(),
    )
    logger.info(f"Datatables service ready (mode={settings.mode}, "
                f"pipeline_enabled={settings.pipeline_enabled}, tables={service.registry.keys()})")

    init_datatables_routes(service)
    app.register_blueprint(datatables_bp)
    # Datatables clients post JSON/form parameters without a CSRF token
    csrf.exempt(datatables_bp)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    # ============================================================================
    # REQUEST/RESPONSE MIDDLEWARE
    # ============================================================================

    @app.before_request
    def log_request_info():
        """Log all incoming requests with sanitized headers."""
        logger.debug(f"INCOMING REQUEST: {request.method} {request.path}")
        logger.debug(f"  Query string: {request.query_string.decode('utf-8')}")
        logger.debug(f"  Headers: {_sanitize_headers(dict(request.headers))}")

    @app.after_request
    def add_security_headers(response):
        """Log outgoing responses and add security headers."""
        logger.debug(f"OUTGOING RESPONSE: {request.method} {request.path} -> {response.status_code}")

        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Content-Security-Policy'] = "default-src 'self'; frame-ancestors 'self'"
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        # Table data changes between requests
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        return response

    # ============================================================================
    # ERROR HANDLERS
    # ============================================================================

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        """Handle CSRF validation errors with helpful message."""
        logger.warning(f"CSRF validation failed: {e.description}")
        return jsonify({'success': False, 'error': 'CSRF validation failed'}), 400

    @app.errorhandler(SecurityError)
    def handle_security_error(e):
        return jsonify({'success': False, 'error': 'Access denied'}), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({'success': False, 'error': 'Bad request'}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Catch-all error handler; never exposes exception details."""
        if isinstance(e, HTTPException):
            return jsonify({'success': False, 'error': e.name}), e.code
        LoggingHelper.log_error_with_trace(f"Unhandled exception on {request.path}", e)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    return app


if __name__ == '__main__':
    host = os.getenv('HOST', '127.0.0.1')
    port = int(os.getenv('PORT', '8080'))
    logger.info(f"Starting datatables service on {host}:{port}")
    create_app().run(host=host, port=port, debug=False, threaded=True)
