"""
Main Flask application for the Trust & Safety admin backend.
Organized with modular route blueprints, one per feature.

Run locally with ``python -m safety_admin.app`` or under a WSGI server with
``gunicorn 'safety_admin.app:create_app()'``.
"""
import os
import time
import uuid
from typing import Optional

from flask import Flask, request, g, jsonify
from flask_cors import CORS
from flask_compress import Compress
from flask_talisman import Talisman

from safety_admin.config.env_config import SafetyConfig, load_env_file

# Load environment variables from .env file
load_env_file()

# Initialize logging service FIRST (before other imports)
from safety_admin.services.system.logger_service import get_logger
logger = get_logger(__name__)

from safety_admin.common.base.base_controller import BaseController
from safety_admin.common.errors import SafetyAdminError
from safety_admin.container import SafetyContainer, build_default_container
from safety_admin.services.system.auth_middleware import global_auth_middleware
from safety_admin.services.system.security import configure_limiter

from safety_admin.features.appeals.index import create_appeals_blueprint
from safety_admin.features.audit.index import create_audit_blueprint
from safety_admin.features.moderation.index import create_moderation_blueprint
from safety_admin.features.users.index import create_users_blueprint


def _resolve_service(path: str) -> str:
    parts = [segment for segment in (path or '').split('/') if segment]
    if not parts:
        return 'root'
    if parts[0] != 'api':
        return parts[0]
    if len(parts) > 2 and parts[1] in ('admin', 'internal'):
        return parts[2]
    return parts[1] if len(parts) > 1 else 'api'


def _resolve_audit_risk(path: str) -> str:
    high_risk_paths = (
        '/api/admin/users',
        '/api/admin/bans',
        '/api/admin/moderation',
        '/api/admin/archive',
        '/api/internal/archive',
    )
    if any(path.startswith(prefix) for prefix in high_risk_paths):
        return 'high'
    return 'medium'


def _resolve_allowed_origins(raw_origins: Optional[str]):
    if not raw_origins or raw_origins.strip() == '*':
        return '*'

    origins = [origin.strip() for origin in raw_origins.split(',') if origin.strip()]
    return origins or '*'


def _register_request_logging(app: Flask) -> None:
    @app.before_request
    def _check_authentication():
        """Global authentication check for all API endpoints"""
        return global_auth_middleware()

    @app.before_request
    def _log_request_start():
        g.request_start = time.time()
        g.request_id = uuid.uuid4().hex
        g.request_service = _resolve_service(request.path)

    @app.after_request
    def _log_request_end(response):
        duration_ms = None
        if hasattr(g, 'request_start'):
            duration_ms = round((time.time() - g.request_start) * 1000, 2)

        request_id = getattr(g, 'request_id', None)
        service = getattr(g, 'request_service', None) or _resolve_service(request.path)
        user_email = getattr(g, 'user_email', None)
        user_id = getattr(g, 'user_id', None)
        remote_addr = request.headers.get('X-Forwarded-For', request.remote_addr)

        logger.info(
            f"{request.method} {request.path}",
            extra={
                'request_id': request_id,
                'request_method': request.method,
                'request_path': request.path,
                'request_query': request.query_string.decode('utf-8', errors='ignore') if request.query_string else '',
                'request_service': service,
                'request_status': response.status_code,
                'request_duration_ms': duration_ms,
                'user_email': user_email,
                'user_id': user_id,
                'remote_addr': remote_addr,
            }
        )

        if request.method in ('POST', 'PUT', 'PATCH', 'DELETE'):
            logger.info(
                "AUDIT_EVENT",
                extra={
                    'audit_action': 'API_CALL',
                    'audit_resource': request.path,
                    'audit_user_email': user_email or 'unknown',
                    'audit_user_id': user_id or 'unknown',
                    'audit_success': response.status_code < 400,
                    'audit_risk_level': _resolve_audit_risk(request.path),
                    'audit_timestamp': time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime()),
                    'audit_source': 'backend',
                    'audit_notes': {
                        'method': request.method,
                        'service': service,
                        'status': response.status_code,
                        'request_id': request_id,
                        'remote_addr': remote_addr,
                    }
                }
            )

        return response


def create_app(container: Optional[SafetyContainer] = None, config: Optional[SafetyConfig] = None) -> Flask:
    config = config or (container.config if container else SafetyConfig.from_env())
    container = container or build_default_container(config)

    app = Flask(__name__)
    _register_request_logging(app)

    # Content Security Policy (CSP)
    # For a JSON API, block frames and objects; allow only same-origin resources.
    csp = {
        'default-src': ["'self'"],
        'frame-ancestors': ["'none'"],
        'form-action': ["'self'"],
    }

    Talisman(
        app,
        force_https=config.is_production,
        content_security_policy=csp,
        strict_transport_security=config.is_production,
        session_cookie_secure=config.is_production,
        session_cookie_http_only=True
    )

    limiter = configure_limiter(app, config.rate_limit_storage_uri, config.public_rate_limit_enabled)

    # Enable Gzip compression for all responses
    Compress(app)

    CORS(
        app,
        resources={r"/*": {"origins": _resolve_allowed_origins(config.frontend_origin)}},
        expose_headers='*',
        allow_headers='*',
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']
    )

    error_controller = BaseController()

    @app.errorhandler(SafetyAdminError)
    def _handle_typed_error(exc):
        return error_controller.handle_exception(exc)

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok', 'environment': config.environment})

    # Register all blueprints
    app.register_blueprint(create_users_blueprint(container, limiter, config.public_rate_limit))
    app.register_blueprint(create_moderation_blueprint(container))
    app.register_blueprint(create_appeals_blueprint(container, limiter, config.public_rate_limit))
    app.register_blueprint(create_audit_blueprint(container))

    app.extensions['safety_container'] = container
    return app


if __name__ == '__main__':
    app = create_app()
    host = os.getenv('FLASK_RUN_HOST', os.getenv('HOST', '0.0.0.0'))
    port = int(os.getenv('FLASK_RUN_PORT', os.getenv('PORT', '5000')))

    logger.info(
        "Starting Flask server",
        extra={
            'host': host,
            'port': port,
            'environment': os.getenv('ENVIRONMENT', 'development'),
            'frontend_origin': os.getenv('FRONTEND_ORIGIN', '*')
        }
    )

    app.run(debug=False, host=host, port=port, threaded=True)
