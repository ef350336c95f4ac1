"""
Global Authentication Middleware
Protects all API endpoints with Firebase token verification
Supports both Bearer tokens and Firebase session cookies
"""
from functools import wraps
from typing import Optional

from flask import request, jsonify, g
from firebase_admin import auth

from safety_admin.common.actor import ActorContext
from safety_admin.common.errors import UnauthorizedError
from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)

# Endpoints that do not require authentication.
PUBLIC_ENDPOINTS = [
    '/api/health',
    '/health',
    '/api/appeals',  # Self-service appeal submission (banned accounts cannot sign in)
    '/api/internal/archive/deletions',  # Change-stream push; checked with X-Archive-Token
]

# Prefix patterns for public read-only endpoints (GET only).
PUBLIC_PREFIXES = [
    '/api/ban-status/',  # Public ban-status check by username
]

# Session cookie name (must match the admin frontend's session manager).
SESSION_COOKIE_NAME = 'admin-session'


class AuthenticationError(Exception):
    """Token or session cookie could not be verified."""


def is_public_endpoint(path: str, method: str = 'GET') -> bool:
    """Check whether the endpoint is public (no auth required)."""
    if path in PUBLIC_ENDPOINTS:
        return True

    # Prefix matches are only public for GET requests (read-only).
    if method == 'GET':
        for prefix in PUBLIC_PREFIXES:
            if path.startswith(prefix):
                return True

    return False


def verify_firebase_token(id_token: str) -> dict:
    """
    Verify Firebase ID token and return decoded claims

    Args:
        id_token: The Firebase ID token from Authorization header

    Returns:
        dict: Decoded token with user claims

    Raises:
        AuthenticationError: If token is invalid
    """
    try:
        return auth.verify_id_token(id_token, check_revoked=True)
    except auth.RevokedIdTokenError:
        raise AuthenticationError('Token has been revoked')
    except auth.UserDisabledError:
        raise AuthenticationError('Account is disabled')
    except auth.ExpiredIdTokenError:
        raise AuthenticationError('Token has expired')
    except auth.InvalidIdTokenError:
        raise AuthenticationError('Invalid token')
    except (ValueError, auth.CertificateFetchError) as e:
        raise AuthenticationError(f'Token verification failed: {str(e)}')


def verify_session_cookie(session_cookie: str) -> dict:
    """
    Verify Firebase session cookie and return decoded claims

    Raises:
        AuthenticationError: If session cookie is invalid
    """
    try:
        return auth.verify_session_cookie(session_cookie, check_revoked=True)
    except auth.RevokedSessionCookieError:
        raise AuthenticationError('Session has been revoked')
    except auth.UserDisabledError:
        raise AuthenticationError('Account is disabled')
    except auth.ExpiredSessionCookieError:
        raise AuthenticationError('Session has expired')
    except auth.InvalidSessionCookieError:
        raise AuthenticationError('Invalid session')
    except (ValueError, auth.CertificateFetchError) as e:
        raise AuthenticationError(f'Session verification failed: {str(e)}')


def _store_claims(claims: dict) -> None:
    g.user_id = claims.get('uid')
    g.user_email = claims.get('email')
    g.user_name = claims.get('name')
    g.is_admin = bool(claims.get('admin', False))
    g.is_super_admin = bool(claims.get('superAdmin', False))


def global_auth_middleware():
    """
    Global before_request handler for authentication
    Applied to all /api/* endpoints
    Supports both Bearer tokens and session cookies
    """
    if not request.path.startswith('/api'):
        return None

    if is_public_endpoint(request.path, request.method):
        return None

    # Skip OPTIONS requests (CORS preflight)
    if request.method == 'OPTIONS':
        return None

    auth_header = request.headers.get('Authorization')
    if auth_header and auth_header.startswith('Bearer '):
        try:
            _store_claims(verify_firebase_token(auth_header.split('Bearer ')[1]))
            logger.debug(
                "Bearer token auth passed",
                extra={
                    'user_id': g.user_id,
                    'user_email': g.user_email,
                    'is_admin': g.is_admin,
                    'path': request.path
                }
            )
            return None
        except AuthenticationError as e:
            logger.debug(f"Bearer token verification failed: {e}")
            # Fall through to try session cookie

    session_cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if session_cookie:
        try:
            _store_claims(verify_session_cookie(session_cookie))
            logger.debug(
                "Session cookie auth passed",
                extra={'user_id': g.user_id, 'is_admin': g.is_admin, 'path': request.path}
            )
            return None
        except AuthenticationError as e:
            logger.debug(f"Session cookie verification failed: {e}")

    logger.warning(
        "Unauthorized API access attempt",
        extra={
            'path': request.path,
            'method': request.method,
            'ip': request.remote_addr,
            'user_agent': request.headers.get('User-Agent', 'unknown'),
            'has_auth_header': bool(auth_header),
            'has_session_cookie': bool(session_cookie)
        }
    )
    return jsonify({
        'success': False,
        'error': 'Authentication required. Please provide a valid Bearer token in the Authorization header.'
    }), 401


def require_admin(f):
    """
    Decorator to require admin privileges.
    Relies on global_auth_middleware having populated ``g``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, 'is_admin', False):
            logger.warning(
                "Admin access denied",
                extra={
                    'user_id': getattr(g, 'user_id', 'unknown'),
                    'path': request.path
                }
            )
            error = UnauthorizedError('Admin privileges required')
            return jsonify(error.to_response()), error.http_status
        return f(*args, **kwargs)
    return decorated_function


def get_request_ip() -> Optional[str]:
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr


def current_actor() -> ActorContext:
    """The authenticated admin making this request."""
    user_id = getattr(g, 'user_id', None)
    if not user_id:
        raise UnauthorizedError('Authenticated admin required')
    return ActorContext(
        user_id=user_id,
        username=getattr(g, 'user_name', None) or getattr(g, 'user_email', None),
        ip_address=get_request_ip(),
        user_agent=request.headers.get('User-Agent'),
    )
