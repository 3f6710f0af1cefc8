# middleware/security.py
"""
Security Middleware for Request Processing
"""

from flask import request, jsonify, session, current_app, g
from functools import wraps
import logging
from datetime import datetime

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from core.security_manager import get_security_manager

logger = logging.getLogger(__name__)

# Bound to the application in create_app
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per hour"]
)


def security_headers(response):
    """Add the configured security headers to all responses"""
    headers = current_app.config.get('SECURITY_HEADERS', {})
    for name, value in headers.items():
        response.headers.setdefault(name, value)

    csp = current_app.config.get('CSP_POLICY')
    if csp:
        response.headers.setdefault(
            'Content-Security-Policy', '; '.join(f"{k} {v}" for k, v in csp.items())
        )
    return response


def current_user_id():
    return session.get('user_id')


def require_auth(f):
    """Decorator to require a signed-in session; the user id is placed on g"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = current_user_id()
        if not user_id:
            get_security_manager().log_security_event('unauthorized_access_attempt', {
                'endpoint': request.endpoint,
                'method': request.method
            })
            return jsonify({'error': 'Authentication required'}), 401

        g.user_id = user_id
        # Update last activity
        session['last_activity'] = datetime.utcnow().isoformat()

        return f(*args, **kwargs)
    return decorated_function
