# api/auth.py
"""
Authentication API: sign up, sign in, sign out and profile
"""

from flask import Blueprint, request, jsonify, session, current_app
import secrets
import logging
from datetime import datetime, timedelta

from core.auth_service import AuthError
from core.models import ValidationError
from core.security_manager import get_security_manager, fingerprint
from middleware.security import limiter, require_auth
from services.user_data import get_auth_service, clear_user_data

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def _auth_limit():
    return current_app.config.get('AUTH_RATE_LIMIT', '10 per minute')


def _start_session(profile):
    session.clear()
    session.update({
        'user_id': profile.id,
        'email': profile.email,
        'session_id': secrets.token_urlsafe(32),
        'login_time': datetime.utcnow().isoformat(),
        'last_activity': datetime.utcnow().isoformat()
    })
    session.permanent = True


def _session_payload(profile):
    lifetime = current_app.config.get('PERMANENT_SESSION_LIFETIME', timedelta(hours=8))
    return {
        'success': True,
        'user': profile.to_dict(),
        'provider': get_auth_service().provider_name,
        'session_expires': (datetime.utcnow() + lifetime).isoformat()
    }


@auth_bp.route('/signup', methods=['POST'])
@limiter.limit(_auth_limit)
def signup():
    """Create an account and sign in"""
    data = request.get_json(silent=True) or {}
    email = data.get('email', '')
    try:
        profile = get_auth_service().sign_up(
            email, data.get('password', ''), data.get('display_name')
        )
    except ValidationError as e:
        return jsonify({'error': str(e), 'field': e.field_name}), 400
    except AuthError as e:
        get_security_manager().log_security_event('signup_failed', {
            'reason': str(e),
            'email': fingerprint(str(email))
        })
        return jsonify({'error': str(e)}), e.status_code

    _start_session(profile)
    get_security_manager().log_security_event('signup_success', user_id=profile.id)
    return jsonify(_session_payload(profile)), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(_auth_limit)
def login():
    """Sign in with email and password"""
    data = request.get_json(silent=True) or {}
    email = data.get('email', '')
    password = data.get('password', '')

    if not email or not isinstance(password, str):
        get_security_manager().log_security_event('login_failed', {'reason': 'missing_credentials'})
        return jsonify({'error': 'Email and password required'}), 400

    try:
        profile = get_auth_service().sign_in(email, password)
    except ValidationError as e:
        return jsonify({'error': str(e), 'field': e.field_name}), 400
    except AuthError as e:
        get_security_manager().log_security_event('login_failed', {
            'reason': 'invalid_credentials',
            'email': fingerprint(str(email))
        })
        return jsonify({'error': str(e)}), e.status_code

    _start_session(profile)
    get_security_manager().log_security_event('login_success', user_id=profile.id)
    return jsonify(_session_payload(profile))


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Sign out, removing the user's stored data when configured to"""
    user_id = session.get('user_id')
    if user_id:
        get_auth_service().sign_out(user_id)
        if current_app.config.get('CLEAR_DATA_ON_SIGNOUT', True):
            clear_user_data(user_id)
        get_security_manager().log_security_event('logout', user_id=user_id)

    session.clear()
    return jsonify({'success': True, 'message': 'Logged out successfully'})


@auth_bp.route('/session', methods=['GET'])
def current_session():
    """Signed-in user, or null"""
    user_id = session.get('user_id')
    profile = get_auth_service().get_profile(user_id) if user_id else None
    if user_id and not profile:
        session.clear()
    return jsonify({
        'authenticated': profile is not None,
        'user': profile.to_dict() if profile else None,
        'provider': get_auth_service().provider_name
    })


@auth_bp.route('/profile', methods=['GET'])
@require_auth
def get_profile():
    profile = get_auth_service().get_profile(session['user_id'])
    if not profile:
        return jsonify({'error': 'User not found'}), 404
    return jsonify({'user': profile.to_dict()})


@auth_bp.route('/profile', methods=['PATCH'])
@require_auth
def update_profile():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'JSON object body required'}), 400
    try:
        profile = get_auth_service().update_profile(session['user_id'], data)
    except ValidationError as e:
        return jsonify({'error': str(e), 'field': e.field_name}), 400
    except AuthError as e:
        return jsonify({'error': str(e)}), e.status_code

    logger.info(f"Profile updated for {profile.id}")
    return jsonify({'success': True, 'user': profile.to_dict()})
