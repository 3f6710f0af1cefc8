# api/friends.py
"""
Friend invitation email API
"""

from flask import Blueprint, request, jsonify, session, current_app
import logging

from core.email_provider import EmailProviderError
from core.models import FriendStatus, ValidationError
from core.security_manager import InvalidInvitationError, get_security_manager
from core.template_engine import TemplateRenderingError
from middleware.security import limiter
from services.friend_mailer import FriendInvitation
from services.user_data import get_mailer, open_user_store

friends_bp = Blueprint('friends', __name__)
logger = logging.getLogger(__name__)


def _email_limit():
    return current_app.config.get('EMAIL_RATE_LIMIT', '20 per hour')


def _remember_friend(user_id: str, name: str, email: str, status: FriendStatus):
    """Add or update the friend in the signed-in user's list"""
    store = open_user_store(user_id)
    existing = store.find_friend_by_email(email)
    if existing is None:
        return store.add_friend({'name': name, 'email': email, 'status': status.value})
    if existing.status != status:
        return store.update_friend_status(existing.id, status)
    return existing


@friends_bp.route('/send-request', methods=['POST'])
@limiter.limit(_email_limit)
def send_request():
    """Email a friend request to friendEmail"""
    try:
        invitation = FriendInvitation.from_request(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    try:
        outcome = get_mailer().send_request(invitation)
    except (EmailProviderError, TemplateRenderingError) as e:
        logger.error(f"Friend request email failed: {str(e)}")
        return jsonify({'error': 'Failed to send email'}), 500
    except Exception as e:
        logger.error(f"Send friend request error: {str(e)}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500

    user_id = session.get('user_id')
    if user_id:
        _remember_friend(user_id, invitation.friend_name, invitation.friend_email,
                         FriendStatus.PENDING)
    get_security_manager().log_security_event('friend_request_sent', {
        'delivered': outcome.data is not None
    })
    return jsonify(outcome.to_dict())


@friends_bp.route('/accept', methods=['POST'])
@limiter.limit(_email_limit)
def accept_request():
    """Confirm a friend request, from an invitation token or explicit fields"""
    data = request.get_json(silent=True) or {}
    token = data.get('token') if isinstance(data, dict) else None
    try:
        if token:
            invitation = get_mailer().invitation_from_token(token)
        else:
            invitation = FriendInvitation.from_request(data)
    except InvalidInvitationError as e:
        get_security_manager().log_security_event('invalid_invitation_token')
        return jsonify({'error': str(e)}), 400
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    try:
        outcome = get_mailer().send_acceptance(invitation)
    except (EmailProviderError, TemplateRenderingError) as e:
        logger.error(f"Acceptance email failed: {str(e)}")
        return jsonify({'error': 'Failed to send acceptance email'}), 500
    except Exception as e:
        logger.error(f"Accept friend request error: {str(e)}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500

    body = outcome.to_dict()
    body['invitation'] = invitation.to_dict()
    user_id = session.get('user_id')
    if user_id:
        friend = _remember_friend(user_id, invitation.sender_name, invitation.sender_email,
                                  FriendStatus.ACCEPTED)
        body['friend'] = friend.to_dict()
    return jsonify(body)


@friends_bp.route('/test', methods=['GET'])
def test_email():
    """Whether outbound email is configured"""
    return jsonify(get_mailer().status())
