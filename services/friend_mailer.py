# services/friend_mailer.py
"""
Friend invitation and acceptance emails

When the email provider is not configured the mailer reports success
without sending, so the rest of the friends flow keeps working in
development and build environments.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote
from dataclasses import dataclass, asdict

from core.email_provider import EmailMessage, EmailProvider, DEFAULT_FROM
from core.models import ValidationError, normalize_email
from core.security_manager import SecurityManager, fingerprint
from core.template_engine import EmailTemplateEngine

logger = logging.getLogger(__name__)

NOT_CONFIGURED_SUFFIX = ' (email service not configured)'


@dataclass
class FriendInvitation:
    """Who invited whom; field names follow the JSON request bodies"""
    friend_email: str
    friend_name: str
    sender_email: str
    sender_name: str

    REQUEST_FIELDS = {
        'friendEmail': 'friend_email',
        'friendName': 'friend_name',
        'senderEmail': 'sender_email',
        'senderName': 'sender_name',
    }

    @classmethod
    def from_request(cls, data: Optional[Dict[str, Any]]) -> 'FriendInvitation':
        """
        Build from a camelCase request body

        Raises:
            ValidationError: a field is missing or an address is invalid
        """
        data = data or {}
        values = {}
        for key, name in cls.REQUEST_FIELDS.items():
            value = data.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError("Missing required fields", key)
            values[name] = value.strip()
        values['friend_email'] = normalize_email(values['friend_email'], 'friendEmail')
        values['sender_email'] = normalize_email(values['sender_email'], 'senderEmail')
        return cls(**values)

    def to_token_payload(self) -> Dict[str, Any]:
        payload = {key: getattr(self, name) for key, name in self.REQUEST_FIELDS.items()}
        payload['issuedAt'] = datetime.utcnow().isoformat()
        return payload

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MailOutcome:
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class FriendMailer:
    """
    Composes and delivers the friend emails

    Args:
        provider: configured email provider
        templates: email template engine
        security: issues and reads invitation tokens
        app_url: public base URL of the front-end
        from_address: sender shown in the From header
        async_delivery: queue through Celery instead of sending inline
    """

    def __init__(self, provider: EmailProvider, templates: EmailTemplateEngine,
                 security: SecurityManager, app_url: str = 'http://localhost:3000',
                 from_address: str = DEFAULT_FROM, async_delivery: bool = False):
        self.provider = provider
        self.templates = templates
        self.security = security
        self.app_url = (app_url or '').rstrip('/')
        self.from_address = from_address
        self.async_delivery = async_delivery

    @property
    def configured(self) -> bool:
        return self.provider.configured

    def status(self) -> Dict[str, Any]:
        if self.configured:
            return {
                'status': 'Email API configured',
                'hasApiKey': True,
                'message': 'Email functionality is ready and configured.',
                'provider': self.provider.name,
            }
        return {
            'status': 'Email API not configured',
            'hasApiKey': False,
            'message': 'Email functionality is not configured. Set RESEND_API_KEY '
                       '(or EMAIL_PROVIDER=smtp with SMTP_HOST) to start sending emails.',
            'provider': self.provider.name,
        }

    def _deliver(self, message: EmailMessage) -> Dict[str, Any]:
        if self.async_delivery:
            from tasks.email_sender import send_transactional_email
            task = send_transactional_email.delay(message.to_dict())
            logger.info(f"Queued email task {task.id}")
            return {'queued': True, 'task_id': task.id}
        return self.provider.send(message).to_dict()

    def send_request(self, invitation: FriendInvitation) -> MailOutcome:
        """Email the invitation, with a signed accept link, to the friend"""
        if not self.configured:
            logger.info("Email provider not configured - skipping email for friend request")
            return MailOutcome(True, 'Friend request processed successfully' + NOT_CONFIGURED_SUFFIX)

        token = self.security.issue_invitation_token(invitation.to_token_payload())
        subject = f"{invitation.sender_name} wants to be your friend on FocusOS!"
        rendered = self.templates.render('friend_request.html', subject, {
            'friend_name': invitation.friend_name,
            'sender_name': invitation.sender_name,
            'sender_email': invitation.sender_email,
            'accept_url': f"{self.app_url}/friends/accept?token={quote(token)}",
            'expires_days': self.security.invitation_max_age.days,
            'year': datetime.utcnow().year,
        })
        message = EmailMessage(
            to=[invitation.friend_email],
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            from_address=self.from_address,
            reply_to=invitation.sender_email,
            tags={'category': 'friend_request'}
        )
        data = self._deliver(message)
        logger.info(f"Friend request email sent to {fingerprint(invitation.friend_email)}")
        return MailOutcome(True, 'Friend request email sent successfully', data)

    def invitation_from_token(self, token: str) -> FriendInvitation:
        """
        Raises:
            InvalidInvitationError: token invalid or expired
            ValidationError: token payload incomplete
        """
        payload = self.security.read_invitation_token(token)
        return FriendInvitation.from_request(payload)

    def send_acceptance(self, invitation: FriendInvitation) -> MailOutcome:
        """Tell the original sender that the friend accepted"""
        if not self.configured:
            logger.info("Email provider not configured - skipping email for friend request acceptance")
            return MailOutcome(True, 'Friend request accepted successfully' + NOT_CONFIGURED_SUFFIX)

        subject = f"{invitation.friend_name} accepted your friend request on FocusOS!"
        rendered = self.templates.render('friend_accepted.html', subject, {
            'friend_name': invitation.friend_name,
            'sender_name': invitation.sender_name,
            'friends_url': f"{self.app_url}/friends",
            'year': datetime.utcnow().year,
        })
        message = EmailMessage(
            to=[invitation.sender_email],
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            from_address=self.from_address,
            tags={'category': 'friend_accepted'}
        )
        data = self._deliver(message)
        logger.info(f"Acceptance email sent to {fingerprint(invitation.sender_email)}")
        return MailOutcome(True, 'Friend request accepted successfully', data)
