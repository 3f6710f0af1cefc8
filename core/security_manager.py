# core/security_manager.py
"""
Security Manager for FocusOS
- Password hashing for the hosted auth provider
- Encrypted, time-limited friend invitation tokens
- Audit logging of security events
"""

import hashlib
import secrets
import hmac
import base64
import json
import logging
from collections import deque, Counter
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple, Any
from dataclasses import dataclass, asdict

from flask import current_app, request, session, has_app_context, has_request_context
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.backends import default_backend

# Configure logging
logger = logging.getLogger(__name__)


class InvalidInvitationError(Exception):
    """Invitation token is malformed, tampered with or expired"""
    pass


@dataclass
class SecurityAuditLog:
    """Security audit log entry"""
    timestamp: str
    event_type: str
    user_id: Optional[str]
    source_ip: str
    resource: str
    action: str
    details: Dict[str, Any]


class SecurityManager:
    """
    Key management, hashing and audit trail for the application
    """

    def __init__(self, app=None, audit_capacity: int = 500):
        """
        Initialize security manager

        Args:
            app: Flask application instance
            audit_capacity: number of recent audit entries kept in memory
        """
        self.app = app
        self.cipher = None
        self.password_iterations = 200000
        self.invitation_max_age = timedelta(days=7)
        if app is not None:
            self.password_iterations = app.config.get('PASSWORD_HASH_ITERATIONS', 200000)
            self.invitation_max_age = timedelta(days=app.config.get('INVITATION_MAX_AGE_DAYS', 7))

        self.audit_log = deque(maxlen=audit_capacity)
        self._init_encryption()

        logger.info("SecurityManager initialized")

    def _init_encryption(self):
        """Derive the Fernet key from the application secret"""
        master_key = self._get_or_generate_master_key()
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b'focusos_invitation_salt',
            iterations=100000,
            backend=default_backend()
        )
        key = base64.urlsafe_b64encode(kdf.derive(master_key.encode()))
        self.cipher = Fernet(key)

    def _get_or_generate_master_key(self) -> str:
        if self.app:
            for name in ('ENCRYPTION_KEY', 'SECRET_KEY'):
                if self.app.config.get(name):
                    return str(self.app.config[name])

        # Tokens issued with a generated key do not survive a restart
        master_key = secrets.token_urlsafe(32)
        logger.warning("Generated new master key - invitation links will not survive a restart")
        return master_key

    # Passwords

    def hash_password(self, password: str, salt: Optional[str] = None) -> Tuple[str, str]:
        """
        Hash password with secure salt

        Args:
            password: Plain text password
            salt: Optional salt (generates new if not provided)

        Returns:
            Tuple of (hashed_password, salt)
        """
        if salt is None:
            salt = secrets.token_hex(16)

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode(),
            iterations=self.password_iterations,
            backend=default_backend()
        )

        hashed = base64.b64encode(kdf.derive(password.encode())).decode()
        return hashed, salt

    def verify_password(self, password: str, hashed_password: str, salt: str) -> bool:
        computed_hash, _ = self.hash_password(password, salt)
        return hmac.compare_digest(hashed_password, computed_hash)

    # Invitation tokens

    def issue_invitation_token(self, payload: Dict[str, Any]) -> str:
        """Encrypt an invitation payload into a URL-safe token"""
        data = json.dumps(payload, separators=(',', ':'), sort_keys=True)
        return self.cipher.encrypt(data.encode('utf-8')).decode('ascii')

    def read_invitation_token(self, token: str, max_age: Optional[timedelta] = None) -> Dict[str, Any]:
        """
        Decrypt an invitation token

        Raises:
            InvalidInvitationError: token tampered with, malformed or older than max_age
        """
        max_age = max_age or self.invitation_max_age
        if not isinstance(token, str) or not token:
            raise InvalidInvitationError("Invitation token is required")
        try:
            data = self.cipher.decrypt(token.encode('ascii'), ttl=int(max_age.total_seconds()))
            payload = json.loads(data.decode('utf-8'))
        except (InvalidToken, UnicodeError, ValueError) as e:
            raise InvalidInvitationError("Invitation link is invalid or has expired") from e
        if not isinstance(payload, dict):
            raise InvalidInvitationError("Invitation link is invalid or has expired")
        return payload

    # Audit trail

    def log_security_event(self, event_type: str, details: Dict[str, Any] = None,
                           user_id: Optional[str] = None):
        """
        Log security event for audit trail

        Args:
            event_type: Type of security event
            details: Additional event details
            user_id: acting user, defaults to the session user
        """
        if has_request_context():
            user_id = user_id or session.get('user_id')
            source_ip = request.remote_addr or 'unknown'
            resource = request.endpoint or request.path
            action = request.method
        else:
            source_ip = resource = action = 'system'

        entry = SecurityAuditLog(
            timestamp=datetime.utcnow().isoformat(),
            event_type=event_type,
            user_id=user_id,
            source_ip=source_ip,
            resource=resource,
            action=action,
            details=details or {}
        )
        self.audit_log.append(entry)
        logger.info(f"Security event logged: {event_type} user={user_id} ip={source_ip}")

    def get_security_metrics(self) -> Dict[str, Any]:
        counts = Counter(entry.event_type for entry in self.audit_log)
        return {
            'recent_events': len(self.audit_log),
            'events_by_type': dict(counts),
            'last_event': asdict(self.audit_log[-1]) if self.audit_log else None,
        }


def fingerprint(value: str) -> str:
    """Short non-reversible identifier for log lines"""
    return hashlib.sha256(value.lower().encode('utf-8')).hexdigest()[:12]


# Global security manager instance
security_manager = None

def init_security_manager(app):
    """Initialize global security manager"""
    global security_manager
    security_manager = SecurityManager(app)
    app.extensions['security_manager'] = security_manager
    return security_manager


def get_security_manager() -> SecurityManager:
    """Security manager of the current application"""
    if has_app_context():
        manager = current_app.extensions.get('security_manager')
        if manager is not None:
            return manager
    if security_manager is None:
        raise RuntimeError("Security manager has not been initialized")
    return security_manager
