# core/auth_service.py
"""
Authentication providers for FocusOS

DatabaseAuthService keeps accounts in the SQL users table with PBKDF2
password hashes. DemoAuthService is the fallback when no database is
configured: accounts live in the key-value storage and any password is
accepted.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass, asdict

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.database_models import User
from core.models import FocusOSError, ValidationError, generate_id, normalize_email, to_iso, utc_now
from core.storage import LocalStore

logger = logging.getLogger(__name__)

ROLES = ('admin', 'friend')
PROFILE_FIELDS = ('display_name', 'role')
MIN_PASSWORD_LENGTH = 6


class AuthError(FocusOSError):
    """Authentication failed"""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class UserProfile:
    id: str
    email: str
    display_name: str
    role: str = 'admin'
    created_at: str = ''
    updated_at: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _display_name(value, email: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return email.split('@')[0]
    if not isinstance(value, str):
        raise ValidationError("display_name must be a string", 'display_name')
    value = value.strip()
    if len(value) > 100:
        raise ValidationError("display_name must be at most 100 characters", 'display_name')
    return value


def _profile_changes(changes: Dict[str, Any], email: str) -> Dict[str, Any]:
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update profile fields: {', '.join(sorted(unknown))}")
    cleaned = {}
    if 'display_name' in changes:
        cleaned['display_name'] = _display_name(changes['display_name'], email)
    if 'role' in changes:
        if changes['role'] not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(ROLES)}", 'role')
        cleaned['role'] = changes['role']
    return cleaned


class AuthService:
    """Operations shared by both providers"""

    provider_name = 'base'

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> UserProfile:
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> UserProfile:
        raise NotImplementedError

    def sign_out(self, user_id: str) -> None:
        raise NotImplementedError

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        raise NotImplementedError

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> UserProfile:
        raise NotImplementedError


class DatabaseAuthService(AuthService):
    """
    Accounts in the SQL users table

    Args:
        session_factory: SQLAlchemy sessionmaker bound to the database
        hasher: object providing hash_password/verify_password
    """

    provider_name = 'database'

    def __init__(self, session_factory, hasher):
        self.session_factory = session_factory
        self.hasher = hasher

    @staticmethod
    def _to_profile(user: User) -> UserProfile:
        return UserProfile(
            id=user.id,
            email=user.email,
            display_name=user.display_name or '',
            role=user.role or 'admin',
            created_at=to_iso(user.created_at) if user.created_at else '',
            updated_at=to_iso(user.updated_at) if user.updated_at else '',
        )

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> UserProfile:
        email = normalize_email(email)
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 'password'
            )
        password_hash, salt = self.hasher.hash_password(password)
        user = User(
            email=email,
            display_name=_display_name(display_name, email),
            role='admin',
            password_hash=password_hash,
            password_salt=salt
        )

        session = self.session_factory()
        try:
            session.add(user)
            session.commit()
            logger.info(f"Created account {user.id}")
            return self._to_profile(user)
        except IntegrityError:
            session.rollback()
            raise AuthError("An account with this email already exists", 409)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Sign up failed: {str(e)}", exc_info=True)
            raise
        finally:
            session.close()

    def sign_in(self, email: str, password: str) -> UserProfile:
        try:
            email = normalize_email(email)
        except ValidationError:
            raise AuthError("Invalid credentials")
        session = self.session_factory()
        try:
            user = session.query(User).filter_by(email=email).first()
            if not user or not self.hasher.verify_password(password or '', user.password_hash,
                                                           user.password_salt):
                raise AuthError("Invalid credentials")
            return self._to_profile(user)
        finally:
            session.close()

    def sign_out(self, user_id: str) -> None:
        # Sessions are cookie based; nothing is stored server side
        logger.debug(f"Signed out {user_id}")

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        session = self.session_factory()
        try:
            user = session.get(User, user_id)
            return self._to_profile(user) if user else None
        finally:
            session.close()

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> UserProfile:
        session = self.session_factory()
        try:
            user = session.get(User, user_id)
            if not user:
                raise AuthError("User not found", 404)
            for key, value in _profile_changes(changes, user.email).items():
                setattr(user, key, value)
            user.updated_at = datetime.utcnow()
            session.commit()
            return self._to_profile(user)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Profile update failed for {user_id}: {str(e)}", exc_info=True)
            raise
        finally:
            session.close()


class DemoAuthService(AuthService):
    """
    Storage-backed demo accounts

    Any password is accepted; signing in with an unknown email creates the
    account on the spot. Signing out removes the demo account.
    """

    provider_name = 'demo'

    def __init__(self, storage: LocalStore, clock: Callable[[], datetime] = utc_now):
        self.storage = storage
        self.clock = clock

    @staticmethod
    def _email_key(email: str) -> str:
        return f"focusos_demo_user_{email.lower()}"

    @staticmethod
    def _id_key(user_id: str) -> str:
        return f"focusos_demo_profile_{user_id}"

    def _save(self, profile: UserProfile):
        self.storage.set_json(self._email_key(profile.email), profile.id)
        self.storage.set_json(self._id_key(profile.id), profile.to_dict())

    def _create(self, email: str, display_name: Optional[str]) -> UserProfile:
        now = to_iso(self.clock())
        profile = UserProfile(
            id=f"demo_{generate_id()}",
            email=email,
            display_name=_display_name(display_name, email),
            role='admin',
            created_at=now,
            updated_at=now
        )
        self._save(profile)
        logger.info(f"Created demo account {profile.id}")
        return profile

    def _find_by_email(self, email: str) -> Optional[UserProfile]:
        user_id = self.storage.get_json(self._email_key(email))
        return self.get_profile(user_id) if user_id else None

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> UserProfile:
        email = normalize_email(email)
        existing = self._find_by_email(email)
        if existing:
            return existing
        return self._create(email, display_name)

    def sign_in(self, email: str, password: str) -> UserProfile:
        email = normalize_email(email)
        return self._find_by_email(email) or self._create(email, None)

    def sign_out(self, user_id: str) -> None:
        profile = self.get_profile(user_id)
        if profile:
            self.storage.remove(self._email_key(profile.email))
        self.storage.remove(self._id_key(user_id))

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        data = self.storage.get_json(self._id_key(user_id))
        if not isinstance(data, dict):
            return None
        try:
            return UserProfile(**data)
        except TypeError:
            logger.warning(f"Discarding unreadable demo profile {user_id}")
            return None

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> UserProfile:
        profile = self.get_profile(user_id)
        if not profile:
            raise AuthError("User not found", 404)
        for key, value in _profile_changes(changes, profile.email).items():
            setattr(profile, key, value)
        profile.updated_at = to_iso(self.clock())
        self._save(profile)
        return profile


def create_auth_service(config: Dict[str, Any], storage: LocalStore,
                        session_factory=None, hasher=None) -> AuthService:
    """Hosted provider when a database is configured, demo accounts otherwise"""
    if config.get('DATABASE_URL') and session_factory is not None:
        logger.info("Using database authentication provider")
        return DatabaseAuthService(session_factory, hasher)
    logger.warning("No database configured - running with demo authentication")
    return DemoAuthService(storage)
