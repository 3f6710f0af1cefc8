import pytest
from flask import Flask

from core.auth_service import (
    AuthError, DatabaseAuthService, DemoAuthService, create_auth_service
)
from core.database_models import create_session_factory
from core.models import ValidationError
from core.security_manager import SecurityManager
from core.storage import MemoryStorage


@pytest.fixture
def hasher():
    app = Flask(__name__)
    app.config.update(SECRET_KEY='auth-tests', PASSWORD_HASH_ITERATIONS=1000)
    return SecurityManager(app)


@pytest.fixture
def db_auth(hasher):
    return DatabaseAuthService(create_session_factory('sqlite://'), hasher)


def test_database_sign_up_and_sign_in(db_auth):
    profile = db_auth.sign_up('Lena@Example.com', 'secret123', 'Lena')
    assert profile.display_name == 'Lena'
    assert profile.role == 'admin'

    signed_in = db_auth.sign_in('Lena@example.com', 'secret123')
    assert signed_in.id == profile.id

    with pytest.raises(AuthError) as excinfo:
        db_auth.sign_in('Lena@example.com', 'wrong-password')
    assert excinfo.value.status_code == 401


def test_database_rejects_duplicates_and_short_passwords(db_auth):
    db_auth.sign_up('sam@example.com', 'secret123')
    with pytest.raises(AuthError) as excinfo:
        db_auth.sign_up('sam@example.com', 'another123')
    assert excinfo.value.status_code == 409
    with pytest.raises(ValidationError):
        db_auth.sign_up('new@example.com', '123')


def test_database_profile_update(db_auth):
    profile = db_auth.sign_up('ira@example.com', 'secret123')
    assert profile.display_name == 'ira'

    updated = db_auth.update_profile(profile.id, {'display_name': 'Ira K', 'role': 'friend'})
    assert updated.display_name == 'Ira K'
    assert db_auth.get_profile(profile.id).role == 'friend'

    with pytest.raises(ValidationError):
        db_auth.update_profile(profile.id, {'email': 'other@example.com'})
    with pytest.raises(AuthError):
        db_auth.update_profile('missing', {'display_name': 'x'})


def test_demo_sign_in_accepts_any_password_and_creates_user():
    storage = MemoryStorage()
    auth = DemoAuthService(storage)
    profile = auth.sign_in('guest@example.com', '')
    assert profile.id.startswith('demo_')
    assert auth.sign_in('guest@example.com', 'whatever').id == profile.id
    assert auth.sign_up('guest@example.com', 'x').id == profile.id


def test_demo_sign_out_removes_account():
    storage = MemoryStorage()
    auth = DemoAuthService(storage)
    profile = auth.sign_in('gone@example.com', 'pw')
    auth.sign_out(profile.id)
    assert auth.get_profile(profile.id) is None
    assert auth.sign_in('gone@example.com', 'pw').id != profile.id


def test_demo_rejects_invalid_email():
    with pytest.raises(ValidationError):
        DemoAuthService(MemoryStorage()).sign_in('nobody', 'pw')


def test_factory_picks_provider(hasher):
    storage = MemoryStorage()
    assert isinstance(create_auth_service({}, storage), DemoAuthService)
    factory = create_session_factory('sqlite://')
    service = create_auth_service({'DATABASE_URL': 'sqlite://'}, storage, factory, hasher)
    assert isinstance(service, DatabaseAuthService)


def test_password_hashing(hasher):
    hashed, salt = hasher.hash_password('correct horse')
    assert hasher.verify_password('correct horse', hashed, salt)
    assert not hasher.verify_password('wrong horse', hashed, salt)
