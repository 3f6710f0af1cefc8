# config/__init__.py
"""
Environment configurations for the FocusOS service
"""

import os

from config.security import SecurityConfig


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class BaseConfig(SecurityConfig):
    """Settings shared by every environment"""

    VERSION = os.environ.get('APP_VERSION', '1.0.0')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')

    # Front-end
    APP_URL = os.environ.get('APP_URL', 'http://localhost:3000')
    CORS_ORIGINS = [origin.strip() for origin in
                    os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',')]

    # Per-user key-value storage: 'memory' or 'redis'
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'memory')
    STORAGE_NAMESPACE = 'focusos'
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    REDIS_REQUIRED = False

    # Hosted accounts; demo accounts are used when unset
    DATABASE_URL = os.environ.get('DATABASE_URL')

    # Data behaviour
    SEED_SAMPLE_DATA = _env_flag('SEED_SAMPLE_DATA', True)
    CLEAR_DATA_ON_SIGNOUT = _env_flag('CLEAR_DATA_ON_SIGNOUT', True)
    TIMER_DEFAULTS = {
        'focus_minutes': 25,
        'short_break_minutes': 5,
        'long_break_minutes': 15,
        'auto_start_breaks': True,
        'long_break_interval': 4,
    }

    # Email
    EMAIL_PROVIDER = os.environ.get('EMAIL_PROVIDER', 'resend')
    RESEND_API_KEY = os.environ.get('RESEND_API_KEY')
    EMAIL_FROM = os.environ.get('EMAIL_FROM', 'FocusOS <noreply@yourdomain.com>')
    EMAIL_TIMEOUT = 10.0
    EMAIL_ASYNC = _env_flag('EMAIL_ASYNC', False)
    SMTP_HOST = os.environ.get('SMTP_HOST')
    SMTP_PORT = int(os.environ.get('SMTP_PORT', 587))
    SMTP_USERNAME = os.environ.get('SMTP_USERNAME')
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD')

    # Celery
    CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/2')
    CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/2')
    CELERY_TASK_ALWAYS_EAGER = False

    SLOW_REQUEST_THRESHOLD = 1000  # ms


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    SESSION_COOKIE_SECURE = False


class TestingConfig(BaseConfig):
    TESTING = True
    SECRET_KEY = 'focusos-testing-secret'
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = 'WARNING'
    LOG_FILE = None
    RATELIMIT_ENABLED = False
    PASSWORD_HASH_ITERATIONS = 1000
    STORAGE_BACKEND = 'memory'
    DATABASE_URL = None
    SEED_SAMPLE_DATA = False
    CLEAR_DATA_ON_SIGNOUT = True
    EMAIL_PROVIDER = 'resend'
    RESEND_API_KEY = None
    EMAIL_ASYNC = False
    APP_URL = 'http://localhost:3000'
    CELERY_TASK_ALWAYS_EAGER = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    REDIS_REQUIRED = _env_flag('REDIS_REQUIRED', True)


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
