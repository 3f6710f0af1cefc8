# config/security.py
"""
Security Configuration for FocusOS Deployment
"""

import os
import secrets
from datetime import timedelta


class SecurityConfig:
    """Security configuration settings"""

    # Key for invitation tokens; falls back to SECRET_KEY when unset
    ENCRYPTION_KEY = os.environ.get('ENCRYPTION_KEY')

    # Session settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_urlsafe(32)
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)

    # Password hashing (PBKDF2-SHA256)
    PASSWORD_HASH_ITERATIONS = 200000

    # Friend invitation links
    INVITATION_MAX_AGE_DAYS = 7

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True
    AUTH_RATE_LIMIT = '10 per minute'
    EMAIL_RATE_LIMIT = '20 per hour'

    # Content Security Policy (JSON API, nothing to load)
    CSP_POLICY = {
        'default-src': "'none'",
        'frame-ancestors': "'none'",
        'base-uri': "'none'",
    }

    # Security headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'X-XSS-Protection': '1; mode=block',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()'
    }

    # Request size
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1MB
