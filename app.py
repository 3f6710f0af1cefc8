# app.py
"""
Flask Application Factory for the FocusOS productivity service

This application factory wires together:
- Per-user key-value storage (Redis or in-memory)
- Hosted accounts in SQL, or demo accounts when no database is configured
- Transactional friend emails, optionally queued through Celery
- Security headers, rate limiting and CORS
- JSON error handling, logging and health checks
"""

import os
import logging
import logging.handlers
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import atexit
from pathlib import Path

# Flask and extensions
from flask import Flask, request, jsonify, g, session
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.exceptions import HTTPException

from sqlalchemy import text

from config import CONFIGS
from core.auth_service import create_auth_service
from core.database_models import create_session_factory
from core.email_provider import create_email_provider
from core.focus_timer import TimerStateError
from core.models import FocusOSError, RecordNotFoundError, ValidationError
from core.security_manager import SecurityManager, init_security_manager
from core.storage import create_storage
from core.template_engine import EmailTemplateEngine
from middleware.security import limiter, security_headers
from services.friend_mailer import FriendMailer
from tasks.email_sender import init_celery
from api.auth import auth_bp
from api.data import data_bp
from api.timer import timer_bp
from api.dashboard import dashboard_bp
from api.friends import friends_bp


def setup_logging(app: Flask) -> None:
    """
    Configure application logging

    Console output always; a rotating file when LOG_FILE is set.
    """
    # Remove default Flask handlers to avoid duplicate logs
    app.logger.handlers.clear()

    console_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)s[%(process)d]: %(levelname)s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    app.logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(log_level)
    app.logger.addHandler(console_handler)

    # Module loggers (core.*, services.*, api.*) share the same handlers
    for name in ('core', 'services', 'api', 'middleware', 'tasks'):
        module_logger = logging.getLogger(name)
        module_logger.setLevel(log_level)
        if not module_logger.handlers:
            module_logger.addHandler(console_handler)
        module_logger.propagate = False

    log_file = app.config.get('LOG_FILE')
    if log_file:
        Path(log_file).parent.mkdir(exist_ok=True, parents=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(file_handler)
        for name in ('core', 'services', 'api', 'middleware', 'tasks'):
            logging.getLogger(name).addHandler(file_handler)

    # Suppress verbose third-party logs in production
    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('aiosmtplib').setLevel(logging.WARNING)


def configure_database(app: Flask):
    """
    Session factory for hosted accounts, or None for demo mode
    """
    database_url = app.config.get('DATABASE_URL')
    if not database_url:
        app.logger.info("DATABASE_URL not set - accounts are demo accounts")
        return None

    session_factory = create_session_factory(database_url, echo=app.config.get('SQLALCHEMY_ECHO', False))
    app.logger.info(f"Database configured: {database_url.split('@')[-1] if '@' in database_url else database_url}")
    return session_factory


def configure_security(app: Flask) -> SecurityManager:
    """
    Security manager, rate limiting and CORS
    """
    security_manager = init_security_manager(app)

    limiter.init_app(app)

    # Configure CORS for API endpoints
    CORS(app,
         resources={r"/api/*": {"origins": app.config.get('CORS_ORIGINS', ['http://localhost:3000'])}},
         supports_credentials=True,
         allow_headers=['Content-Type', 'Authorization'])

    app.logger.info("Security features configured")
    return security_manager


def configure_services(app: Flask, security_manager: SecurityManager, session_factory) -> Dict[str, Any]:
    """
    Storage, auth provider and friend mailer, kept in app.extensions
    """
    storage = create_storage(app.config)
    auth = create_auth_service(app.config, storage, session_factory, security_manager)
    provider = create_email_provider(app.config)
    mailer = FriendMailer(
        provider,
        EmailTemplateEngine(app.config.get('EMAIL_TEMPLATE_DIR')),
        security_manager,
        app_url=app.config.get('APP_URL'),
        from_address=app.config.get('EMAIL_FROM'),
        async_delivery=app.config.get('EMAIL_ASYNC', False)
    )
    if not provider.configured:
        app.logger.warning("Email provider not configured - friend emails will be skipped")

    services = {
        'storage': storage,
        'auth': auth,
        'mailer': mailer,
        'session_factory': session_factory,
    }
    app.extensions['focusos'] = services
    return services


def register_blueprints(app: Flask) -> None:
    """
    Register all application blueprints with proper URL prefixes
    """
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(friends_bp, url_prefix='/api/friends')
    app.register_blueprint(data_bp, url_prefix='/api')
    app.register_blueprint(timer_bp, url_prefix='/api/timer')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')

    app.logger.info("Application blueprints registered")


def _error_body(error: str, message: str, status_code: int, **extra):
    body = {'error': error, 'message': message, 'status_code': status_code}
    body.update(extra)
    return jsonify(body), status_code


def configure_error_handlers(app: Flask) -> None:
    """
    JSON error responses for HTTP errors and domain exceptions
    """
    @app.errorhandler(ValidationError)
    def validation_error(error):
        extra = {'field': error.field_name} if error.field_name else {}
        return _error_body(str(error), str(error), 400, **extra)

    @app.errorhandler(RecordNotFoundError)
    def record_not_found(error):
        return _error_body('Not Found', str(error), 404)

    @app.errorhandler(TimerStateError)
    def timer_conflict(error):
        return _error_body('Conflict', str(error), 409, state=error.state.value)

    @app.errorhandler(FocusOSError)
    def domain_error(error):
        app.logger.warning(f"Unhandled domain error: {error}")
        return _error_body('Bad Request', str(error), 400)

    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning(f"Bad request from {request.remote_addr}: {error}")
        return _error_body('Bad Request', 'Invalid request format or parameters', 400)

    @app.errorhandler(401)
    def unauthorized(error):
        app.logger.warning(f"Unauthorized access attempt from {request.remote_addr}")
        return _error_body('Unauthorized', 'Authentication required', 401)

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning(f"Forbidden access attempt from {request.remote_addr}")
        return _error_body('Forbidden', 'Insufficient permissions', 403)

    @app.errorhandler(404)
    def not_found(error):
        return _error_body('Not Found', 'The requested resource was not found', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error_body('Method Not Allowed', 'The method is not allowed for this resource', 405)

    @app.errorhandler(409)
    def conflict(error):
        return _error_body('Conflict', 'The request conflicts with the current state', 409)

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded for {request.remote_addr}")
        return _error_body('Rate Limit Exceeded', 'Too many requests. Please try again later.', 429,
                           retry_after=getattr(error, 'retry_after', None) or 60)

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}", exc_info=True)
        return _error_body('Internal Server Error', 'An unexpected error occurred', 500)

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return e

        app.logger.error(f"Unhandled exception: {e}", exc_info=True)
        return _error_body('Internal Server Error', 'An unexpected error occurred', 500)


def configure_health_checks(app: Flask) -> None:
    """
    Health check endpoints for monitoring and load balancing
    """
    @app.route('/health')
    def health_check():
        """Basic health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.utcnow().isoformat(),
            'version': app.config.get('VERSION', '1.0.0')
        })

    @app.route('/health/detailed')
    def detailed_health_check():
        """Detailed health check with component status"""
        services = app.extensions['focusos']
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.utcnow().isoformat(),
            'components': {}
        }

        storage = services['storage']
        if storage.ping():
            health_status['components']['storage'] = f'healthy ({storage.backend_name})'
        else:
            health_status['components']['storage'] = f'unhealthy ({storage.backend_name})'
            health_status['status'] = 'unhealthy'

        session_factory = services['session_factory']
        if session_factory is None:
            health_status['components']['database'] = 'not configured (demo accounts)'
        else:
            db_session = session_factory()
            try:
                db_session.execute(text('SELECT 1'))
                health_status['components']['database'] = 'healthy'
            except Exception as e:
                health_status['components']['database'] = f'unhealthy: {str(e)}'
                health_status['status'] = 'unhealthy'
            finally:
                db_session.close()

        mailer = services['mailer']
        health_status['components']['email'] = (
            f'configured ({mailer.provider.name})' if mailer.configured else 'not configured'
        )
        health_status['security'] = app.extensions['security_manager'].get_security_metrics()

        status_code = 200 if health_status['status'] == 'healthy' else 503
        return jsonify(health_status), status_code


def configure_request_middleware(app: Flask) -> None:
    """
    Configure request/response middleware for security and monitoring
    """
    @app.before_request
    def before_request():
        """Execute before each request"""
        g.start_time = datetime.utcnow()

        # Session timeout check
        if 'user_id' in session:
            last_activity = session.get('last_activity')
            if last_activity:
                last_activity = datetime.fromisoformat(last_activity)
                lifetime = app.config.get('PERMANENT_SESSION_LIFETIME', timedelta(hours=8))
                if datetime.utcnow() - last_activity > lifetime:
                    app.logger.info(f"Session expired for user {session.get('user_id')}")
                    session.clear()

    @app.after_request
    def after_request(response):
        """Execute after each request"""
        response = security_headers(response)

        # Log request performance
        if hasattr(g, 'start_time'):
            duration = (datetime.utcnow() - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def create_app(config_name: Optional[str] = None, config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: Configuration environment ('development', 'testing', 'production')
        config_overrides: settings applied last, after environment variables

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    config_name = config_name or os.environ.get('FLASK_ENV', 'production')
    app.config.from_object(CONFIGS.get(config_name, CONFIGS['production']))

    if config_overrides:
        app.config.update(config_overrides)

    # Configure proxy handling for production deployment behind nginx
    if config_name == 'production':
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    setup_logging(app)
    app.logger.info(f"Starting FocusOS application in {config_name} mode")

    session_factory = configure_database(app)
    init_celery(app)
    security_manager = configure_security(app)
    services = configure_services(app, security_manager, session_factory)

    register_blueprints(app)
    configure_error_handlers(app)
    configure_health_checks(app)
    configure_request_middleware(app)

    def shutdown_handler():
        app.logger.info("Shutting down, closing storage connections")
        services['storage'].close()

    atexit.register(shutdown_handler)

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    # Development server
    app = create_app('development')
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
