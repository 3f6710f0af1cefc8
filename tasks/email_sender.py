# tasks/email_sender.py
"""
Celery tasks for asynchronous transactional email
Friend invitations and acceptance notices are queued on email_sending
and retried with exponential backoff on transient provider failures.
"""

import os
from typing import Dict, Any

from celery import Celery
from celery.signals import task_prerun, task_postrun, task_failure
from celery.utils.log import get_task_logger
from kombu import Queue

from core.email_provider import EmailMessage, EmailProviderError, create_email_provider

# Configure task logger
logger = get_task_logger(__name__)

celery_app = Celery('focusos')
celery_app.conf.update({
    # Broker and Result Backend
    'broker_url': os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
    'result_backend': os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0'),

    # Serialization
    'task_serializer': 'json',
    'result_serializer': 'json',
    'accept_content': ['json'],

    # Timezone
    'timezone': 'UTC',
    'enable_utc': True,

    # Task Execution
    'task_acks_late': True,
    'task_reject_on_worker_lost': True,
    'worker_prefetch_multiplier': 1,

    'result_expires': 3600,  # 1 hour

    # Routing
    'task_queues': (Queue('email_sending'),),
    'task_default_queue': 'email_sending',
    'task_routes': {
        'tasks.email_sender.send_transactional_email': {'queue': 'email_sending'},
    },

    'worker_hijack_root_logger': False,
})

PROVIDER_SETTINGS = (
    'EMAIL_PROVIDER', 'RESEND_API_KEY', 'EMAIL_TIMEOUT', 'SMTP_HOST', 'SMTP_PORT',
    'SMTP_USERNAME', 'SMTP_PASSWORD', 'SMTP_VALIDATE_CERTS'
)

# Provider settings handed over by the application factory
_provider_config: Dict[str, Any] = {}


def _provider_settings(getter) -> Dict[str, Any]:
    settings = {}
    for key in PROVIDER_SETTINGS:
        value = getter(key)
        if value is not None:
            settings[key] = value
    return settings


def _worker_provider_config() -> Dict[str, Any]:
    """Provider settings for a worker process that never ran create_app"""
    from config import CONFIGS

    config = CONFIGS.get(os.environ.get('FLASK_ENV', 'production'), CONFIGS['production'])
    return _provider_settings(lambda key: getattr(config, key, None))


def init_celery(app):
    """Bind the Celery app to the Flask configuration"""
    celery_app.conf.update(
        broker_url=app.config.get('CELERY_BROKER_URL', celery_app.conf.broker_url),
        result_backend=app.config.get('CELERY_RESULT_BACKEND', celery_app.conf.result_backend),
        task_always_eager=app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        task_eager_propagates=app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
    )
    _provider_config.clear()
    _provider_config.update(_provider_settings(app.config.get))
    app.extensions['celery'] = celery_app
    return celery_app


@celery_app.task(bind=True, max_retries=5, default_retry_delay=60)
def send_transactional_email(self, message_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Send one transactional email

    Args:
        message_data: EmailMessage in dictionary form

    Returns:
        EmailResult in dictionary form
    """
    message = EmailMessage.from_dict(message_data)
    logger.info(f"Starting email task {self.request.id} for {len(message.to)} recipient(s)")

    if not _provider_config:
        # Worker started with `celery -A tasks.email_sender worker`
        _provider_config.update(_worker_provider_config())
        logger.info(f"Loaded email provider settings for {_provider_config.get('EMAIL_PROVIDER')}")

    provider = create_email_provider(_provider_config)
    try:
        result = provider.send(message)
    except EmailProviderError as exc:
        if exc.retryable and self.request.retries < self.max_retries:
            retry_delay = min(300, 60 * (2 ** self.request.retries))  # Cap at 5 minutes
            logger.warning(f"Email send failed, retrying in {retry_delay}s: {exc}")
            raise self.retry(exc=exc, countdown=retry_delay)
        logger.error(f"Email send failed permanently: {exc}")
        raise

    logger.info(f"Email task {self.request.id} delivered via {result.provider}")
    return result.to_dict()


# Celery signal handlers for monitoring
@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, **cwds):
    """Handle task pre-run events"""
    logger.info(f"Task {task.name} [{task_id}] starting")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None,
                         retval=None, state=None, **cwds):
    """Handle task post-run events"""
    logger.info(f"Task {task.name} [{task_id}] completed with state: {state}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, einfo=None, **cwds):
    """Handle task failure events"""
    logger.error(f"Task {sender.name} [{task_id}] failed: {exception}")


if __name__ == '__main__':
    celery_app.start()
