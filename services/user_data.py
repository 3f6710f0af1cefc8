# services/user_data.py
"""
Access to the per-application services from request handlers
"""

import logging

from flask import current_app

from core.data_store import DataStore
from core.focus_timer import TimerSettings
from services.timer_service import TimerService

logger = logging.getLogger(__name__)


def _services() -> dict:
    return current_app.extensions['focusos']


def get_storage():
    return _services()['storage']


def get_auth_service():
    return _services()['auth']


def get_mailer():
    return _services()['mailer']


def open_user_store(user_id: str) -> DataStore:
    """Load a user's collections, seeding sample data for new users when enabled"""
    store = DataStore(get_storage(), user_id)
    store.load(seed_samples=current_app.config.get('SEED_SAMPLE_DATA', False))
    return store


def open_timer_service(store: DataStore) -> TimerService:
    defaults = TimerSettings.from_dict(current_app.config.get('TIMER_DEFAULTS'))
    return TimerService(get_storage(), store, default_settings=defaults)


def clear_user_data(user_id: str):
    """Remove every stored collection and the timer state of a user"""
    store = DataStore(get_storage(), user_id)
    store.clear()
    TimerService(get_storage(), store).reset()
    logger.info(f"Removed stored data for user {user_id}")
