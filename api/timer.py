# api/timer.py
"""
Focus timer API

The timer advances with wall-clock time between requests; every response
carries the current snapshot plus the events raised since the last call.
"""

from flask import Blueprint, request, jsonify, g
import logging

from middleware.security import require_auth
from services.analytics import DashboardAnalytics
from services.user_data import open_user_store, open_timer_service

timer_bp = Blueprint('timer', __name__)
logger = logging.getLogger(__name__)


def _command(command: str, payload=None):
    service = open_timer_service(open_user_store(g.user_id))
    return jsonify(service.apply(command, payload))


@timer_bp.route('', methods=['GET'])
@require_auth
def timer_status():
    service = open_timer_service(open_user_store(g.user_id))
    return jsonify(service.status())


@timer_bp.route('/start', methods=['POST'])
@require_auth
def start_timer():
    data = request.get_json(silent=True) or {}
    return _command('start', {'mode': data.get('mode')} if isinstance(data, dict) else None)


@timer_bp.route('/pause', methods=['POST'])
@require_auth
def pause_timer():
    return _command('pause')


@timer_bp.route('/resume', methods=['POST'])
@require_auth
def resume_timer():
    return _command('resume')


@timer_bp.route('/stop', methods=['POST'])
@require_auth
def stop_timer():
    return _command('stop')


@timer_bp.route('/settings', methods=['PUT', 'PATCH'])
@require_auth
def update_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'JSON object body required'}), 400
    return _command('settings', data)


@timer_bp.route('/stats', methods=['GET'])
@require_auth
def timer_stats():
    store = open_user_store(g.user_id)
    service = open_timer_service(store)
    status = service.status()
    # status() may have recorded a session that expired since the last call
    analytics = DashboardAnalytics(store.state, service.load_timer().settings)
    return jsonify({'stats': analytics.focus_stats(), 'timer': status['timer']})
