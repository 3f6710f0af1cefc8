# api/dashboard.py
"""
Dashboard statistics API
"""

from flask import Blueprint, jsonify, g
import logging

from middleware.security import require_auth
from services.analytics import DashboardAnalytics
from services.user_data import open_user_store, open_timer_service

dashboard_bp = Blueprint('dashboard', __name__)
logger = logging.getLogger(__name__)


@dashboard_bp.route('', methods=['GET'])
@require_auth
def dashboard():
    store = open_user_store(g.user_id)
    service = open_timer_service(store)
    # records a focus session that ran out since the last request
    service.status()
    snapshot = DashboardAnalytics(store.state, service.load_timer().settings).snapshot()
    return jsonify(snapshot.to_dict())


@dashboard_bp.route('/mood', methods=['GET'])
@require_auth
def mood_overview():
    analytics = DashboardAnalytics(open_user_store(g.user_id).state)
    stats = analytics.mood_stats()
    return jsonify({
        'stats': stats,
        'weekly_trend': analytics.weekly_mood_trend(),
        'insights': analytics.mood_insights(stats)
    })
