# api/data.py
"""
CRUD API over the signed-in user's collections
Tasks, timer sessions, mood entries, friends and learning courses
"""

from flask import Blueprint, request, jsonify, g
import logging

from core.models import ValidationError
from middleware.security import require_auth
from services.user_data import open_user_store

data_bp = Blueprint('data', __name__)
logger = logging.getLogger(__name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def _dump(records):
    return [record.to_dict() for record in records]


# Tasks

@data_bp.route('/tasks', methods=['GET'])
@require_auth
def list_tasks():
    tasks = open_user_store(g.user_id).state.tasks
    status = request.args.get('status')
    category = request.args.get('category')
    if status:
        tasks = [t for t in tasks if t.status.value == status]
    if category:
        tasks = [t for t in tasks if t.category == category]
    return jsonify({'tasks': _dump(tasks)})


@data_bp.route('/tasks', methods=['POST'])
@require_auth
def create_task():
    task = open_user_store(g.user_id).add_task(_json_body())
    logger.info(f"Task {task.id} created for {g.user_id}")
    return jsonify({'task': task.to_dict()}), 201


@data_bp.route('/tasks/<task_id>', methods=['GET'])
@require_auth
def get_task(task_id):
    return jsonify({'task': open_user_store(g.user_id).get_task(task_id).to_dict()})


@data_bp.route('/tasks/<task_id>', methods=['PATCH', 'PUT'])
@require_auth
def update_task(task_id):
    task = open_user_store(g.user_id).update_task(task_id, _json_body())
    return jsonify({'task': task.to_dict()})


@data_bp.route('/tasks/<task_id>', methods=['DELETE'])
@require_auth
def delete_task(task_id):
    open_user_store(g.user_id).delete_task(task_id)
    return jsonify({'success': True})


# Timer sessions

@data_bp.route('/timer-sessions', methods=['GET'])
@require_auth
def list_timer_sessions():
    return jsonify({'timer_sessions': _dump(open_user_store(g.user_id).state.timer_sessions)})


@data_bp.route('/timer-sessions', methods=['POST'])
@require_auth
def create_timer_session():
    session_record = open_user_store(g.user_id).add_timer_session(_json_body())
    return jsonify({'timer_session': session_record.to_dict()}), 201


@data_bp.route('/timer-sessions/<session_id>', methods=['PATCH', 'PUT'])
@require_auth
def update_timer_session(session_id):
    session_record = open_user_store(g.user_id).update_timer_session(session_id, _json_body())
    return jsonify({'timer_session': session_record.to_dict()})


# Mood entries

@data_bp.route('/moods', methods=['GET'])
@require_auth
def list_moods():
    return jsonify({'mood_entries': _dump(open_user_store(g.user_id).state.mood_entries)})


@data_bp.route('/moods', methods=['POST'])
@require_auth
def create_mood():
    entry = open_user_store(g.user_id).add_mood_entry(_json_body())
    return jsonify({'mood_entry': entry.to_dict()}), 201


@data_bp.route('/moods/<entry_id>', methods=['DELETE'])
@require_auth
def delete_mood(entry_id):
    open_user_store(g.user_id).delete_mood_entry(entry_id)
    return jsonify({'success': True})


# Friends

@data_bp.route('/friends', methods=['GET'])
@require_auth
def list_friends():
    friends = open_user_store(g.user_id).state.friends
    status = request.args.get('status')
    if status:
        friends = [f for f in friends if f.status.value == status]
    return jsonify({'friends': _dump(friends)})


@data_bp.route('/friends', methods=['POST'])
@require_auth
def create_friend():
    store = open_user_store(g.user_id)
    data = _json_body()
    if isinstance(data.get('email'), str) and store.find_friend_by_email(data['email'].strip()):
        return jsonify({'error': 'Friend with this email already exists'}), 409
    friend = store.add_friend(data)
    return jsonify({'friend': friend.to_dict()}), 201


@data_bp.route('/friends/<friend_id>', methods=['PATCH', 'PUT'])
@require_auth
def update_friend(friend_id):
    friend = open_user_store(g.user_id).update_friend(friend_id, _json_body())
    return jsonify({'friend': friend.to_dict()})


@data_bp.route('/friends/<friend_id>/status', methods=['PATCH', 'PUT'])
@require_auth
def update_friend_status(friend_id):
    data = _json_body()
    if 'status' not in data:
        raise ValidationError("status is required", 'status')
    friend = open_user_store(g.user_id).update_friend_status(friend_id, data['status'])
    return jsonify({'friend': friend.to_dict()})


@data_bp.route('/friends/<friend_id>', methods=['DELETE'])
@require_auth
def delete_friend(friend_id):
    open_user_store(g.user_id).delete_friend(friend_id)
    return jsonify({'success': True})


# Learning courses

@data_bp.route('/courses', methods=['GET'])
@require_auth
def list_courses():
    courses = open_user_store(g.user_id).state.learning_courses
    if request.args.get('enrolled') in ('true', '1'):
        courses = [c for c in courses if c.enrolled]
    return jsonify({'learning_courses': _dump(courses)})


@data_bp.route('/courses', methods=['PUT'])
@require_auth
def replace_courses():
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        data = data.get('learning_courses')
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValidationError("learning_courses must be a list of objects", 'learning_courses')
    courses = open_user_store(g.user_id).set_learning_courses(data)
    return jsonify({'learning_courses': _dump(courses)})


@data_bp.route('/courses/<course_id>/progress', methods=['PATCH', 'PUT'])
@require_auth
def update_course_progress(course_id):
    data = _json_body()
    if 'progress' not in data:
        raise ValidationError("progress is required", 'progress')
    course = open_user_store(g.user_id).update_course_progress(course_id, data['progress'])
    return jsonify({'learning_course': course.to_dict()})


@data_bp.route('/courses/<course_id>/enroll', methods=['POST'])
@require_auth
def enroll_course(course_id):
    data = request.get_json(silent=True) or {}
    enrolled = data.get('enrolled', True) if isinstance(data, dict) else True
    if not isinstance(enrolled, bool):
        raise ValidationError("enrolled must be a boolean", 'enrolled')
    course = open_user_store(g.user_id).enroll_course(course_id, enrolled)
    return jsonify({'learning_course': course.to_dict()})
