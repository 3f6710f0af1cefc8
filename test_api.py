import json
import time
from urllib.parse import unquote

from app import create_app
from core import email_provider
from core.data_store import storage_key
from services.timer_service import timer_state_key


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'
    assert response.headers['X-Content-Type-Options'] == 'nosniff'

    detailed = client.get('/health/detailed').get_json()
    assert detailed['components']['storage'] == 'healthy (memory)'
    assert detailed['components']['email'] == 'not configured'


def test_data_routes_require_auth(client):
    response = client.get('/api/tasks')
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Authentication required'


def test_unknown_route_returns_json_404(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'Not Found'


def test_demo_login_session_and_profile(auth_client):
    session = auth_client.get('/api/auth/session').get_json()
    assert session['authenticated'] is True
    assert session['provider'] == 'demo'
    assert session['user']['email'] == 'maya@example.com'

    response = auth_client.patch('/api/auth/profile', json={'display_name': 'Maya R'})
    assert response.status_code == 200
    assert response.get_json()['user']['display_name'] == 'Maya R'

    response = auth_client.patch('/api/auth/profile', json={'email': 'x@example.com'})
    assert response.status_code == 400


def test_task_crud(auth_client):
    response = auth_client.post('/api/tasks', json={'title': 'Ship release', 'category': 'Work'})
    assert response.status_code == 201
    task = response.get_json()['task']
    assert task['status'] == 'todo'

    response = auth_client.patch(f"/api/tasks/{task['id']}", json={'status': 'completed'})
    assert response.get_json()['task']['status'] == 'completed'

    tasks = auth_client.get('/api/tasks?status=completed').get_json()['tasks']
    assert [t['id'] for t in tasks] == [task['id']]

    assert auth_client.delete(f"/api/tasks/{task['id']}").status_code == 200
    assert auth_client.get(f"/api/tasks/{task['id']}").status_code == 404


def test_validation_errors_map_to_400(auth_client):
    response = auth_client.post('/api/tasks', json={'title': 'x', 'priority': 'urgent'})
    assert response.status_code == 400
    assert response.get_json()['field'] == 'priority'

    response = auth_client.post('/api/moods', data='not json', content_type='text/plain')
    assert response.status_code == 400


def test_moods_friends_and_courses(auth_client):
    response = auth_client.post('/api/moods', json={'mood': 'happy', 'factors': ['Work']})
    assert response.status_code == 201

    friend = auth_client.post('/api/friends', json={
        'name': 'Ola Nowak', 'email': 'ola@example.com'
    }).get_json()['friend']
    assert friend['avatar'] == 'ON'
    duplicate = auth_client.post('/api/friends', json={'name': 'Ola', 'email': 'ola@example.com'})
    assert duplicate.status_code == 409

    response = auth_client.patch(f"/api/friends/{friend['id']}/status", json={'status': 'accepted'})
    assert response.get_json()['friend']['status'] == 'accepted'

    courses = auth_client.put('/api/courses', json={'learning_courses': [
        {'title': 'Focus 101', 'duration': 2}
    ]}).get_json()['learning_courses']
    course_id = courses[0]['id']
    assert auth_client.post(f"/api/courses/{course_id}/enroll").get_json()['learning_course']['enrolled']
    progress = auth_client.patch(f"/api/courses/{course_id}/progress", json={'progress': 120})
    assert progress.get_json()['learning_course']['progress'] == 100


def test_timer_flow(auth_client):
    status = auth_client.get('/api/timer').get_json()
    assert status['timer']['state'] == 'idle'
    assert status['timer']['display'] == '25:00'

    started = auth_client.post('/api/timer/start', json={'mode': 'focus'}).get_json()
    assert started['timer']['state'] == 'running'

    assert auth_client.post('/api/timer/pause').get_json()['timer']['state'] == 'paused'
    conflict = auth_client.post('/api/timer/pause')
    assert conflict.status_code == 409
    assert conflict.get_json()['state'] == 'paused'

    assert auth_client.post('/api/timer/resume').get_json()['timer']['state'] == 'running'
    assert auth_client.post('/api/timer/stop').get_json()['timer']['state'] == 'idle'

    bad_mode = auth_client.post('/api/timer/start', json={'mode': 'nap'})
    assert bad_mode.status_code == 400

    settings = auth_client.put('/api/timer/settings', json={'focus_minutes': 50}).get_json()
    assert settings['timer']['display'] == '50:00'

    stats = auth_client.get('/api/timer/stats').get_json()
    assert stats['stats']['sessions_count'] == 0


def test_dashboard(auth_client):
    auth_client.post('/api/tasks', json={'title': 'Done', 'status': 'completed'})
    auth_client.post('/api/moods', json={'mood': 'excited'})
    snapshot = auth_client.get('/api/dashboard').get_json()
    assert snapshot['tasks']['completion_rate'] == 100
    assert snapshot['mood']['most_common_mood'] == 'excited'
    assert len(snapshot['weekly_mood_trend']) == 7

    mood = auth_client.get('/api/dashboard/mood').get_json()
    assert mood['stats']['total_entries'] == 1


def test_dashboard_counts_session_that_ran_out_between_requests(app, auth_client):
    auth_client.post('/api/timer/start', json={'mode': 'focus'})

    # 25 minutes pass with no timer request in between
    storage = app.extensions['focusos']['storage']
    key = timer_state_key(auth_client.user['id'])
    state = storage.get_json(key)
    state['last_synced'] -= 25 * 60 + 1
    storage.set_json(key, state)

    snapshot = auth_client.get('/api/dashboard').get_json()
    assert snapshot['focus']['sessions_count'] == 1
    assert snapshot['focus']['total_minutes'] == 25

    sessions = auth_client.get('/api/timer-sessions').get_json()['timer_sessions']
    assert [(s['type'], s['status']) for s in sessions] == [('focus', 'completed')]


def test_logout_clears_user_data(app, auth_client):
    user_id = auth_client.user['id']
    auth_client.post('/api/tasks', json={'title': 'Temporary'})
    storage = app.extensions['focusos']['storage']
    assert storage.get(storage_key('tasks', user_id)) is not None

    response = auth_client.post('/api/auth/logout')
    assert response.get_json()['success'] is True
    assert storage.get(storage_key('tasks', user_id)) is None
    assert auth_client.get('/api/auth/session').get_json()['authenticated'] is False


def test_friend_email_not_configured(client):
    response = client.get('/api/friends/test')
    assert response.get_json()['hasApiKey'] is False

    response = client.post('/api/friends/send-request', json={'friendEmail': 'ola@example.com'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing required fields'

    response = client.post('/api/friends/send-request', json={
        'friendEmail': 'ola@example.com', 'friendName': 'Ola',
        'senderEmail': 'maya@example.com', 'senderName': 'Maya'
    })
    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['data'] is None
    assert body['message'] == 'Friend request processed successfully (email service not configured)'


def test_send_request_records_pending_friend(auth_client):
    auth_client.post('/api/friends/send-request', json={
        'friendEmail': 'ola@example.com', 'friendName': 'Ola',
        'senderEmail': 'maya@example.com', 'senderName': 'Maya'
    })
    friends = auth_client.get('/api/friends').get_json()['friends']
    assert [(f['email'], f['status']) for f in friends] == [('ola@example.com', 'pending')]


def test_accept_rejects_expired_invitation(app, auth_client):
    payload = {
        'friendEmail': 'maya@example.com', 'friendName': 'Maya',
        'senderEmail': 'ola@example.com', 'senderName': 'Ola'
    }
    cipher = app.extensions['security_manager'].cipher
    max_age_days = app.config['INVITATION_MAX_AGE_DAYS']
    issued_at = int(time.time()) - (max_age_days + 1) * 86400
    token = cipher.encrypt_at_time(json.dumps(payload).encode(), issued_at).decode()

    response = auth_client.post('/api/friends/accept', json={'token': token})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invitation link is invalid or has expired'
    assert auth_client.get('/api/friends').get_json()['friends'] == []


def test_friend_email_flow_with_resend(monkeypatch):
    sent = []

    class Response:
        status_code = 200
        content = b'{"id": "msg"}'
        text = '{"id": "msg"}'

        def json(self):
            return {'id': f"msg_{len(sent)}"}

    def fake_post(url, headers=None, json=None, timeout=None):
        sent.append(json)
        return Response()

    monkeypatch.setattr(email_provider.requests, 'post', fake_post)
    app = create_app('testing', {'RESEND_API_KEY': 're_test_key'})
    client = app.test_client()

    response = client.post('/api/friends/send-request', json={
        'friendEmail': 'ola@example.com', 'friendName': 'Ola',
        'senderEmail': 'maya@example.com', 'senderName': 'Maya'
    })
    assert response.get_json()['message'] == 'Friend request email sent successfully'
    html = sent[0]['html']
    token = html.split('accept?token=')[1].split('"')[0]

    # the friend signs in and accepts through the link
    client.post('/api/auth/login', json={'email': 'ola@example.com', 'password': 'pw'})
    accepted = client.post('/api/friends/accept', json={'token': unquote(token)})
    body = accepted.get_json()
    assert accepted.status_code == 200
    assert body['message'] == 'Friend request accepted successfully'
    assert body['friend']['email'] == 'maya@example.com'
    assert body['friend']['status'] == 'accepted'
    assert sent[1]['to'] == ['maya@example.com']

    invalid = client.post('/api/friends/accept', json={'token': 'forged'})
    assert invalid.status_code == 400


def test_friend_email_provider_failure(monkeypatch):
    class Response:
        status_code = 500
        content = b''
        text = 'boom'

    monkeypatch.setattr(email_provider.requests, 'post', lambda *a, **kw: Response())
    client = create_app('testing', {'RESEND_API_KEY': 're_test_key'}).test_client()
    response = client.post('/api/friends/send-request', json={
        'friendEmail': 'ola@example.com', 'friendName': 'Ola',
        'senderEmail': 'maya@example.com', 'senderName': 'Maya'
    })
    assert response.status_code == 500
    assert response.get_json()['error'] == 'Failed to send email'
