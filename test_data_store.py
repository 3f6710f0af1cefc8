import json

import pytest

from core.data_store import (
    Action, ActionType, AppState, DataStore, app_reducer, storage_key
)
from core.models import (
    FriendStatus, RecordNotFoundError, Task, TaskStatus, ValidationError
)


def test_reducer_is_pure_and_ignores_unknown_ids():
    task = Task.from_dict({'title': 'Write report'})
    task.id = 't1'
    state = AppState()
    added = app_reducer(state, Action(ActionType.ADD_TASK, task))
    assert state.tasks == ()
    assert added.tasks == (task,)

    unchanged = app_reducer(added, Action(ActionType.DELETE_TASK, 'missing'))
    assert unchanged.tasks == added.tasks


def test_new_tasks_are_prepended_and_friends_appended(store):
    first = store.add_task({'title': 'First'})
    second = store.add_task({'title': 'Second'})
    assert [t.id for t in store.state.tasks] == [second.id, first.id]

    a = store.add_friend({'name': 'Ana Ruiz', 'email': 'ana@example.com'})
    b = store.add_friend({'name': 'Ben Ode', 'email': 'ben@example.com'})
    assert [f.id for f in store.state.friends] == [a.id, b.id]
    assert a.avatar == 'AR'
    assert a.status == FriendStatus.PENDING


def test_dispatch_persists_changed_collections(store, storage):
    task = store.add_task({'title': 'Plan sprint', 'priority': 'high'})
    raw = json.loads(storage.get(storage_key('tasks', 'user-1')))
    assert raw[0]['id'] == task.id
    assert raw[0]['priority'] == 'high'

    reloaded = DataStore(storage, 'user-1')
    reloaded.load()
    assert reloaded.get_task(task.id).title == 'Plan sprint'


def test_update_task_keeps_identity(store):
    task = store.add_task({'title': 'Draft'})
    updated = store.update_task(task.id, {'status': 'completed', 'id': 'other'})
    assert updated.id == task.id
    assert updated.created_at == task.created_at
    assert updated.status == TaskStatus.COMPLETED


def test_validation_errors(store):
    with pytest.raises(ValidationError) as excinfo:
        store.add_task({'title': '  '})
    assert excinfo.value.field_name == 'title'
    with pytest.raises(ValidationError):
        store.add_task({'title': 'x', 'priority': 'urgent'})
    with pytest.raises(ValidationError):
        store.add_mood_entry({'mood': 'bored'})
    with pytest.raises(ValidationError):
        store.add_friend({'name': 'No Mail', 'email': 'not-an-email'})


def test_missing_records_raise(store):
    with pytest.raises(RecordNotFoundError):
        store.update_task('nope', {'title': 'x'})
    with pytest.raises(RecordNotFoundError):
        store.delete_friend('nope')
    with pytest.raises(RecordNotFoundError):
        store.update_course_progress('nope', 10)


def test_mood_entry_defaults_timestamp_and_dedupes_factors(store):
    entry = store.add_mood_entry({'mood': 'happy', 'factors': ['Work', 'Sleep', 'Work']})
    assert entry.timestamp == entry.created_at
    assert entry.factors == ['Work', 'Sleep']
    assert entry.score == 4
    store.delete_mood_entry(entry.id)
    assert store.state.mood_entries == ()


def test_friend_status_update(store):
    friend = store.add_friend({'name': 'Kai', 'email': 'kai@example.com'})
    updated = store.update_friend_status(friend.id, 'accepted')
    assert updated.status == FriendStatus.ACCEPTED
    assert store.find_friend_by_email('KAI@example.com').id == friend.id
    with pytest.raises(ValidationError):
        store.update_friend_status(friend.id, 'bestie')


def test_course_progress_is_clamped_and_enrollment_toggles(store):
    courses = store.set_learning_courses([
        {'title': 'Deep Work', 'duration': 3, 'enrolled': False},
    ])
    course_id = courses[0].id
    assert store.update_course_progress(course_id, 140).progress == 100
    assert store.update_course_progress(course_id, -5).progress == 0
    assert store.enroll_course(course_id).enrolled is True
    assert store.enroll_course(course_id, False).enrolled is False


def test_seed_only_for_new_users(storage):
    seeded = DataStore(storage, 'new-user')
    state = seeded.load(seed_samples=True)
    assert len(state.tasks) == 3
    assert len(state.mood_entries) == 3
    assert len(state.friends) == 3
    assert len(state.learning_courses) == 3
    assert state.is_loading is False

    seeded.delete_task(state.tasks[0].id)
    again = DataStore(storage, 'new-user')
    assert len(again.load(seed_samples=True).tasks) == 2


def test_malformed_storage_is_ignored(storage):
    storage.set(storage_key('tasks', 'user-2'), '{not json')
    storage.set_json(storage_key('friends', 'user-2'), [{'name': 'No email'}])
    store = DataStore(storage, 'user-2')
    state = store.load()
    assert state.tasks == ()
    assert state.friends == ()
    assert state.error is None


def test_clear_removes_every_collection(store, storage):
    store.add_task({'title': 'Temporary'})
    store.clear()
    assert list(storage.keys('focusos_')) == []
    assert store.state.tasks == ()
