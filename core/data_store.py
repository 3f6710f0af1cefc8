# core/data_store.py
"""
Reducer-based CRUD store for a single user's FocusOS data

State transitions go through a pure reducer; the DataStore wraps it with
action creators that stamp ids and timestamps, and writes every changed
collection back to the key-value storage as a JSON array.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, replace
from enum import Enum

from core.models import (
    COLLECTIONS, Task, TimerSession, MoodEntry, Friend, LearningCourse,
    FriendStatus, RecordNotFoundError, ValidationError,
    clamp_progress, generate_id, to_iso, utc_now
)
from core.storage import LocalStore

logger = logging.getLogger(__name__)


class ActionType(Enum):
    SET_LOADING = "SET_LOADING"
    SET_ERROR = "SET_ERROR"
    SET_TASKS = "SET_TASKS"
    ADD_TASK = "ADD_TASK"
    UPDATE_TASK = "UPDATE_TASK"
    DELETE_TASK = "DELETE_TASK"
    SET_TIMER_SESSIONS = "SET_TIMER_SESSIONS"
    ADD_TIMER_SESSION = "ADD_TIMER_SESSION"
    UPDATE_TIMER_SESSION = "UPDATE_TIMER_SESSION"
    SET_MOOD_ENTRIES = "SET_MOOD_ENTRIES"
    ADD_MOOD_ENTRY = "ADD_MOOD_ENTRY"
    DELETE_MOOD_ENTRY = "DELETE_MOOD_ENTRY"
    SET_FRIENDS = "SET_FRIENDS"
    ADD_FRIEND = "ADD_FRIEND"
    UPDATE_FRIEND = "UPDATE_FRIEND"
    UPDATE_FRIEND_STATUS = "UPDATE_FRIEND_STATUS"
    DELETE_FRIEND = "DELETE_FRIEND"
    SET_LEARNING_COURSES = "SET_LEARNING_COURSES"
    UPDATE_COURSE_PROGRESS = "UPDATE_COURSE_PROGRESS"
    ENROLL_COURSE = "ENROLL_COURSE"


@dataclass(frozen=True)
class Action:
    type: ActionType
    payload: Any = None


@dataclass(frozen=True)
class AppState:
    tasks: Tuple[Task, ...] = ()
    timer_sessions: Tuple[TimerSession, ...] = ()
    mood_entries: Tuple[MoodEntry, ...] = ()
    friends: Tuple[Friend, ...] = ()
    learning_courses: Tuple[LearningCourse, ...] = ()
    is_loading: bool = False
    error: Optional[str] = None


def _replace_by_id(items: tuple, updated) -> tuple:
    return tuple(updated if item.id == updated.id else item for item in items)


def _without_id(items: tuple, record_id: str) -> tuple:
    return tuple(item for item in items if item.id != record_id)


def _patch_by_id(items: tuple, record_id: str, **changes) -> tuple:
    return tuple(replace(item, **changes) if item.id == record_id else item for item in items)


def app_reducer(state: AppState, action: Action) -> AppState:
    """Pure state transition; unknown action types and ids leave state unchanged"""
    kind = action.type
    payload = action.payload

    if kind == ActionType.SET_LOADING:
        return replace(state, is_loading=bool(payload))
    if kind == ActionType.SET_ERROR:
        return replace(state, error=payload)

    if kind == ActionType.SET_TASKS:
        return replace(state, tasks=tuple(payload))
    if kind == ActionType.ADD_TASK:
        return replace(state, tasks=(payload,) + state.tasks)
    if kind == ActionType.UPDATE_TASK:
        return replace(state, tasks=_replace_by_id(state.tasks, payload))
    if kind == ActionType.DELETE_TASK:
        return replace(state, tasks=_without_id(state.tasks, payload))

    if kind == ActionType.SET_TIMER_SESSIONS:
        return replace(state, timer_sessions=tuple(payload))
    if kind == ActionType.ADD_TIMER_SESSION:
        return replace(state, timer_sessions=(payload,) + state.timer_sessions)
    if kind == ActionType.UPDATE_TIMER_SESSION:
        return replace(state, timer_sessions=_replace_by_id(state.timer_sessions, payload))

    if kind == ActionType.SET_MOOD_ENTRIES:
        return replace(state, mood_entries=tuple(payload))
    if kind == ActionType.ADD_MOOD_ENTRY:
        return replace(state, mood_entries=(payload,) + state.mood_entries)
    if kind == ActionType.DELETE_MOOD_ENTRY:
        return replace(state, mood_entries=_without_id(state.mood_entries, payload))

    if kind == ActionType.SET_FRIENDS:
        return replace(state, friends=tuple(payload))
    if kind == ActionType.ADD_FRIEND:
        return replace(state, friends=state.friends + (payload,))
    if kind == ActionType.UPDATE_FRIEND:
        return replace(state, friends=_replace_by_id(state.friends, payload))
    if kind == ActionType.UPDATE_FRIEND_STATUS:
        return replace(state, friends=_patch_by_id(
            state.friends, payload['id'],
            status=payload['status'], updated_at=payload['updated_at']
        ))
    if kind == ActionType.DELETE_FRIEND:
        return replace(state, friends=_without_id(state.friends, payload))

    if kind == ActionType.SET_LEARNING_COURSES:
        return replace(state, learning_courses=tuple(payload))
    if kind == ActionType.UPDATE_COURSE_PROGRESS:
        return replace(state, learning_courses=_patch_by_id(
            state.learning_courses, payload['id'],
            progress=payload['progress'], updated_at=payload['updated_at']
        ))
    if kind == ActionType.ENROLL_COURSE:
        return replace(state, learning_courses=_patch_by_id(
            state.learning_courses, payload['id'],
            enrolled=payload['enrolled'], updated_at=payload['updated_at']
        ))

    return state


def storage_key(collection: str, user_id: str) -> str:
    return f"focusos_{collection}_{user_id}"


class DataStore:
    """
    One user's collections, persisted after every dispatch

    Args:
        storage: key-value backend
        user_id: owner of the collections
        clock: returns the current aware datetime
    """

    def __init__(self, storage: LocalStore, user_id: str,
                 clock: Callable[[], datetime] = utc_now):
        if not user_id:
            raise ValueError("user_id is required")
        self.storage = storage
        self.user_id = user_id
        self.clock = clock
        self._state = AppState()

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        previous = self._state
        self._state = app_reducer(previous, action)
        for collection in COLLECTIONS:
            if getattr(self._state, collection) is not getattr(previous, collection):
                self._persist(collection)
        return self._state

    def _persist(self, collection: str):
        items = getattr(self._state, collection)
        self.storage.set_json(storage_key(collection, self.user_id),
                              [item.to_dict() for item in items])

    def _now(self) -> str:
        return to_iso(self.clock())

    # Loading

    def load(self, seed_samples: bool = False) -> AppState:
        """Read every collection; a user with no stored data may be seeded"""
        self.dispatch(Action(ActionType.SET_LOADING, True))
        try:
            raw = {
                collection: self.storage.get_json(storage_key(collection, self.user_id))
                for collection in COLLECTIONS
            }
            if seed_samples and all(value is None for value in raw.values()):
                logger.info(f"Seeding sample data for new user {self.user_id}")
                self._seed()
            else:
                for collection, record_type in COLLECTIONS.items():
                    items = self._decode(collection, record_type, raw[collection])
                    self._state = replace(self._state, **{collection: tuple(items)})
            self.dispatch(Action(ActionType.SET_ERROR, None))
        except Exception as e:
            logger.error(f"Failed to load data for user {self.user_id}: {e}", exc_info=True)
            self.dispatch(Action(ActionType.SET_ERROR, str(e)))
            raise
        finally:
            self.dispatch(Action(ActionType.SET_LOADING, False))
        return self._state

    def _decode(self, collection: str, record_type, raw) -> List[Any]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning(f"Ignoring malformed {collection} blob for user {self.user_id}")
            return []
        items = []
        for entry in raw:
            try:
                items.append(record_type.from_dict(entry))
            except (ValidationError, AttributeError, TypeError) as e:
                logger.warning(f"Skipping unreadable {collection} record: {e}")
        return items

    def clear(self):
        """Remove every stored collection for this user"""
        for collection in COLLECTIONS:
            self.storage.remove(storage_key(collection, self.user_id))
        self._state = AppState()
        logger.info(f"Cleared stored data for user {self.user_id}")

    # Lookups

    def _find(self, collection: str, record_id: str):
        for item in getattr(self._state, collection):
            if item.id == record_id:
                return item
        raise RecordNotFoundError(collection, record_id)

    def get_task(self, task_id: str) -> Task:
        return self._find('tasks', task_id)

    def get_friend(self, friend_id: str) -> Friend:
        return self._find('friends', friend_id)

    def get_course(self, course_id: str) -> LearningCourse:
        return self._find('learning_courses', course_id)

    def find_friend_by_email(self, email: str) -> Optional[Friend]:
        email = email.lower()
        for friend in self._state.friends:
            if friend.email.lower() == email:
                return friend
        return None

    def _merged(self, record_type, existing, changes: Dict[str, Any]):
        """Apply a partial update, keeping identity fields"""
        data = existing.to_dict()
        data.update({k: v for k, v in changes.items()
                     if k not in ('id', 'created_at', 'updated_at')})
        updated = record_type.from_dict(data)
        updated.id = existing.id
        updated.created_at = existing.created_at
        updated.updated_at = self._now()
        return updated

    def _create(self, record_type, payload: Dict[str, Any]):
        data = {k: v for k, v in payload.items() if k not in ('id', 'created_at', 'updated_at')}
        record = record_type.from_dict(data)
        return record.stamp(self.clock(), generate_id())

    # Tasks

    def add_task(self, payload: Dict[str, Any]) -> Task:
        task = self._create(Task, payload)
        self.dispatch(Action(ActionType.ADD_TASK, task))
        return task

    def update_task(self, task_id: str, changes: Dict[str, Any]) -> Task:
        task = self._merged(Task, self.get_task(task_id), changes)
        self.dispatch(Action(ActionType.UPDATE_TASK, task))
        return task

    def delete_task(self, task_id: str):
        self.get_task(task_id)
        self.dispatch(Action(ActionType.DELETE_TASK, task_id))

    # Timer sessions

    def add_timer_session(self, payload: Dict[str, Any]) -> TimerSession:
        session = self._create(TimerSession, payload)
        self.dispatch(Action(ActionType.ADD_TIMER_SESSION, session))
        return session

    def update_timer_session(self, session_id: str, changes: Dict[str, Any]) -> TimerSession:
        session = self._merged(TimerSession, self._find('timer_sessions', session_id), changes)
        self.dispatch(Action(ActionType.UPDATE_TIMER_SESSION, session))
        return session

    # Mood entries

    def add_mood_entry(self, payload: Dict[str, Any]) -> MoodEntry:
        entry = self._create(MoodEntry, payload)
        if not entry.timestamp:
            entry.timestamp = entry.created_at
        self.dispatch(Action(ActionType.ADD_MOOD_ENTRY, entry))
        return entry

    def delete_mood_entry(self, entry_id: str):
        self._find('mood_entries', entry_id)
        self.dispatch(Action(ActionType.DELETE_MOOD_ENTRY, entry_id))

    # Friends

    def add_friend(self, payload: Dict[str, Any]) -> Friend:
        friend = self._create(Friend, payload)
        if not friend.last_active:
            friend.last_active = friend.created_at
        self.dispatch(Action(ActionType.ADD_FRIEND, friend))
        return friend

    def update_friend(self, friend_id: str, changes: Dict[str, Any]) -> Friend:
        friend = self._merged(Friend, self.get_friend(friend_id), changes)
        self.dispatch(Action(ActionType.UPDATE_FRIEND, friend))
        return friend

    def update_friend_status(self, friend_id: str, status) -> Friend:
        self.get_friend(friend_id)
        try:
            status = FriendStatus(status)
        except ValueError:
            allowed = ', '.join(member.value for member in FriendStatus)
            raise ValidationError(f"status must be one of: {allowed}", 'status')
        self.dispatch(Action(ActionType.UPDATE_FRIEND_STATUS, {
            'id': friend_id, 'status': status, 'updated_at': self._now()
        }))
        return self.get_friend(friend_id)

    def delete_friend(self, friend_id: str):
        self.get_friend(friend_id)
        self.dispatch(Action(ActionType.DELETE_FRIEND, friend_id))

    # Learning courses

    def set_learning_courses(self, payloads: List[Dict[str, Any]]) -> List[LearningCourse]:
        courses = [self._create(LearningCourse, payload) for payload in payloads]
        self.dispatch(Action(ActionType.SET_LEARNING_COURSES, courses))
        return courses

    def update_course_progress(self, course_id: str, progress) -> LearningCourse:
        self.get_course(course_id)
        if isinstance(progress, bool) or not isinstance(progress, (int, float)):
            raise ValidationError("progress must be a number", 'progress')
        self.dispatch(Action(ActionType.UPDATE_COURSE_PROGRESS, {
            'id': course_id, 'progress': clamp_progress(progress), 'updated_at': self._now()
        }))
        return self.get_course(course_id)

    def enroll_course(self, course_id: str, enrolled: bool = True) -> LearningCourse:
        self.get_course(course_id)
        self.dispatch(Action(ActionType.ENROLL_COURSE, {
            'id': course_id, 'enrolled': bool(enrolled), 'updated_at': self._now()
        }))
        return self.get_course(course_id)

    # Sample data

    def _seed(self):
        now = self.clock()

        def stamp(record):
            return record.stamp(now, generate_id())

        tasks = [stamp(Task.from_dict(data)) for data in SAMPLE_TASKS]
        moods = []
        for hours_ago, data in SAMPLE_MOOD_ENTRIES:
            entry = stamp(MoodEntry.from_dict(data))
            entry.timestamp = to_iso(now - timedelta(hours=hours_ago))
            moods.append(entry)
        friends = []
        for minutes_ago, data in SAMPLE_FRIENDS:
            friend = stamp(Friend.from_dict(data))
            friend.last_active = to_iso(now - timedelta(minutes=minutes_ago))
            friends.append(friend)
        courses = [stamp(LearningCourse.from_dict(data)) for data in SAMPLE_COURSES]

        self.dispatch(Action(ActionType.SET_TASKS, tasks))
        self.dispatch(Action(ActionType.SET_MOOD_ENTRIES, moods))
        self.dispatch(Action(ActionType.SET_FRIENDS, friends))
        self.dispatch(Action(ActionType.SET_LEARNING_COURSES, courses))


SAMPLE_TASKS = [
    {'title': 'Complete project proposal',
     'description': 'Write and submit the quarterly project proposal for Q1',
     'priority': 'high', 'status': 'in-progress', 'due_date': '2024-01-15', 'category': 'Work'},
    {'title': 'Review code changes',
     'description': 'Review pull requests and provide feedback to team members',
     'priority': 'medium', 'status': 'todo', 'due_date': '2024-01-12', 'category': 'Development'},
    {'title': 'Update documentation',
     'description': 'Update API documentation with new endpoints',
     'priority': 'low', 'status': 'completed', 'due_date': '2024-01-08', 'category': 'Documentation'},
]

# (hours ago, entry)
SAMPLE_MOOD_ENTRIES = [
    (2, {'mood': 'happy', 'description': 'Had a great workout this morning and feeling energized',
         'factors': ['Exercise', 'Health']}),
    (6, {'mood': 'neutral', 'description': 'Regular work day, nothing special', 'factors': ['Work']}),
    (24, {'mood': 'excited', 'description': 'Completed a challenging project successfully!',
          'factors': ['Work', 'Social']}),
]

# (minutes since last active, friend)
SAMPLE_FRIENDS = [
    (0, {'name': 'Mike Wilson', 'email': 'mike.w@example.com', 'status': 'online'}),
    (60, {'name': 'Alex Lee', 'email': 'alex.lee@example.com', 'status': 'offline'}),
    (5, {'name': 'Rachel Kim', 'email': 'rachel.k@example.com', 'status': 'online'}),
]

SAMPLE_COURSES = [
    {'title': 'Productivity Fundamentals',
     'description': 'Learn the basics of time management and productivity techniques.',
     'category': 'Time Management', 'difficulty': 'beginner', 'duration': 2,
     'progress': 75, 'rating': 4.8, 'enrolled': True},
    {'title': 'Advanced Focus Techniques',
     'description': 'Master deep work and concentration strategies for better results.',
     'category': 'Focus', 'difficulty': 'intermediate', 'duration': 3.5,
     'progress': 60, 'rating': 4.9, 'enrolled': True},
    {'title': 'Mindfulness & Well-being',
     'description': 'Develop mental clarity and emotional balance for sustained focus.',
     'category': 'Wellness', 'difficulty': 'advanced', 'duration': 5,
     'progress': 0, 'rating': 4.7, 'enrolled': False},
]
