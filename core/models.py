# core/models.py
"""
Record types for the FocusOS per-user data store

Every record is a dataclass carrying a generated id plus creation/update
timestamps. Records travel as JSON dictionaries between the HTTP layer,
the reducer store and the key-value storage backend.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, asdict, fields
from enum import Enum

from email_validator import validate_email, EmailNotValidError

logger = logging.getLogger(__name__)


class FocusOSError(Exception):
    """Base exception for FocusOS operations"""
    pass


class ValidationError(FocusOSError):
    """Payload failed validation"""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name


class RecordNotFoundError(FocusOSError):
    """No record with the requested id"""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record {record_id} not found")
        self.collection = collection
        self.record_id = record_id


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class SessionType(Enum):
    """Timer modes"""
    FOCUS = "focus"
    SHORT_BREAK = "short-break"
    LONG_BREAK = "long-break"


class SessionStatus(Enum):
    COMPLETED = "completed"
    IN_PROGRESS = "in-progress"
    PAUSED = "paused"


class Mood(Enum):
    ANGRY = "angry"
    SAD = "sad"
    NEUTRAL = "neutral"
    HAPPY = "happy"
    EXCITED = "excited"


class FriendStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ONLINE = "online"
    OFFLINE = "offline"
    BLOCKED = "blocked"


class Difficulty(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# Mood scores on the 1..5 scale used by the mood log
MOOD_SCORES = {
    Mood.ANGRY: 1,
    Mood.SAD: 2,
    Mood.NEUTRAL: 3,
    Mood.HAPPY: 4,
    Mood.EXCITED: 5,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """ISO8601 UTC string without microseconds"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO8601 timestamp, assuming UTC when no offset is given"""
    try:
        moment = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def normalize_timestamp(value: str) -> str:
    """Validate a client timestamp and store it in UTC"""
    return to_iso(parse_iso(value))


def generate_id() -> str:
    return uuid.uuid4().hex


def coerce_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}", field_name)


def _required_text(payload: Dict[str, Any], field_name: str) -> str:
    value = payload.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", field_name)
    return value.strip()


def _optional_text(payload: Dict[str, Any], field_name: str, default: str = '') -> str:
    value = payload.get(field_name, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string", field_name)
    return value.strip()


def _number(payload: Dict[str, Any], field_name: str, default: float,
            minimum: Optional[float] = None, maximum: Optional[float] = None) -> float:
    value = payload.get(field_name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field_name} must be a number", field_name)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field_name} must be at least {minimum}", field_name)
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field_name} must be at most {maximum}", field_name)
    return value


def normalize_email(value: Any, field_name: str = 'email') -> str:
    """Validate an email address without DNS lookups"""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", field_name)
    try:
        result = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email address: {e}", field_name)
    return result.normalized


def initials(name: str) -> str:
    """Avatar initials: first letter of the first two words"""
    parts = [part for part in name.split() if part]
    return ''.join(part[0] for part in parts[:2]).upper()


class Record:
    """JSON conversion shared by every record type"""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def stamp(self, moment: datetime, record_id: Optional[str] = None):
        """Assign id and timestamps to a freshly created record"""
        self.id = record_id or self.id or generate_id()
        self.created_at = self.created_at or to_iso(moment)
        self.updated_at = to_iso(moment)
        return self


@dataclass
class Task(Record):
    title: str
    description: str = ''
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    due_date: Optional[str] = None
    category: str = ''
    id: str = ''
    created_at: str = ''
    updated_at: str = ''

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'Task':
        due_date = payload.get('due_date')
        if due_date:
            try:
                datetime.strptime(str(due_date)[:10], '%Y-%m-%d')
            except ValueError:
                raise ValidationError("due_date must be an ISO date (YYYY-MM-DD)", 'due_date')
            due_date = str(due_date)[:10]
        return cls(
            title=_required_text(payload, 'title'),
            description=_optional_text(payload, 'description'),
            priority=coerce_enum(TaskPriority, payload.get('priority', 'medium'), 'priority'),
            status=coerce_enum(TaskStatus, payload.get('status', 'todo'), 'status'),
            due_date=due_date or None,
            category=_optional_text(payload, 'category'),
            id=payload.get('id', '') or '',
            created_at=payload.get('created_at', '') or '',
            updated_at=payload.get('updated_at', '') or '',
        )


@dataclass
class TimerSession(Record):
    type: SessionType
    duration: int
    start_time: str
    end_time: Optional[str] = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    id: str = ''
    created_at: str = ''
    updated_at: str = ''

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'TimerSession':
        start_time = payload.get('start_time')
        if not start_time:
            raise ValidationError("start_time is required", 'start_time')
        start_time = normalize_timestamp(start_time)
        end_time = payload.get('end_time')
        if end_time:
            end_time = normalize_timestamp(end_time)
        return cls(
            type=coerce_enum(SessionType, payload.get('type'), 'type'),
            duration=int(_number(payload, 'duration', 0, minimum=1)),
            start_time=start_time,
            end_time=end_time or None,
            status=coerce_enum(SessionStatus, payload.get('status', 'in-progress'), 'status'),
            id=payload.get('id', '') or '',
            created_at=payload.get('created_at', '') or '',
            updated_at=payload.get('updated_at', '') or '',
        )


@dataclass
class MoodEntry(Record):
    mood: Mood
    description: str = ''
    factors: List[str] = field(default_factory=list)
    timestamp: str = ''
    id: str = ''
    created_at: str = ''
    updated_at: str = ''

    @property
    def score(self) -> int:
        return MOOD_SCORES[self.mood]

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'MoodEntry':
        factors = payload.get('factors') or []
        if not isinstance(factors, list) or not all(isinstance(f, str) for f in factors):
            raise ValidationError("factors must be a list of strings", 'factors')
        timestamp = payload.get('timestamp') or ''
        if timestamp:
            timestamp = normalize_timestamp(timestamp)
        return cls(
            mood=coerce_enum(Mood, payload.get('mood'), 'mood'),
            description=_optional_text(payload, 'description'),
            # keep first occurrence order, drop duplicates
            factors=list(dict.fromkeys(f.strip() for f in factors if f.strip())),
            timestamp=timestamp,
            id=payload.get('id', '') or '',
            created_at=payload.get('created_at', '') or '',
            updated_at=payload.get('updated_at', '') or '',
        )


@dataclass
class Friend(Record):
    name: str
    email: str
    status: FriendStatus = FriendStatus.PENDING
    last_active: str = ''
    avatar: str = ''
    id: str = ''
    created_at: str = ''
    updated_at: str = ''

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'Friend':
        name = _required_text(payload, 'name')
        last_active = payload.get('last_active') or ''
        if last_active:
            last_active = normalize_timestamp(last_active)
        return cls(
            name=name,
            email=normalize_email(payload.get('email')),
            status=coerce_enum(FriendStatus, payload.get('status', 'pending'), 'status'),
            last_active=last_active,
            avatar=_optional_text(payload, 'avatar') or initials(name),
            id=payload.get('id', '') or '',
            created_at=payload.get('created_at', '') or '',
            updated_at=payload.get('updated_at', '') or '',
        )


@dataclass
class LearningCourse(Record):
    title: str
    description: str = ''
    category: str = ''
    difficulty: Difficulty = Difficulty.BEGINNER
    duration: float = 0.0
    progress: int = 0
    rating: float = 0.0
    enrolled: bool = False
    id: str = ''
    created_at: str = ''
    updated_at: str = ''

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'LearningCourse':
        enrolled = payload.get('enrolled', False)
        if not isinstance(enrolled, bool):
            raise ValidationError("enrolled must be a boolean", 'enrolled')
        return cls(
            title=_required_text(payload, 'title'),
            description=_optional_text(payload, 'description'),
            category=_optional_text(payload, 'category'),
            difficulty=coerce_enum(Difficulty, payload.get('difficulty', 'beginner'), 'difficulty'),
            duration=float(_number(payload, 'duration', 0.0, minimum=0)),
            progress=clamp_progress(_number(payload, 'progress', 0)),
            rating=float(_number(payload, 'rating', 0.0, minimum=0, maximum=5)),
            enrolled=enrolled,
            id=payload.get('id', '') or '',
            created_at=payload.get('created_at', '') or '',
            updated_at=payload.get('updated_at', '') or '',
        )


def clamp_progress(value: float) -> int:
    return int(max(0, min(100, round(value))))


# Collection name -> record type, in storage order
COLLECTIONS = {
    'tasks': Task,
    'timer_sessions': TimerSession,
    'mood_entries': MoodEntry,
    'friends': Friend,
    'learning_courses': LearningCourse,
}
