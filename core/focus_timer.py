# core/focus_timer.py
"""
Pomodoro countdown timer

States: idle, running, paused, expired. Modes: focus, short break and
long break. A finished focus interval can start the next break on its own;
expiry listeners run exactly once per session.

The timer never schedules anything itself. Callers advance it either with
explicit tick() calls or with sync(), which converts wall-clock time since
the previous sync into a tick.
"""

import math
import time
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, asdict
from enum import Enum

from core.models import (
    FocusOSError, ValidationError, SessionType, SessionStatus, TimerSession,
    coerce_enum, generate_id, to_iso
)

logger = logging.getLogger(__name__)


class TimerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


class TimerStateError(FocusOSError):
    """Command not allowed in the timer's current state"""

    def __init__(self, command: str, state: TimerState):
        super().__init__(f"Cannot {command} a timer that is {state.value}")
        self.command = command
        self.state = state


# (minimum, maximum) for each numeric setting
SETTING_LIMITS = {
    'focus_minutes': (1, 120),
    'short_break_minutes': (1, 30),
    'long_break_minutes': (1, 60),
    'long_break_interval': (1, 12),
}


@dataclass
class TimerSettings:
    focus_minutes: int = 25
    short_break_minutes: int = 5
    long_break_minutes: int = 15
    auto_start_breaks: bool = True
    long_break_interval: int = 4

    def __post_init__(self):
        for name, (low, high) in SETTING_LIMITS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be a whole number", name)
            if not low <= value <= high:
                raise ValidationError(f"{name} must be between {low} and {high}", name)
        if not isinstance(self.auto_start_breaks, bool):
            raise ValidationError("auto_start_breaks must be a boolean", 'auto_start_breaks')

    def duration_for(self, mode: SessionType) -> int:
        """Interval length in seconds"""
        minutes = {
            SessionType.FOCUS: self.focus_minutes,
            SessionType.SHORT_BREAK: self.short_break_minutes,
            SessionType.LONG_BREAK: self.long_break_minutes,
        }[mode]
        return minutes * 60

    def updated(self, changes: Dict[str, Any]) -> 'TimerSettings':
        unknown = set(changes) - set(asdict(self))
        if unknown:
            raise ValidationError(f"Unknown timer settings: {', '.join(sorted(unknown))}")
        merged = asdict(self)
        merged.update(changes)
        return TimerSettings(**merged)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'TimerSettings':
        return cls().updated(data or {})


@dataclass
class TimerEvent:
    kind: str  # started, paused, resumed, stopped, expired
    mode: SessionType
    at: str
    session: Optional[Dict[str, Any]] = None
    auto: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'mode': self.mode.value,
            'at': self.at,
            'session': self.session,
            'auto': self.auto,
        }


def format_time(seconds: float) -> str:
    """MM:SS, rounding partial seconds up"""
    whole = max(0, int(math.ceil(seconds)))
    minutes, secs = divmod(whole, 60)
    return f"{minutes:02d}:{secs:02d}"


def _epoch_to_iso(epoch: float) -> str:
    return to_iso(datetime.fromtimestamp(epoch, timezone.utc))


class FocusTimer:
    """
    Countdown state machine for focus and break intervals

    Args:
        settings: interval lengths and auto-start behaviour
        clock: returns the current time as epoch seconds
    """

    def __init__(self, settings: Optional[TimerSettings] = None,
                 clock: Callable[[], float] = time.time):
        self.settings = settings or TimerSettings()
        self.clock = clock
        self.state = TimerState.IDLE
        self.mode = SessionType.FOCUS
        self.remaining = float(self.settings.duration_for(SessionType.FOCUS))
        self.session: Optional[TimerSession] = None
        self.completed_focus_count = 0
        self.last_synced: Optional[float] = None
        self._expire_listeners: List[Callable[[TimerSession], None]] = []
        self._expired_session_id: Optional[str] = None
        self._events: List[TimerEvent] = []

    # Listeners and events

    def on_expire(self, callback: Callable[[TimerSession], None]):
        self._expire_listeners.append(callback)
        return callback

    def _emit(self, kind: str, at: float, auto: bool = False) -> TimerEvent:
        event = TimerEvent(
            kind=kind,
            mode=self.mode,
            at=_epoch_to_iso(at),
            session=self.session.to_dict() if self.session else None,
            auto=auto
        )
        self._events.append(event)
        return event

    def drain_events(self) -> List[TimerEvent]:
        events, self._events = self._events, []
        return events

    # Commands

    def start(self, mode=None) -> TimerEvent:
        """Start a fresh interval; any active session is abandoned"""
        mode = coerce_enum(SessionType, mode, 'mode') if mode is not None else self.mode
        if self.state in (TimerState.RUNNING, TimerState.PAUSED) and self.session:
            logger.debug(f"Abandoning {self.session.type.value} session {self.session.id}")
        return self._begin(mode, self.clock())

    def _begin(self, mode: SessionType, started_at: float, auto: bool = False) -> TimerEvent:
        duration = self.settings.duration_for(mode)
        self.session = TimerSession(
            type=mode,
            duration=duration,
            start_time=_epoch_to_iso(started_at),
            status=SessionStatus.IN_PROGRESS,
            id=generate_id()
        )
        self.mode = mode
        self.remaining = float(duration)
        self.state = TimerState.RUNNING
        self.last_synced = self.clock()
        return self._emit('started', started_at, auto=auto)

    def pause(self) -> TimerEvent:
        if self.state != TimerState.RUNNING:
            raise TimerStateError('pause', self.state)
        self.state = TimerState.PAUSED
        self.session.status = SessionStatus.PAUSED
        self.last_synced = None
        return self._emit('paused', self.clock())

    def resume(self) -> TimerEvent:
        if self.state != TimerState.PAUSED:
            raise TimerStateError('resume', self.state)
        self.state = TimerState.RUNNING
        self.session.status = SessionStatus.IN_PROGRESS
        self.last_synced = self.clock()
        return self._emit('resumed', self.clock())

    def stop(self) -> Optional[TimerSession]:
        """Reset to an idle focus interval; returns the abandoned session, if any"""
        abandoned = self.session if self.state in (TimerState.RUNNING, TimerState.PAUSED) else None
        self._emit('stopped', self.clock())
        self.state = TimerState.IDLE
        self.mode = SessionType.FOCUS
        self.remaining = float(self.settings.duration_for(SessionType.FOCUS))
        self.session = None
        self.last_synced = None
        return abandoned

    def tick(self, seconds: float = 1.0) -> List[TimerEvent]:
        """Advance a running timer; returns the events raised by this tick"""
        if seconds < 0:
            raise ValueError("tick seconds must not be negative")
        before = len(self._events)
        if self.state == TimerState.RUNNING:
            self.remaining -= seconds
            if self.remaining <= 0:
                overshoot = -self.remaining
                self._expire(overshoot)
                # carry the overshoot into an auto-started break
                if self.state == TimerState.RUNNING and overshoot > 0:
                    self.tick(overshoot)
        return self._events[before:]

    def sync(self, now: Optional[float] = None) -> List[TimerEvent]:
        """Tick by the wall-clock time elapsed since the previous sync"""
        now = self.clock() if now is None else now
        if self.state != TimerState.RUNNING or self.last_synced is None:
            return []
        elapsed = max(0.0, now - self.last_synced)
        self.last_synced = now
        return self.tick(elapsed)

    def _expire(self, overshoot: float = 0.0):
        expired_at = self.clock() - overshoot
        session = self.session
        self.state = TimerState.EXPIRED
        self.remaining = 0.0
        session.status = SessionStatus.COMPLETED
        session.end_time = _epoch_to_iso(expired_at)
        self._emit('expired', expired_at)

        if self._expired_session_id != session.id:
            self._expired_session_id = session.id
            for listener in self._expire_listeners:
                try:
                    listener(session)
                except Exception as e:
                    logger.error(f"Timer expiry listener failed: {e}", exc_info=True)

        if session.type == SessionType.FOCUS:
            self.completed_focus_count += 1
            if self.settings.auto_start_breaks:
                self._begin(self.next_break_mode(), expired_at, auto=True)

    def next_break_mode(self) -> SessionType:
        if self.completed_focus_count and \
                self.completed_focus_count % self.settings.long_break_interval == 0:
            return SessionType.LONG_BREAK
        return SessionType.SHORT_BREAK

    def update_settings(self, changes: Dict[str, Any]) -> TimerSettings:
        self.settings = self.settings.updated(changes)
        # a finished session counts as idle, so the new focus length shows at once
        if self.state in (TimerState.IDLE, TimerState.EXPIRED):
            self.state = TimerState.IDLE
            self.mode = SessionType.FOCUS
            self.remaining = float(self.settings.duration_for(SessionType.FOCUS))
            self.session = None
            self.last_synced = None
        return self.settings

    # Views and persistence

    @property
    def remaining_seconds(self) -> int:
        return max(0, int(math.ceil(self.remaining)))

    def snapshot(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'mode': self.mode.value,
            'remaining_seconds': self.remaining_seconds,
            'display': format_time(self.remaining),
            'duration': self.settings.duration_for(self.mode),
            'session': self.session.to_dict() if self.session else None,
            'completed_focus_count': self.completed_focus_count,
            'settings': self.settings.to_dict(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'mode': self.mode.value,
            'remaining': self.remaining,
            'session': self.session.to_dict() if self.session else None,
            'completed_focus_count': self.completed_focus_count,
            'last_synced': self.last_synced,
            'expired_session_id': self._expired_session_id,
            'settings': self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  clock: Callable[[], float] = time.time) -> 'FocusTimer':
        timer = cls(TimerSettings.from_dict(data.get('settings')), clock=clock)
        timer.state = TimerState(data.get('state', 'idle'))
        timer.mode = SessionType(data.get('mode', 'focus'))
        timer.remaining = float(data.get('remaining', timer.remaining))
        session = data.get('session')
        timer.session = TimerSession.from_dict(session) if session else None
        timer.completed_focus_count = int(data.get('completed_focus_count', 0))
        timer.last_synced = data.get('last_synced')
        timer._expired_session_id = data.get('expired_session_id')
        if timer.state in (TimerState.RUNNING, TimerState.PAUSED) and timer.session is None:
            logger.warning("Discarding timer state without an active session")
            timer.state = TimerState.IDLE
        return timer
