# services/timer_service.py
"""
Request-driven focus timer service

Each call loads the user's timer, catches it up to the wall clock, applies
one command and persists the result. Completed intervals are recorded into
the user's data store as timer sessions.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional

from core.data_store import DataStore
from core.focus_timer import FocusTimer, TimerEvent, TimerSettings
from core.models import SessionStatus, TimerSession
from core.storage import LocalStore

logger = logging.getLogger(__name__)


def timer_state_key(user_id: str) -> str:
    return f"focusos_timer_state_{user_id}"


class TimerService:
    """Apply timer commands for one user"""

    COMMANDS = ('start', 'pause', 'resume', 'stop', 'settings')

    def __init__(self, storage: LocalStore, store: DataStore,
                 clock: Callable[[], float] = time.time,
                 default_settings: Optional[TimerSettings] = None):
        self.storage = storage
        self.store = store
        self.clock = clock
        self.default_settings = default_settings or TimerSettings()

    @property
    def key(self) -> str:
        return timer_state_key(self.store.user_id)

    def load_timer(self) -> FocusTimer:
        data = self.storage.get_json(self.key)
        if data:
            try:
                timer = FocusTimer.from_dict(data, clock=self.clock)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Resetting unreadable timer state for {self.store.user_id}: {e}")
                timer = FocusTimer(self.default_settings, clock=self.clock)
        else:
            timer = FocusTimer(self.default_settings, clock=self.clock)
        timer.on_expire(self._record_session)
        return timer

    def save_timer(self, timer: FocusTimer):
        self.storage.set_json(self.key, timer.to_dict())

    def _record_session(self, session: TimerSession):
        payload = session.to_dict()
        payload['status'] = SessionStatus.COMPLETED.value
        recorded = self.store.add_timer_session(payload)
        logger.info(
            f"Recorded {session.type.value} session of {session.duration}s "
            f"for user {self.store.user_id} ({recorded.id})"
        )

    def _result(self, timer: FocusTimer, events: List[TimerEvent]) -> Dict[str, Any]:
        return {
            'timer': timer.snapshot(),
            'events': [event.to_dict() for event in events],
        }

    def status(self) -> Dict[str, Any]:
        """Current snapshot after catching up with the clock"""
        timer = self.load_timer()
        timer.sync()
        self.save_timer(timer)
        return self._result(timer, timer.drain_events())

    def apply(self, command: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run one timer command

        Args:
            command: start, pause, resume, stop or settings
            payload: mode for start, changed fields for settings

        Raises:
            ValueError: unknown command
            TimerStateError: command not valid in the current state
            ValidationError: invalid mode or settings
        """
        if command not in self.COMMANDS:
            raise ValueError(f"Unknown timer command: {command}")
        payload = payload or {}

        timer = self.load_timer()
        timer.sync()

        if command == 'start':
            timer.start(payload.get('mode'))
        elif command == 'pause':
            timer.pause()
        elif command == 'resume':
            timer.resume()
        elif command == 'stop':
            timer.stop()
        else:
            timer.update_settings(payload)

        self.save_timer(timer)
        logger.debug(f"Timer {command} for user {self.store.user_id}: {timer.state.value}")
        return self._result(timer, timer.drain_events())

    def reset(self):
        self.storage.remove(self.key)
