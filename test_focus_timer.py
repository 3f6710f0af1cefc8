import pytest

from conftest import FakeClock
from core.data_store import DataStore
from core.focus_timer import FocusTimer, TimerSettings, TimerState, TimerStateError, format_time
from core.models import SessionStatus, SessionType, ValidationError
from core.storage import MemoryStorage
from services.timer_service import TimerService, timer_state_key


def test_format_time_rounds_partial_seconds_up():
    assert format_time(1500) == "25:00"
    assert format_time(59.2) == "01:00"
    assert format_time(0) == "00:00"
    assert format_time(-3) == "00:00"


def test_settings_validation():
    with pytest.raises(ValidationError):
        TimerSettings(focus_minutes=0)
    with pytest.raises(ValidationError):
        TimerSettings(auto_start_breaks='yes')
    with pytest.raises(ValidationError):
        TimerSettings().updated({'snooze_minutes': 3})
    assert TimerSettings.from_dict({'focus_minutes': 50}).focus_minutes == 50


def test_start_pause_resume(clock):
    timer = FocusTimer(clock=clock)
    assert timer.state == TimerState.IDLE
    assert timer.remaining_seconds == 25 * 60

    timer.start()
    timer.tick(60)
    assert timer.remaining_seconds == 24 * 60

    timer.pause()
    assert timer.session.status == SessionStatus.PAUSED
    timer.tick(120)
    assert timer.remaining_seconds == 24 * 60

    timer.resume()
    assert timer.state == TimerState.RUNNING
    assert timer.snapshot()['display'] == "24:00"


def test_invalid_transitions_raise(clock):
    timer = FocusTimer(clock=clock)
    with pytest.raises(TimerStateError):
        timer.pause()
    with pytest.raises(TimerStateError):
        timer.resume()
    timer.start()
    with pytest.raises(TimerStateError):
        timer.resume()


def test_start_rejects_unknown_mode(clock):
    with pytest.raises(ValidationError):
        FocusTimer(clock=clock).start('nap')


def test_focus_expiry_auto_starts_short_break(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1), clock=clock)
    expired = []
    timer.on_expire(expired.append)

    timer.start()
    clock.advance(60)
    events = timer.tick(60)

    assert [e.kind for e in events] == ['expired', 'started']
    assert events[1].auto is True
    assert len(expired) == 1
    assert expired[0].status == SessionStatus.COMPLETED
    assert expired[0].end_time is not None
    assert timer.mode == SessionType.SHORT_BREAK
    assert timer.state == TimerState.RUNNING
    assert timer.completed_focus_count == 1


def test_overshoot_carries_into_break(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1, short_break_minutes=5), clock=clock)
    timer.start()
    timer.tick(90)
    assert timer.mode == SessionType.SHORT_BREAK
    assert timer.remaining_seconds == 5 * 60 - 30


def test_without_auto_start_timer_waits_expired(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1, auto_start_breaks=False), clock=clock)
    timer.start()
    timer.tick(61)
    assert timer.state == TimerState.EXPIRED
    assert timer.remaining_seconds == 0
    assert timer.tick(10) == []


def test_long_break_after_interval(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1, long_break_interval=2), clock=clock)
    timer.start()
    timer.tick(60)
    assert timer.mode == SessionType.SHORT_BREAK
    timer.start(SessionType.FOCUS)
    timer.tick(60)
    assert timer.mode == SessionType.LONG_BREAK


def test_expiry_listener_runs_once_per_session(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1, auto_start_breaks=False), clock=clock)
    calls = []
    timer.on_expire(calls.append)
    timer.start()
    timer.tick(60)

    restored = FocusTimer.from_dict(timer.to_dict(), clock=clock)
    restored.on_expire(calls.append)
    restored.state = TimerState.RUNNING
    restored.remaining = 1
    restored.tick(1)
    assert len(calls) == 1


def test_failing_listener_does_not_break_timer(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1), clock=clock)

    def broken(session):
        raise RuntimeError("listener failed")

    timer.on_expire(broken)
    timer.start()
    timer.tick(60)
    assert timer.mode == SessionType.SHORT_BREAK


def test_stop_resets_to_idle_focus(clock):
    timer = FocusTimer(clock=clock)
    timer.start('short-break')
    abandoned = timer.stop()
    assert abandoned.type == SessionType.SHORT_BREAK
    assert timer.state == TimerState.IDLE
    assert timer.mode == SessionType.FOCUS
    assert timer.session is None


def test_update_settings_resets_idle_duration(clock):
    timer = FocusTimer(clock=clock)
    timer.update_settings({'focus_minutes': 45})
    assert timer.remaining_seconds == 45 * 60


def test_update_settings_after_expiry_shows_new_focus_duration(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1, auto_start_breaks=False), clock=clock)
    timer.start()
    timer.tick(61)
    assert timer.state == TimerState.EXPIRED

    timer.update_settings({'focus_minutes': 30})
    assert timer.state == TimerState.IDLE
    assert timer.mode == SessionType.FOCUS
    assert timer.remaining_seconds == 30 * 60
    assert timer.session is None
    assert format_time(timer.remaining_seconds) == '30:00'


def test_update_settings_keeps_paused_session(clock):
    timer = FocusTimer(clock=clock)
    timer.start()
    timer.tick(60)
    timer.pause()
    timer.update_settings({'focus_minutes': 50})
    assert timer.state == TimerState.PAUSED
    assert timer.remaining_seconds == 24 * 60


def test_sync_uses_wall_clock(clock):
    timer = FocusTimer(TimerSettings(focus_minutes=1), clock=clock)
    timer.start()
    clock.advance(20)
    timer.sync()
    assert timer.remaining_seconds == 40


def test_round_trip_preserves_state(clock):
    timer = FocusTimer(clock=clock)
    timer.start()
    timer.tick(30)
    timer.pause()
    restored = FocusTimer.from_dict(timer.to_dict(), clock=clock)
    assert restored.state == TimerState.PAUSED
    assert restored.remaining == timer.remaining
    assert restored.session.id == timer.session.id


def test_timer_service_records_completed_sessions():
    clock = FakeClock()
    storage = MemoryStorage()
    store = DataStore(storage, 'user-1')
    store.load()
    service = TimerService(storage, store, clock=clock,
                           default_settings=TimerSettings(focus_minutes=1))

    result = service.apply('start', {'mode': 'focus'})
    assert result['timer']['state'] == 'running'
    assert result['events'][0]['kind'] == 'started'

    clock.advance(61)
    status = service.status()
    assert [e['kind'] for e in status['events']] == ['expired', 'started']
    assert status['timer']['mode'] == 'short-break'

    assert len(store.state.timer_sessions) == 1
    recorded = store.state.timer_sessions[0]
    assert recorded.type == SessionType.FOCUS
    assert recorded.status == SessionStatus.COMPLETED
    assert storage.get_json(timer_state_key('user-1'))['state'] == 'running'

    # a second status call does not record the session again
    service.status()
    assert len(store.state.timer_sessions) == 1


def test_timer_service_rejects_unknown_command(store, storage):
    with pytest.raises(ValueError):
        TimerService(storage, store).apply('snooze')
