from datetime import datetime, timedelta, timezone

import pytest

from core.data_store import AppState
from core.focus_timer import TimerSettings
from core.models import Friend, LearningCourse, MoodEntry, Task, TimerSession, to_iso
from services.analytics import DashboardAnalytics, round_half_up

NOW = datetime(2024, 3, 14, 15, 0, tzinfo=timezone.utc)


def clock():
    return NOW


def mood(value, days_ago=0, factors=None):
    return MoodEntry.from_dict({
        'mood': value,
        'factors': factors or [],
        'timestamp': to_iso(NOW - timedelta(days=days_ago)),
    })


def session(kind, minutes, days_ago=0, status='completed'):
    return TimerSession.from_dict({
        'type': kind,
        'duration': minutes * 60,
        'start_time': to_iso(NOW - timedelta(days=days_ago, hours=1)),
        'status': status,
    })


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.49) == 3


def test_empty_state():
    analytics = DashboardAnalytics(AppState(), clock=clock)
    assert analytics.task_stats()['completion_rate'] == 0
    assert analytics.focus_stats()['sessions_count'] == 0
    stats = analytics.mood_stats()
    assert stats['average_mood'] == 0
    assert stats['most_common_mood'] == 'neutral'
    assert analytics.mood_insights() == []
    assert len(analytics.weekly_mood_trend()) == 7


def test_task_stats():
    tasks = tuple(Task.from_dict(data) for data in (
        {'title': 'a', 'status': 'completed', 'category': 'Work'},
        {'title': 'b', 'status': 'in-progress', 'category': 'Work'},
        {'title': 'c', 'status': 'todo'},
    ))
    stats = DashboardAnalytics(AppState(tasks=tasks), clock=clock).task_stats()
    assert stats['total'] == 3
    assert stats['completion_rate'] == 33
    assert stats['by_category'] == {'Work': 2}


def test_focus_stats_counts_only_todays_completed_sessions():
    sessions = (
        session('focus', 25),
        session('focus', 25),
        session('short-break', 5),
        session('focus', 25, status='in-progress'),
        session('focus', 50, days_ago=1),
    )
    stats = DashboardAnalytics(AppState(timer_sessions=sessions),
                               TimerSettings(focus_minutes=25), clock=clock).focus_stats()
    assert stats['sessions_count'] == 3
    assert stats['total_minutes'] == 55
    assert stats['focus_rate'] == 67
    assert stats['focus_sessions'] == 2
    assert stats['total_focus_hours'] == 1.7


def test_mood_stats_average_streak_and_dashboard_score():
    entries = (mood('happy'), mood('excited', 1), mood('sad', 2), mood('happy', 4))
    stats = DashboardAnalytics(AppState(mood_entries=entries), clock=clock).mood_stats()
    # (4 + 5 + 2 + 4) / 4 = 3.75
    assert stats['average_mood'] == 4
    assert stats['most_common_mood'] == 'happy'
    assert stats['mood_streak'] == 3
    assert stats['total_entries'] == 4
    assert stats['dashboard_score'] == pytest.approx(7.0)


def test_most_common_mood_tie_goes_to_later_mood():
    entries = (mood('sad'), mood('excited'))
    stats = DashboardAnalytics(AppState(mood_entries=entries), clock=clock).mood_stats()
    assert stats['most_common_mood'] == 'excited'


def test_mood_streak_is_capped():
    entries = tuple(mood('neutral', day) for day in range(40))
    stats = DashboardAnalytics(AppState(mood_entries=entries), clock=clock).mood_stats()
    assert stats['mood_streak'] == 30


def test_weekly_trend_and_insights():
    entries = tuple(mood('excited', day, ['Exercise']) for day in range(7))
    analytics = DashboardAnalytics(AppState(mood_entries=entries), clock=clock)
    trend = analytics.weekly_mood_trend()
    assert trend[-1]['date'] == '2024-03-14'
    assert trend[-1]['weekday'] == 'Thu'
    assert all(day['count'] == 1 and day['average'] == 5 for day in trend)

    insights = analytics.mood_insights()
    assert '"Exercise" is your most tracked mood factor' in insights
    assert "You've been in a positive mood lately!" in insights
    assert any('7 consecutive days' in line for line in insights)


def test_negative_mood_insight():
    entries = (mood('angry'), mood('sad'))
    insights = DashboardAnalytics(AppState(mood_entries=entries), clock=clock).mood_insights()
    assert insights == ["Consider what might be affecting your mood negatively"]


def test_snapshot_includes_learning_and_friends():
    courses = (
        LearningCourse.from_dict({'title': 'A', 'duration': 2, 'progress': 50, 'enrolled': True}),
        LearningCourse.from_dict({'title': 'B', 'duration': 4, 'progress': 100, 'enrolled': True}),
        LearningCourse.from_dict({'title': 'C', 'enrolled': False}),
    )
    friends = (
        Friend.from_dict({'name': 'Zoe', 'email': 'zoe@example.com', 'status': 'accepted'}),
        Friend.from_dict({'name': 'Tom', 'email': 'tom@example.com'}),
    )
    snapshot = DashboardAnalytics(
        AppState(learning_courses=courses, friends=friends), clock=clock
    ).snapshot().to_dict()
    assert snapshot['learning'] == {
        'enrolled': 2, 'overall_progress': 75, 'completed': 1, 'active': 1, 'hours_learned': 5.0
    }
    assert snapshot['friends']['accepted'] == 1
    assert snapshot['friends']['pending'] == 1
    assert snapshot['generated_at'] == '2024-03-14T15:00:00+00:00'


def test_offset_timestamps_count_on_their_utc_day():
    late_evening = '2026-10-19T23:30:00-05:00'
    entry = MoodEntry.from_dict({'mood': 'happy', 'timestamp': late_evening})
    assert entry.timestamp == '2026-10-20T04:30:00+00:00'
    focus = TimerSession.from_dict({
        'type': 'focus',
        'duration': 25 * 60,
        'start_time': '2026-10-19T23:00:00-05:00',
        'end_time': '2026-10-19T23:25:00-05:00',
        'status': 'completed',
    })
    assert focus.start_time == '2026-10-20T04:00:00+00:00'

    analytics = DashboardAnalytics(
        AppState(mood_entries=(entry,), timer_sessions=(focus,)),
        clock=lambda: datetime(2026, 10, 20, 6, 0, tzinfo=timezone.utc)
    )
    assert analytics.mood_stats()['mood_streak'] == 1
    assert analytics.focus_stats()['sessions_count'] == 1
