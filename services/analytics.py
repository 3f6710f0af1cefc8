# services/analytics.py
"""
Dashboard analytics for a user's FocusOS data
Task completion, focus time, mood trends, learning progress and friends
"""

import math
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, asdict, field

import pandas as pd

from core.data_store import AppState
from core.focus_timer import TimerSettings
from core.models import (
    Mood, MOOD_SCORES, Task, TimerSession, MoodEntry, to_iso, utc_now
)

logger = logging.getLogger(__name__)

# Dashboard mood gauge uses a 10 point scale
DASHBOARD_MOOD_SCORES = {
    Mood.ANGRY: 1,
    Mood.SAD: 2,
    Mood.NEUTRAL: 5,
    Mood.HAPPY: 8,
    Mood.EXCITED: 10,
}

MAX_STREAK_DAYS = 30
TREND_DAYS = 7


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class DashboardSnapshot:
    """Everything the dashboard page shows"""
    generated_at: str
    tasks: Dict[str, Any]
    focus: Dict[str, Any]
    mood: Dict[str, Any]
    learning: Dict[str, Any]
    friends: Dict[str, Any]
    weekly_mood_trend: List[Dict[str, Any]] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DashboardAnalytics:
    """
    Statistics over one user's state

    Args:
        state: the user's loaded collections
        settings: timer settings, for the focus session length
        clock: returns the current aware datetime
    """

    def __init__(self, state: AppState, settings: Optional[TimerSettings] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.state = state
        self.settings = settings or TimerSettings()
        self.clock = clock

    @staticmethod
    def _frame(records, record_type) -> pd.DataFrame:
        return pd.DataFrame([record.to_dict() for record in records],
                            columns=record_type.field_names())

    def _today(self) -> str:
        return self.clock().date().isoformat()

    # Tasks

    def task_stats(self) -> Dict[str, Any]:
        df = self._frame(self.state.tasks, Task)
        total = len(df)
        completed = int((df['status'] == 'completed').sum())
        categories = df[df['category'] != ''].groupby('category').size()
        return {
            'total': total,
            'completed': completed,
            'in_progress': int((df['status'] == 'in-progress').sum()),
            'todo': int((df['status'] == 'todo').sum()),
            'completion_rate': round_half_up(completed / total * 100) if total else 0,
            'by_category': {str(name): int(count) for name, count in categories.items()},
        }

    # Focus sessions

    def focus_stats(self) -> Dict[str, Any]:
        """Today's completed sessions plus all-time focus hours"""
        stats = {
            'total_minutes': 0,
            'sessions_count': 0,
            'focus_rate': 0,
            'focus_sessions': 0,
            'total_focus_hours': 0.0,
        }
        df = self._frame(self.state.timer_sessions, TimerSession)
        if df.empty:
            return stats

        completed = df[df['status'] == 'completed']
        today = completed[completed['start_time'].str[:10] == self._today()]

        count = len(today)
        minutes = round_half_up(today['duration'].sum() / 60)
        focus_today = int((today['type'] == 'focus').sum())
        all_focus_seconds = completed.loc[completed['type'] == 'focus', 'duration'].sum()

        stats.update({
            'total_minutes': minutes,
            'sessions_count': count,
            'focus_rate': round_half_up(focus_today / count * 100) if count else 0,
            'focus_sessions': minutes // self.settings.focus_minutes,
            'total_focus_hours': round(float(all_focus_seconds) / 3600, 1),
        })
        return stats

    # Mood

    def _mood_frame(self) -> pd.DataFrame:
        df = self._frame(self.state.mood_entries, MoodEntry)
        if not df.empty:
            df['score'] = df['mood'].map({mood.value: score for mood, score in MOOD_SCORES.items()})
            df['day'] = df['timestamp'].str[:10]
        return df

    def mood_stats(self) -> Dict[str, Any]:
        df = self._mood_frame()
        if df.empty:
            return {
                'average_mood': 0,
                'most_common_mood': Mood.NEUTRAL.value,
                'mood_streak': 0,
                'total_entries': 0,
                'dashboard_score': 0.0,
            }

        counts = df['mood'].value_counts()
        most_common = Mood.ANGRY
        for mood in Mood:
            # later moods win ties
            if counts.get(mood.value, 0) >= counts.get(most_common.value, 0):
                most_common = mood

        dashboard_scores = df['mood'].map(
            {mood.value: score for mood, score in DASHBOARD_MOOD_SCORES.items()}
        )
        return {
            'average_mood': round_half_up(df['score'].mean()),
            'most_common_mood': most_common.value,
            'mood_streak': self._mood_streak(set(df['day'])),
            'total_entries': len(df),
            'dashboard_score': round(float(dashboard_scores.mean()), 1),
        }

    def _mood_streak(self, days) -> int:
        """Consecutive days with an entry, counting back from today"""
        streak = 0
        current = self.clock().date()
        while streak < MAX_STREAK_DAYS and current.isoformat() in days:
            streak += 1
            current -= timedelta(days=1)
        return streak

    def weekly_mood_trend(self) -> List[Dict[str, Any]]:
        df = self._mood_frame()
        by_day = df.groupby('day')['score'].agg(['mean', 'count']) if not df.empty else None
        today = self.clock().date()
        trend = []
        for offset in range(TREND_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            key = day.isoformat()
            if by_day is not None and key in by_day.index:
                average = round(float(by_day.loc[key, 'mean']), 2)
                count = int(by_day.loc[key, 'count'])
            else:
                average, count = 0.0, 0
            trend.append({
                'date': key,
                'weekday': day.strftime('%a'),
                'average': average,
                'count': count,
            })
        return trend

    def mood_insights(self, stats: Optional[Dict[str, Any]] = None) -> List[str]:
        if not self.state.mood_entries:
            return []
        stats = stats or self.mood_stats()
        insights = []

        factor_counts = Counter(
            factor for entry in self.state.mood_entries for factor in entry.factors
        )
        if factor_counts:
            top_factor = factor_counts.most_common(1)[0][0]
            insights.append(f'"{top_factor}" is your most tracked mood factor')

        if stats['average_mood'] >= 4:
            insights.append("You've been in a positive mood lately!")
        elif stats['average_mood'] <= 2:
            insights.append("Consider what might be affecting your mood negatively")

        if stats['mood_streak'] >= 7:
            insights.append(
                f"Great job! You've tracked your mood for {stats['mood_streak']} consecutive days"
            )
        return insights

    # Learning and friends

    def learning_stats(self) -> Dict[str, Any]:
        courses = self.state.learning_courses
        enrolled = [course for course in courses if course.enrolled]
        overall = round_half_up(sum(c.progress for c in enrolled) / len(enrolled)) if enrolled else 0
        return {
            'enrolled': len(enrolled),
            'overall_progress': overall,
            'completed': sum(1 for c in courses if c.progress >= 100),
            'active': sum(1 for c in enrolled if c.progress < 100),
            'hours_learned': round(sum(c.duration * c.progress / 100 for c in enrolled), 1),
        }

    def friend_stats(self) -> Dict[str, Any]:
        statuses = Counter(friend.status.value for friend in self.state.friends)
        return {
            'total': len(self.state.friends),
            'accepted': statuses['accepted'],
            'pending': statuses['pending'],
            'online': statuses['online'],
        }

    def snapshot(self) -> DashboardSnapshot:
        mood = self.mood_stats()
        snapshot = DashboardSnapshot(
            generated_at=to_iso(self.clock()),
            tasks=self.task_stats(),
            focus=self.focus_stats(),
            mood=mood,
            learning=self.learning_stats(),
            friends=self.friend_stats(),
            weekly_mood_trend=self.weekly_mood_trend(),
            insights=self.mood_insights(mood),
        )
        logger.debug(f"Dashboard snapshot generated: {snapshot.tasks['total']} tasks, "
                     f"{mood['total_entries']} mood entries")
        return snapshot
