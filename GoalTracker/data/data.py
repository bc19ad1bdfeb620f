"""Goal analytics API.

This module loads goal children from the database into pandas DataFrames and
aggregates them into the weekly summaries used by the goal detail views.
"""
import datetime
import logging
from typing import List, Optional

import pandas as pd

from ..core import models
from ..core.database import Database
from ..settings import locale

COMMIT_TREND_COLUMNS: List[str] = ['week', 'commits', 'additions', 'deletions', 'rolling']
TRAINING_SUMMARY_COLUMNS: List[str] = ['week', 'sessions', 'minutes', 'distance_km']

ROLLING_WEEKS = 4
RECENT_PACE_SESSIONS = 5


def _week_start(series: pd.Series) -> pd.Series:
    """Monday midnight of each timestamp's week, as naive UTC timestamps."""
    return pd.to_datetime(series, utc=True).dt.tz_localize(None).dt.to_period('W-SUN').dt.start_time


def get_commit_trends(db: Database, goal_id: str) -> pd.DataFrame:
    """Weekly commit totals across all repositories of a programming goal.

    Returns:
        pd.DataFrame: One row per week with activity, oldest first, with columns
        ['week', 'commits', 'additions', 'deletions', 'rolling']. 'rolling' is the mean
        commit count over the last four rows.
    """
    rows = [
        activity.to_row()
        for repository in db.list_repositories(goal_id)
        for activity in db.list_commit_activity(repository.id)
    ]
    if not rows:
        return pd.DataFrame(columns=COMMIT_TREND_COLUMNS)

    df = pd.DataFrame(rows)
    df['week'] = _week_start(df['week_start'])
    df = (
        df.groupby('week', as_index=False)[['commit_count', 'additions', 'deletions']]
        .sum()
        .rename(columns={'commit_count': 'commits'})
        .sort_values('week', ignore_index=True)
    )
    df['rolling'] = df['commits'].rolling(ROLLING_WEEKS, min_periods=1).mean()
    return df[COMMIT_TREND_COLUMNS]


def _training_frame(db: Database, goal_id: str) -> pd.DataFrame:
    sessions = db.list_training_sessions(goal_id)
    if not sessions:
        return pd.DataFrame(columns=['date', 'duration_minutes', 'distance_km', 'pace'])
    return pd.DataFrame({
        'date': [s.date for s in sessions],
        'duration_minutes': [s.duration_minutes for s in sessions],
        'distance_km': [s.distance_km or 0.0 for s in sessions],
        'pace': [s.effective_pace for s in sessions],
    })


def get_training_summary(
        db: Database,
        goal_id: str,
        weeks: int = 12,
        today: Optional[datetime.date] = None
) -> pd.DataFrame:
    """Weekly training volume of a fitness goal.

    Args:
        db (Database): The goal database.
        goal_id (str): A fitness goal.
        weeks (int): Number of weeks to include, ending with the current week.
        today (datetime.date, optional): Reference date. Defaults to today.

    Returns:
        pd.DataFrame: Exactly ``weeks`` rows, oldest first, with columns
        ['week', 'sessions', 'minutes', 'distance_km']. Weeks without sessions are zero.
    """
    if weeks < 1:
        raise ValueError(f'weeks must be at least 1, got {weeks}')

    current = pd.Timestamp(locale.start_of_week(today or datetime.date.today()))
    index = pd.date_range(end=current, periods=weeks, freq='7D', name='week')

    df = _training_frame(db, goal_id)
    if df.empty:
        summary = pd.DataFrame(0, index=index, columns=TRAINING_SUMMARY_COLUMNS[1:])
    else:
        df['week'] = _week_start(df['date'])
        summary = (
            df.groupby('week')
            .agg(
                sessions=('duration_minutes', 'size'),
                minutes=('duration_minutes', 'sum'),
                distance_km=('distance_km', 'sum'),
            )
            .reindex(index, fill_value=0)
        )
    summary = summary.reset_index()
    logging.debug(f'Training summary for {goal_id}: {int(summary["sessions"].sum())} sessions in {weeks} weeks')
    return summary[TRAINING_SUMMARY_COLUMNS]


def weekly_mileage(db: Database, goal_id: str, today: Optional[datetime.date] = None) -> float:
    """Kilometres covered in the current week."""
    summary = get_training_summary(db, goal_id, weeks=1, today=today)
    return float(summary['distance_km'].iloc[-1])


def recent_pace(db: Database, goal_id: str, count: int = RECENT_PACE_SESSIONS) -> Optional[int]:
    """Average pace in seconds per kilometre over the most recent sessions that have one."""
    df = _training_frame(db, goal_id)
    if df.empty:
        return None
    paces = df.dropna(subset=['pace']).sort_values('date', ascending=False).head(count)['pace'].astype(float)
    if paces.empty:
        return None
    return int(paces.mean())


def goal_summary(db: Database, goal: models.Goal) -> dict:
    """Headline numbers for a goal of any type."""
    summary = {
        'progress': goal.progress,
        'progress_percentage': goal.progress_percentage,
        'days_remaining': goal.days_remaining(),
    }
    if goal.goal_type == models.GoalType.BookReading:
        books = db.list_books(goal.id)
        summary['books'] = len(books)
        summary['completed'] = sum(1 for b in books if b.is_completed)
        summary['reading'] = sum(1 for b in books if b.is_currently_reading)
    elif goal.goal_type == models.GoalType.Fitness:
        summary['sessions'] = len(db.list_training_sessions(goal.id))
        summary['weekly_mileage'] = weekly_mileage(db, goal.id)
    else:
        activities = [
            a for r in db.list_repositories(goal.id) for a in db.list_commit_activity(r.id)
        ]
        summary['commits'] = models.total_commits(activities)
        summary['recent_commits'] = models.recent_commits(activities)
    return summary
