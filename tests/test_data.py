"""
Tests for the pandas aggregations in GoalTracker.data.data.

Run:
    python -m unittest tests.test_data
"""
import datetime
import unittest

import pandas as pd

from GoalTracker.core import models
from GoalTracker.data import data
from tests.base import BaseTestCase

UTC = datetime.timezone.utc
TODAY = datetime.date(2025, 1, 15)  # Wednesday


def at(year, month, day) -> datetime.datetime:
    return datetime.datetime(year, month, day, 12, tzinfo=UTC)


class CommitTrendsTest(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.goal = self.db.create_goal(models.Goal(title='Code', goal_type='programming', target_value=100))
        a = self.db.add_repository(models.GitHubRepository(goal_id=self.goal.id, owner='octo', name='a'))
        b = self.db.add_repository(models.GitHubRepository(goal_id=self.goal.id, owner='octo', name='b'))
        sunday_1 = datetime.datetime(2024, 12, 29, tzinfo=UTC)
        sunday_3 = datetime.datetime(2025, 1, 12, tzinfo=UTC)
        self.db.replace_commit_activity(a.id, [
            models.CommitActivity(repository_id=a.id, week_start=sunday_1, commit_count=3, additions=120, deletions=40),
            models.CommitActivity(repository_id=a.id, week_start=sunday_3, commit_count=7, additions=30, deletions=5),
        ])
        self.db.replace_commit_activity(b.id, [
            models.CommitActivity(repository_id=b.id, week_start=sunday_1, commit_count=2, additions=10),
        ])

    def test_weeks_are_merged_across_repositories(self):
        df = data.get_commit_trends(self.db, self.goal.id)
        self.assertEqual(list(df.columns), data.COMMIT_TREND_COLUMNS)
        self.assertEqual(df['commits'].tolist(), [5, 7])
        self.assertEqual(df['additions'].tolist(), [130, 30])
        self.assertEqual(df['deletions'].tolist(), [40, 5])
        self.assertEqual(df['rolling'].tolist(), [5.0, 6.0])
        self.assertTrue(df['week'].is_monotonic_increasing)
        self.assertEqual(df['week'].iloc[0].dayofweek, 0)

    def test_goal_without_activity(self):
        goal = self.db.create_goal(models.Goal(title='Empty', goal_type='programming'))
        df = data.get_commit_trends(self.db, goal.id)
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), data.COMMIT_TREND_COLUMNS)

    def test_goal_summary(self):
        self.db.update_progress(self.goal.id)
        summary = data.goal_summary(self.db, self.db.get_goal(self.goal.id))
        self.assertEqual(summary['commits'], 12)
        self.assertEqual(summary['progress_percentage'], 12)


class TrainingSummaryTest(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.goal = self.db.create_goal(models.Goal(title='Train', goal_type='fitness', target_value=100))
        sessions = (
            models.TrainingSession(goal_id=self.goal.id, workout_type='run', date=at(2025, 1, 14),
                                   duration_minutes=60, distance=10, distance_unit='km'),
            models.TrainingSession(goal_id=self.goal.id, workout_type='run', date=at(2025, 1, 13),
                                   duration_minutes=30, distance=5, distance_unit='km'),
            models.TrainingSession(goal_id=self.goal.id, workout_type='strength', date=at(2025, 1, 8),
                                   duration_minutes=40),
            models.TrainingSession(goal_id=self.goal.id, workout_type='bike', date=at(2025, 1, 2),
                                   duration_minutes=45, distance=20, distance_unit='km'),
            models.TrainingSession(goal_id=self.goal.id, workout_type='swim', date=at(2024, 6, 1),
                                   duration_minutes=30, distance=1500, distance_unit='m'),
        )
        for session in sessions:
            self.db.add_training_session(session)

    def test_weekly_rows(self):
        df = data.get_training_summary(self.db, self.goal.id, weeks=4, today=TODAY)
        self.assertEqual(list(df.columns), data.TRAINING_SUMMARY_COLUMNS)
        self.assertEqual(len(df), 4)
        self.assertEqual(df['week'].iloc[-1], pd.Timestamp(2025, 1, 13))
        self.assertEqual(df['week'].iloc[0], pd.Timestamp(2024, 12, 23))
        self.assertEqual(df['sessions'].tolist(), [0, 1, 1, 2])
        self.assertEqual(df['minutes'].tolist(), [0, 45, 40, 90])
        self.assertEqual(df['distance_km'].tolist(), [0.0, 20.0, 0.0, 15.0])

    def test_empty_goal_has_zero_rows(self):
        goal = self.db.create_goal(models.Goal(title='Rest', goal_type='fitness'))
        df = data.get_training_summary(self.db, goal.id, weeks=3, today=TODAY)
        self.assertEqual(len(df), 3)
        self.assertEqual(df['sessions'].sum(), 0)

    def test_invalid_week_count(self):
        with self.assertRaises(ValueError):
            data.get_training_summary(self.db, self.goal.id, weeks=0)

    def test_weekly_mileage(self):
        self.assertEqual(data.weekly_mileage(self.db, self.goal.id, today=TODAY), 15.0)
        self.assertEqual(data.weekly_mileage(self.db, self.goal.id, today=datetime.date(2025, 1, 9)), 0.0)

    def test_recent_pace(self):
        self.assertEqual(data.recent_pace(self.db, self.goal.id, count=2), 360)
        # strength sessions have no pace, the bike ride is 135 s/km
        self.assertEqual(data.recent_pace(self.db, self.goal.id, count=3), 285)

    def test_recent_pace_without_sessions(self):
        goal = self.db.create_goal(models.Goal(title='Rest', goal_type='fitness'))
        self.assertIsNone(data.recent_pace(self.db, goal.id))

    def test_goal_summary(self):
        summary = data.goal_summary(self.db, self.goal)
        self.assertEqual(summary['sessions'], 5)
        self.assertIn('weekly_mileage', summary)


class ReadingSummaryTest(BaseTestCase):

    def test_goal_summary(self):
        goal = self.db.create_goal(models.Goal(title='Read', goal_type='book_reading', target_value=4))
        self.db.add_book(models.Book(goal_id=goal.id, title='Dune', page_count=300, current_page=300, is_completed=True))
        self.db.add_book(models.Book(goal_id=goal.id, title='Emma', page_count=400, current_page=20))
        self.db.add_book(models.Book(goal_id=goal.id, title='Ulysses', page_count=700))
        self.db.update_progress(goal.id)

        summary = data.goal_summary(self.db, self.db.get_goal(goal.id))
        self.assertEqual(summary['books'], 3)
        self.assertEqual(summary['completed'], 1)
        self.assertEqual(summary['reading'], 1)
        self.assertEqual(summary['progress_percentage'], 25)


if __name__ == '__main__':
    unittest.main()
