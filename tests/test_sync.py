"""
Tests for GoalTracker.github.sync with a faked GitHub REST API.

Run:
    python -m unittest tests.test_sync
"""
import datetime
import unittest
from unittest import mock

import requests

from GoalTracker.core import models
from GoalTracker.github import sync
from GoalTracker.status import status
from GoalTracker.ui.actions import signals
from tests.base import BaseTestCase, FakeGitHub

UTC = datetime.timezone.utc

WEEK_1 = 1735430400  # Sunday 2024-12-29
WEEK_2 = 1736035200  # Sunday 2025-01-05
WEEK_3 = 1736640000  # Sunday 2025-01-12

REPO_DATA = {
    'id': 1296269,
    'name': 'hello',
    'description': 'My first repository',
    'html_url': 'https://github.com/octo/hello',
    'language': 'Python',
    'stargazers_count': 80,
    'forks_count': 9,
    'open_issues_count': 0,
    'private': False,
    'default_branch': 'master',
}

COMMIT_ACTIVITY = [
    {'week': WEEK_1, 'total': 3, 'days': [0, 1, 2, 0, 0, 0, 0]},
    {'week': WEEK_2, 'total': 0, 'days': [0, 0, 0, 0, 0, 0, 0]},
    {'week': WEEK_3, 'total': 7, 'days': [1, 1, 1, 1, 1, 1, 1]},
]

CODE_FREQUENCY = [
    [WEEK_1, 120, -40],
    [WEEK_2, 0, 0],
    [WEEK_3, 30, -5],
]


def github_routes(**overrides):
    routes = {
        '/repos/octo/hello': (200, REPO_DATA),
        '/repos/octo/hello/stats/commit_activity': (200, COMMIT_ACTIVITY),
        '/repos/octo/hello/stats/code_frequency': (200, CODE_FREQUENCY),
    }
    routes.update(overrides)
    return routes


class SyncTestCase(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.goal = self.db.create_goal(models.Goal(title='Ship it', goal_type='programming', target_value=100))
        self.repository = self.db.add_repository(models.GitHubRepository(goal_id=self.goal.id, owner='octo', name='hello'))

    def patch_github(self, routes):
        fake = FakeGitHub(routes)
        patcher = mock.patch.object(requests.Session, 'request', side_effect=fake)
        patcher.start()
        self.addCleanup(patcher.stop)
        return fake


class BuildCommitWeeksTest(BaseTestCase):

    def test_keeps_weeks_with_commits(self):
        weeks = sync.build_commit_weeks('r', COMMIT_ACTIVITY, {WEEK_1: (120, 40)})
        self.assertEqual([w.commit_count for w in weeks], [3, 7])
        self.assertEqual(weeks[0].week_start, datetime.datetime(2024, 12, 29, tzinfo=UTC))
        self.assertEqual((weeks[0].additions, weeks[0].deletions), (120, 40))
        self.assertEqual((weeks[1].additions, weeks[1].deletions), (0, 0))
        self.assertTrue(all(w.repository_id == 'r' for w in weeks))

    def test_empty_activity(self):
        self.assertEqual(sync.build_commit_weeks('r', []), [])


class FetchTest(SyncTestCase):

    def test_api_session_headers(self):
        with sync.create_api_session('tok') as session:
            self.assertEqual(session.headers['Authorization'], 'Bearer tok')
            self.assertEqual(session.headers['Accept'], 'application/vnd.github+json')

    def test_code_frequency_deletions_are_positive(self):
        self.patch_github(github_routes())
        with sync.create_api_session('tok') as session:
            frequency = sync.fetch_code_frequency(session, 'octo', 'hello')
        self.assertEqual(frequency[WEEK_1], (120, 40))

    def test_statistics_in_progress(self):
        self.patch_github(github_routes(**{'/repos/octo/hello/stats/commit_activity': (202, {})}))
        with sync.create_api_session('tok') as session:
            self.assertEqual(sync.fetch_commit_activity(session, 'octo', 'hello'), [])

    def test_list_user_repositories(self):
        fake = self.patch_github({'/user/repos': (200, [REPO_DATA])})
        with sync.create_api_session('tok') as session:
            repositories = sync.list_user_repositories(session)
        self.assertEqual(repositories[0]['name'], 'hello')
        self.assertEqual(fake.calls[0][2]['params']['sort'], 'updated')

    def test_missing_repository(self):
        self.patch_github({})
        with sync.create_api_session('tok') as session:
            with self.assertRaises(status.SyncException):
                sync.fetch_repository(session, 'octo', 'nope')

    def test_network_error(self):
        self.patch_github({'/repos/octo/hello': requests.ConnectionError('offline')})
        with sync.create_api_session('tok') as session:
            with self.assertRaises(status.SyncException):
                sync.fetch_repository(session, 'octo', 'hello')


class SyncRepositoryTest(SyncTestCase):

    def test_sync_updates_repository_and_progress(self):
        fake = self.patch_github(github_routes())

        repository = sync.sync_repository(self.db, self.repository.id, 'tok')

        self.assertEqual(repository.star_count, 80)
        self.assertIsNotNone(repository.last_synced_at)
        stored = self.db.get_repository(self.repository.id)
        self.assertEqual(stored.repo_id, 1296269)
        self.assertEqual(stored.language, 'Python')
        self.assertEqual(stored.default_branch, 'master')
        self.assertEqual([w.commit_count for w in self.db.list_commit_activity(self.repository.id)], [3, 7])
        self.assertEqual(self.db.get_goal(self.goal.id).current_value, 10)
        self.assertTrue(all(url.startswith('https://api.github.com/repos/octo/hello') for url in fake.urls()))

        history = self.db.list_star_history(self.repository.id)
        self.assertEqual([(h.star_count, h.fork_count) for h in history], [(80, 9)])
        self.assertEqual(history[0].date, stored.last_synced_at)

    def test_resync_replaces_activity(self):
        self.patch_github(github_routes())
        sync.sync_repository(self.db, self.repository.id, 'tok')
        sync.sync_repository(self.db, self.repository.id, 'tok')
        self.assertEqual(len(self.db.list_commit_activity(self.repository.id)), 2)
        self.assertEqual(len(self.db.list_star_history(self.repository.id)), 2)
        self.assertEqual(self.db.get_goal(self.goal.id).current_value, 10)

    def test_server_error_raises(self):
        self.patch_github(github_routes(**{'/repos/octo/hello': (500, {'message': 'boom'})}))
        with self.assertRaises(status.SyncException):
            sync.sync_repository(self.db, self.repository.id, 'tok')
        self.assertIsNone(self.db.get_repository(self.repository.id).last_synced_at)

    def test_unknown_repository(self):
        with self.assertRaises(status.RecordNotFoundException):
            sync.sync_repository(self.db, 'missing', 'tok')

    def test_custom_api_url(self):
        fake = self.patch_github(github_routes())
        sync.sync_repository(self.db, self.repository.id, 'tok', api_url='https://ghe.example.com/api/v3')
        self.assertTrue(all(url.startswith('https://ghe.example.com/api/v3') for url in fake.urls()))


class SyncServiceTest(SyncTestCase):

    def setUp(self):
        super().setUp()
        patcher = mock.patch.object(sync.SyncWorker, 'start', sync.SyncWorker.run)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.token = 'tok'
        self.service = sync.SyncService(self.db, lambda: self.token)
        self.addCleanup(signals.repositorySyncRequested.disconnect, self.service.on_sync_requested)

    def test_sync_applies_result(self):
        self.patch_github(github_routes())
        synced = []
        changed = []

        def on_synced(repository_id):
            synced.append(repository_id)

        def on_changed(goal_id):
            changed.append(goal_id)

        signals.repositorySynced.connect(on_synced)
        signals.goalChanged.connect(on_changed)
        try:
            self.assertTrue(self.service.sync(self.repository.id))
        finally:
            signals.repositorySynced.disconnect(on_synced)
            signals.goalChanged.disconnect(on_changed)

        self.assertEqual(synced, [self.repository.id])
        self.assertEqual(changed, [self.goal.id])
        self.assertEqual(self.db.get_goal(self.goal.id).current_value, 10)
        self.assertEqual(self.service._workers, {})

    def test_sync_requires_token(self):
        self.token = None
        with self.assertRaises(status.SyncException):
            self.service.sync(self.repository.id)

    def test_failed_fetch_leaves_repository_untouched(self):
        self.patch_github({})
        self.service.sync(self.repository.id)
        self.assertIsNone(self.db.get_repository(self.repository.id).last_synced_at)
        self.assertEqual(self.service._workers, {})

    def test_sync_request_handler_swallows_expected_failures(self):
        self.token = None
        self.service.on_sync_requested(self.repository.id)
        self.token = 'tok'
        self.service.on_sync_requested('missing')
        self.assertEqual(self.service._workers, {})

    def test_sync_stale_skips_fresh_repositories(self):
        self.patch_github(github_routes())
        fresh = models.GitHubRepository(goal_id=self.goal.id, owner='octo', name='fresh', last_synced_at=models.now_utc())
        self.db.add_repository(fresh)

        self.assertEqual(self.service.sync_stale(self.goal.id), 1)
        self.assertIsNotNone(self.db.get_repository(self.repository.id).last_synced_at)

    def test_deleted_repository_result_is_ignored(self):
        self.patch_github(github_routes())
        repository = self.db.get_repository(self.repository.id)
        data = dict(REPO_DATA)
        self.db.delete_repository(repository.id)
        self.service.on_result((repository, data, []))
        self.assertEqual(self.db.count('github_repositories'), 0)


class SyncWorkerSlotTest(SyncTestCase):
    """Workers are created but never started, so their signals are emitted by hand."""

    def setUp(self):
        super().setUp()
        patcher = mock.patch.object(sync.SyncWorker, 'start')
        patcher.start()
        self.addCleanup(patcher.stop)

        self.service = sync.SyncService(self.db, lambda: 'tok')
        self.addCleanup(signals.repositorySyncRequested.disconnect, self.service.on_sync_requested)

    def test_error_releases_worker(self):
        self.assertTrue(self.service.sync(self.repository.id))
        worker = self.service._workers[self.repository.id]
        worker.errorOccurred.emit(worker, 'rate limited')
        self.assertEqual(self.service._workers, {})
        self.assertTrue(self.service.sync(self.repository.id))

    def test_stale_worker_does_not_release_newer_sync(self):
        self.service.sync(self.repository.id)
        stale = self.service._workers.pop(self.repository.id)
        self.service.sync(self.repository.id)
        current = self.service._workers[self.repository.id]

        stale.errorOccurred.emit(stale, 'late failure')
        self.assertIs(self.service._workers[self.repository.id], current)

    def test_finished_worker_is_released(self):
        self.service.sync(self.repository.id)
        worker = self.service._workers[self.repository.id]
        with mock.patch.object(self.service, 'sender', return_value=worker):
            self.service.on_worker_finished()
        self.assertEqual(self.service._workers, {})


if __name__ == '__main__':
    unittest.main()
