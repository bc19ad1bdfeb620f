"""
Tests for GoalTracker.github.auth.

The OAuth worker threads are run synchronously by patching ``QThread.start`` and all
HTTP traffic is answered by :class:`tests.base.FakeGitHub`.

Run:
    python -m unittest tests.test_auth
"""
import unittest
import urllib.parse
from unittest import mock

import keyring.errors
import requests

from GoalTracker.core.credentials import CredentialKey, MemoryKeyring, CredentialStore
from GoalTracker.github import auth
from GoalTracker.settings import lib
from GoalTracker.status import status
from GoalTracker.ui.actions import signals
from tests.base import BaseTestCase, FakeGitHub

USER = {
    'login': 'octocat',
    'name': 'The Octocat',
    'avatar_url': 'https://avatars.githubusercontent.com/u/583231',
    'id': 583231,
    'public_repos': 8,
    'followers': 100,
    'following': 9,
}

TOKEN = {'access_token': 'gho_abc123', 'token_type': 'bearer', 'scope': 'read:user,repo'}


class LockedKeyring(MemoryKeyring):
    """Memory backend refusing to store one key."""

    def __init__(self, locked_key):
        super().__init__()
        self.locked_key = CredentialKey(locked_key).value

    def set_password(self, service, username, password):
        if username == self.locked_key:
            raise keyring.errors.PasswordSetError('locked')
        super().set_password(service, username, password)


class FakeReceiver:
    """Redirect receiver answering with the state of the last authorization URL."""

    def __init__(self, browser, params=None):
        self.browser = browser
        self.params = params
        self.cancelled = False

    redirect_uri = 'http://127.0.0.1:8765/github/callback'

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return None

    def cancel(self):
        self.cancelled = True

    def wait(self):
        if self.params is not None:
            return self.params
        query = urllib.parse.parse_qs(urllib.parse.urlsplit(self.browser.urls[-1]).query)
        return {'code': 'the-code', 'state': query['state'][0]}


class FakeBrowser:

    def __init__(self):
        self.urls = []

    def __call__(self, url):
        self.urls.append(url)
        return True


class AuthTestCase(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.config = lib.settings.get_section('github')
        self.browser = FakeBrowser()
        self.redirect_params = None

        self.github = FakeGitHub({
            '/login/oauth/access_token': (200, TOKEN),
            '/user': (200, USER),
        })
        patcher = mock.patch.object(requests.Session, 'request', side_effect=self.github)
        patcher.start()
        self.addCleanup(patcher.stop)

        # Run worker threads in the calling thread
        patcher = mock.patch.object(auth.AuthFlowWorker, 'start', auth.AuthFlowWorker.run)
        patcher.start()
        self.addCleanup(patcher.stop)
        patcher = mock.patch.object(auth.ProfileWorker, 'start', auth.ProfileWorker.run)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.states = []
        self.errors = []

    def make_service(self, restore=False) -> auth.GitHubAuthService:
        service = auth.GitHubAuthService(
            self.store,
            config=self.config,
            receiver_factory=lambda config: FakeReceiver(self.browser, self.redirect_params),
            open_browser=self.browser,
            restore=restore,
        )
        service.stateChanged.connect(self.states.append)
        service.errorOccurred.connect(self.errors.append)
        self.addCleanup(self.disconnect, service)
        return service

    @staticmethod
    def disconnect(service):
        signals.githubSignInRequested.disconnect(service.on_sign_in_requested)
        signals.githubSignInCancelled.disconnect(service.cancel)
        signals.githubSignOutRequested.disconnect(service.sign_out)


class AuthenticateTest(AuthTestCase):

    def test_successful_sign_in(self):
        service = self.make_service()
        users = []
        service.userChanged.connect(users.append)

        self.assertTrue(service.authenticate('client-id', 'client-secret'))

        self.assertEqual(service.state, auth.AuthState.SignedIn)
        self.assertEqual(self.states, ['authenticating', 'signed_in'])
        self.assertEqual(self.store.get(CredentialKey.GitHubAccessToken), 'gho_abc123')
        self.assertEqual(service.access_token(), 'gho_abc123')
        self.assertEqual(service.user.login, 'octocat')
        self.assertEqual(service.user.public_repos, 8)
        self.assertEqual(users[-1].name, 'The Octocat')

    def test_authorization_url(self):
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')

        url = urllib.parse.urlsplit(self.browser.urls[0])
        query = urllib.parse.parse_qs(url.query)
        self.assertEqual(f'{url.scheme}://{url.netloc}{url.path}', self.config['authorize_url'])
        self.assertEqual(query['client_id'], ['client-id'])
        self.assertEqual(query['redirect_uri'], [FakeReceiver.redirect_uri])
        self.assertEqual(query['scope'], ['read:user repo'])
        self.assertTrue(query['state'][0])

    def test_token_request(self):
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')

        method, url, kwargs = self.github.calls[0]
        self.assertEqual(method, 'POST')
        self.assertEqual(url, self.config['token_url'])
        self.assertEqual(kwargs['headers']['Accept'], 'application/json')
        body = kwargs['data']
        self.assertEqual(body['client_id'], 'client-id')
        self.assertEqual(body['client_secret'], 'client-secret')
        self.assertEqual(body['code'], 'the-code')
        self.assertEqual(body['redirect_uri'], FakeReceiver.redirect_uri)

        method, url, kwargs = self.github.calls[1]
        self.assertEqual((method, url), ('GET', 'https://api.github.com/user'))
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer gho_abc123')

    def test_rejected_token_request(self):
        self.github.routes['/login/oauth/access_token'] = (401, {'message': 'Bad credentials'})
        service = self.make_service()

        service.authenticate('client-id', 'client-secret')

        self.assertEqual(self.states, ['authenticating', 'signed_out'])
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertEqual(len(self.errors), 1)
        self.assertIn('401', self.errors[0])
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))

    def test_token_response_without_token(self):
        self.github.routes['/login/oauth/access_token'] = (200, {'error': 'bad_verification_code'})
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertEqual(len(self.errors), 1)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))

    def test_network_failure(self):
        self.github.routes['/login/oauth/access_token'] = requests.ConnectionError('offline')
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIn('offline', self.errors[0])

    def test_profile_failure(self):
        self.github.routes['/user'] = (500, {})
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))

    def test_user_denied(self):
        self.redirect_params = {'error': 'access_denied', 'state': 'x'}
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertEqual(self.errors, [status.get_message(status.Status.AuthenticationCancelled) + ' Access was denied on GitHub.'])
        self.assertEqual(self.github.calls, [])

    def test_state_mismatch(self):
        self.redirect_params = {'code': 'the-code', 'state': 'forged'}
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertEqual(self.github.calls, [])

    def test_missing_client_credentials(self):
        service = self.make_service()
        with self.assertRaises(status.ClientCredentialsNotConfiguredException):
            service.authenticate('', 'secret')
        with self.assertRaises(status.AuthenticationException):
            service.authenticate('id', '')
        self.assertEqual(service.state, auth.AuthState.SignedOut)

    def test_authenticate_with_stored_client(self):
        self.store.save('stored-id', CredentialKey.GitHubClientId)
        self.store.save('stored-secret', CredentialKey.GitHubClientSecret)
        service = self.make_service()
        self.assertTrue(service.authenticate_with_stored_client())
        self.assertEqual(self.github.calls[0][2]['data']['client_id'], 'stored-id')

    def test_sign_in_requested_without_client(self):
        service = self.make_service()
        signals.githubSignInRequested.emit()
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertEqual(len(self.errors), 1)

    def test_broader_granted_scope_is_accepted(self):
        self.github.routes['/login/oauth/access_token'] = (200, dict(TOKEN, scope='repo,user'))
        service = self.make_service()

        with self.assertLogs(level='WARNING'):
            service.authenticate('client-id', 'client-secret')

        self.assertEqual(service.state, auth.AuthState.SignedIn)
        self.assertEqual(self.store.get(CredentialKey.GitHubAccessToken), 'gho_abc123')
        self.assertEqual(self.errors, [])

    def test_refresh_token_is_stored(self):
        self.github.routes['/login/oauth/access_token'] = (200, dict(TOKEN, refresh_token='ghr_xyz'))
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        self.assertEqual(self.store.get(CredentialKey.GitHubRefreshToken), 'ghr_xyz')

    def test_failed_refresh_token_save_leaves_no_token(self):
        self.github.routes['/login/oauth/access_token'] = (200, dict(TOKEN, refresh_token='ghr_xyz'))
        self.store.backend = LockedKeyring(CredentialKey.GitHubRefreshToken)
        service = self.make_service()

        service.authenticate('client-id', 'client-secret')

        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))
        self.assertIsNone(self.store.get(CredentialKey.GitHubRefreshToken))

    def test_failed_access_token_save_leaves_no_token(self):
        self.github.routes['/login/oauth/access_token'] = (200, dict(TOKEN, refresh_token='ghr_xyz'))
        self.store.backend = LockedKeyring(CredentialKey.GitHubAccessToken)
        service = self.make_service()

        service.authenticate('client-id', 'client-secret')

        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))
        self.assertIsNone(self.store.get(CredentialKey.GitHubRefreshToken))

        # The next start finds nothing to restore
        restored = self.make_service(restore=True)
        self.assertEqual(restored.state, auth.AuthState.SignedOut)

    def test_token_save_failure(self):
        service = self.make_service()
        with mock.patch.object(
                self.store, 'save', side_effect=status.CredentialStoreException('locked')
        ):
            service.authenticate('client-id', 'client-secret')
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(service.user)
        self.assertIn('Could not store the access token', self.errors[-1])


class SingleFlightTest(AuthTestCase):

    def setUp(self):
        super().setUp()
        # Leave workers pending
        patcher = mock.patch.object(auth.AuthFlowWorker, 'start', lambda worker: None)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_second_authenticate_is_rejected(self):
        service = self.make_service()
        self.assertTrue(service.authenticate('client-id', 'client-secret'))
        first = service._worker

        with self.assertLogs(level='WARNING'):
            self.assertFalse(service.authenticate('client-id', 'client-secret'))

        self.assertIs(service._worker, first)
        self.assertEqual(service.state, auth.AuthState.Authenticating)

        first.run()
        self.assertEqual(service.state, auth.AuthState.SignedIn)
        token_requests = [c for c in self.github.calls if c[1].endswith('/access_token')]
        self.assertEqual(len(token_requests), 1)

    def test_cancel_discards_late_result(self):
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        worker = service._worker

        service.cancel()
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertTrue(worker.receiver.cancelled)

        worker.run()
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))
        self.assertIsNone(service.user)

    def test_cancel_through_signal_bus(self):
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        signals.githubSignInCancelled.emit()
        self.assertEqual(service.state, auth.AuthState.SignedOut)

    def test_sign_out_during_sign_in(self):
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        worker = service._worker
        service.sign_out()
        worker.run()
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))


class SignOutTest(AuthTestCase):

    def test_sign_out_removes_tokens(self):
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        self.store.save('refresh', CredentialKey.GitHubRefreshToken)

        service.sign_out()

        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(service.user)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))
        self.assertIsNone(self.store.get(CredentialKey.GitHubRefreshToken))

    def test_sign_out_without_token(self):
        service = self.make_service()
        service.sign_out()
        service.sign_out()
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))

    def test_sign_out_through_signal_bus(self):
        service = self.make_service()
        service.authenticate('client-id', 'client-secret')
        signals.githubSignOutRequested.emit()
        self.assertEqual(service.state, auth.AuthState.SignedOut)

    def test_sign_out_keeps_client_credentials(self):
        self.store.save('id', CredentialKey.GitHubClientId)
        service = self.make_service()
        service.sign_out()
        self.assertEqual(self.store.get(CredentialKey.GitHubClientId), 'id')


class RestoreSessionTest(AuthTestCase):

    def test_valid_token_restores_session(self):
        self.store.save('gho_stored', CredentialKey.GitHubAccessToken)
        service = self.make_service(restore=True)
        self.assertEqual(service.state, auth.AuthState.SignedIn)
        self.assertEqual(service.user.login, 'octocat')
        self.assertEqual(self.github.calls[0][2]['headers']['Authorization'], 'Bearer gho_stored')

    def test_revoked_token_is_removed(self):
        self.store.save('gho_stale', CredentialKey.GitHubAccessToken)
        self.github.routes['/user'] = (401, {'message': 'Bad credentials'})
        service = self.make_service(restore=True)
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertIsNone(self.store.get(CredentialKey.GitHubAccessToken))

    def test_nothing_to_restore(self):
        service = self.make_service(restore=True)
        self.assertEqual(service.state, auth.AuthState.SignedOut)
        self.assertEqual(self.github.calls, [])


class GitHubUserTest(unittest.TestCase):

    def test_from_api_requires_login(self):
        with self.assertRaises(ValueError):
            auth.GitHubUser.from_api({'name': 'No Login'})

    def test_display_name(self):
        self.assertEqual(auth.GitHubUser(login='octocat').display_name, 'octocat')
        self.assertEqual(auth.GitHubUser(login='octocat', name='Octo').display_name, 'Octo')


class MemoryStoreIsolationTest(unittest.TestCase):

    def test_store_starts_empty(self):
        store = CredentialStore(backend=MemoryKeyring())
        self.assertIsNone(store.get(CredentialKey.GitHubAccessToken))


if __name__ == '__main__':
    unittest.main()
