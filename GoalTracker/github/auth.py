"""
GitHub OAuth2 Authentication Module.

This module signs the user in to GitHub with the OAuth web application flow and keeps
track of the signed-in account.

The browser round trip and the token exchange run in an :class:`AuthFlowWorker`
QThread. Results are handed back to :class:`GitHubAuthService` on the main thread,
which is the only place the access token is written to the credential store.

Example:

    service = GitHubAuthService(CredentialStore.from_settings())
    service.stateChanged.connect(on_state_changed)
    service.authenticate(client_id, client_secret)

"""
import dataclasses
import enum
import json
import logging
import webbrowser
from typing import Any, Callable, Dict, List, Optional, Tuple

import oauthlib.oauth2
import requests
from PySide6 import QtCore
from requests_oauthlib import OAuth2Session

from . import callback
from ..core.credentials import CredentialKey, CredentialStore
from ..status import status
from ..ui.actions import signals

DEFAULT_SCOPES = ['read:user', 'repo']
REQUEST_TIMEOUT = 30


class AuthState(enum.StrEnum):
    SignedOut = 'signed_out'
    Authenticating = 'authenticating'
    SignedIn = 'signed_in'


@dataclasses.dataclass
class GitHubUser:
    """Profile of the signed-in GitHub account."""
    login: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    id: Optional[int] = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'GitHubUser':
        if not isinstance(data, dict) or not data.get('login'):
            raise ValueError('The GitHub profile response has no login.')
        return cls(
            login=data['login'],
            name=data.get('name'),
            avatar_url=data.get('avatar_url'),
            id=data.get('id'),
            public_repos=data.get('public_repos') or 0,
            followers=data.get('followers') or 0,
            following=data.get('following') or 0,
        )

    @property
    def display_name(self) -> str:
        return self.name or self.login


def github_token_compliance_fix(response: requests.Response) -> requests.Response:
    """Make GitHub's token response acceptable to oauthlib.

    Error status codes raise :class:`requests.HTTPError`. GitHub separates granted
    scopes with commas, oauthlib expects spaces.
    """
    response.raise_for_status()
    try:
        token = response.json()
    except ValueError:
        return response
    if isinstance(token, dict) and isinstance(token.get('scope'), str):
        token['scope'] = ' '.join(s for s in token['scope'].split(',') if s)
        response._content = json.dumps(token).encode('utf-8')
    return response


def create_session(client_id: str, redirect_uri: str, scopes: List[str], token: Dict = None) -> OAuth2Session:
    session = OAuth2Session(client_id, redirect_uri=redirect_uri, scope=scopes, token=token)
    session.register_compliance_hook('access_token_response', github_token_compliance_fix)
    return session


def exchange_code(
        session: OAuth2Session,
        token_url: str,
        client_secret: str,
        code: str,
        timeout: float = REQUEST_TIMEOUT
) -> Dict[str, Any]:
    """Exchange an authorization code for an access token.

    Raises:
        status.AuthenticationException: If the request fails, GitHub rejects it, or the
            response does not contain a token.
    """
    try:
        token = session.fetch_token(
            token_url,
            code=code,
            client_secret=client_secret,
            include_client_id=True,
            headers={'Accept': 'application/json'},
            timeout=timeout,
        )
    except requests.HTTPError as ex:
        raise status.AuthenticationException(
            f'The token request was rejected (HTTP {ex.response.status_code}).'
        ) from ex
    except requests.RequestException as ex:
        raise status.AuthenticationException(f'Could not reach GitHub: {ex}') from ex
    except Warning as ex:
        # oauthlib warns when the granted scope differs from the requested one
        token = getattr(ex, 'token', None) or {}
        if not token.get('access_token'):
            raise status.AuthenticationException(f'GitHub returned an invalid token response: {ex}') from ex
        logging.warning(f'GitHub granted a different scope: {ex}')
    except (oauthlib.oauth2.OAuth2Error, ValueError) as ex:
        raise status.AuthenticationException(f'GitHub returned an invalid token response: {ex}') from ex

    if not token.get('access_token'):
        raise status.AuthenticationException('GitHub returned no access token.')
    logging.info(f'Received a GitHub access token. Scopes={token.get("scope")}')
    return token


def fetch_user(access_token: str, api_url: str, timeout: float = REQUEST_TIMEOUT) -> GitHubUser:
    """Fetch the profile of the account that owns access_token.

    Raises:
        status.AuthenticationException: If the token is rejected or the request fails.
    """
    headers = {
        'Authorization': f'Bearer {access_token}',
        'Accept': 'application/vnd.github+json',
    }
    try:
        with requests.Session() as session:
            response = session.get(f'{api_url.rstrip("/")}/user', headers=headers, timeout=timeout)
            response.raise_for_status()
            return GitHubUser.from_api(response.json())
    except requests.HTTPError as ex:
        raise status.AuthenticationException(
            f'GitHub rejected the access token (HTTP {ex.response.status_code}).'
        ) from ex
    except requests.RequestException as ex:
        raise status.AuthenticationException(f'Could not reach GitHub: {ex}') from ex
    except ValueError as ex:
        raise status.AuthenticationException(f'Invalid GitHub profile response: {ex}') from ex


def run_flow(
        client_id: str,
        client_secret: str,
        config: Dict[str, Any],
        receiver: callback.CallbackReceiver,
        open_browser: Callable[[str], Any] = webbrowser.open
) -> Tuple[Dict[str, Any], GitHubUser]:
    """Run the complete web flow and return the token and the user's profile.

    Raises:
        status.AuthenticationCancelledException: If the user denied access.
        status.AuthenticationException: On any other failure.
    """
    timeout = config.get('timeout', REQUEST_TIMEOUT)

    with receiver:
        session = create_session(client_id, receiver.redirect_uri, config.get('scopes', DEFAULT_SCOPES))
        url, state = session.authorization_url(config['authorize_url'])

        logging.info('Opening the GitHub authorization page...')
        if open_browser(url) is False:
            logging.warning(f'Could not open a browser. Visit this address to continue: {url}')

        params = receiver.wait()

    error = params.get('error')
    if error == 'access_denied':
        raise status.AuthenticationCancelledException('Access was denied on GitHub.')
    if error:
        raise status.AuthenticationException(params.get('error_description') or error)
    if params.get('state') != state:
        raise status.AuthenticationException('The redirect state does not match the request.')
    if not params.get('code'):
        raise status.AuthenticationException('The redirect carried no authorization code.')

    token = exchange_code(session, config['token_url'], client_secret, params['code'], timeout=timeout)
    user = fetch_user(token['access_token'], config['api_url'], timeout=timeout)
    return token, user


class AuthFlowWorker(QtCore.QThread):
    """
    QThread subclass that runs the OAuth web flow.

    Emits:
      - resultReady(object, object): the worker and a (token, user) tuple on success.
      - errorOccurred(object, str): the worker and an error message on failure.
    """
    resultReady = QtCore.Signal(object, object)
    errorOccurred = QtCore.Signal(object, str)

    def __init__(
            self,
            client_id: str,
            client_secret: str,
            config: Dict[str, Any],
            receiver: callback.CallbackReceiver,
            open_browser: Callable[[str], Any] = webbrowser.open,
            parent=None
    ):
        super().__init__(parent)
        self.client_id = client_id
        self.client_secret = client_secret
        self.config = config
        self.receiver = receiver
        self.open_browser = open_browser

    def run(self):
        try:
            result = run_flow(self.client_id, self.client_secret, self.config, self.receiver, self.open_browser)
        except status.AuthenticationException as ex:
            self.errorOccurred.emit(self, str(ex))
            return
        self.resultReady.emit(self, result)

    def cancel(self) -> None:
        self.requestInterruption()
        self.receiver.cancel()


class ProfileWorker(QtCore.QThread):
    """
    QThread subclass that validates a stored token by fetching the user's profile.

    Emits:
      - resultReady(object, object): the worker and the :class:`GitHubUser`.
      - errorOccurred(object, str): the worker and an error message.
    """
    resultReady = QtCore.Signal(object, object)
    errorOccurred = QtCore.Signal(object, str)

    def __init__(self, access_token: str, config: Dict[str, Any], parent=None):
        super().__init__(parent)
        self.access_token = access_token
        self.config = config

    def run(self):
        try:
            user = fetch_user(self.access_token, self.config['api_url'], self.config.get('timeout', REQUEST_TIMEOUT))
        except status.AuthenticationException as ex:
            self.errorOccurred.emit(self, str(ex))
            return
        self.resultReady.emit(self, user)


class GitHubAuthService(QtCore.QObject):
    """Owns the GitHub sign-in state of the application.

    Only one sign-in attempt runs at a time. The access token is read from and written
    to the given :class:`CredentialStore`; nothing else persists it.

    Args:
        store (CredentialStore): Where tokens and client credentials are kept.
        config (dict, optional): The ``github`` settings section. Read from the settings
            when omitted.
        receiver_factory (callable, optional): Builds the redirect receiver from config.
        open_browser (callable, optional): Opens the authorization URL.
        restore (bool): Validate a stored token on construction.
    """
    stateChanged = QtCore.Signal(str)
    userChanged = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(str)

    def __init__(
            self,
            store: CredentialStore,
            config: Optional[Dict[str, Any]] = None,
            receiver_factory: Optional[Callable[[Dict[str, Any]], callback.CallbackReceiver]] = None,
            open_browser: Optional[Callable[[str], Any]] = None,
            restore: bool = True,
            parent=None
    ):
        super().__init__(parent=parent)

        if config is None:
            from ..settings import lib
            config = lib.settings.get_section('github')

        self.store = store
        self.config = config
        self.receiver_factory = receiver_factory or callback.CallbackReceiver.from_config
        self.open_browser = open_browser or webbrowser.open

        self._state = AuthState.SignedOut
        self._user: Optional[GitHubUser] = None
        self._worker: Optional[QtCore.QThread] = None
        self._running: List[QtCore.QThread] = []

        self._connect_signals()

        if restore:
            self.restore_session()

    def _connect_signals(self) -> None:
        signals.githubSignInRequested.connect(self.on_sign_in_requested)
        signals.githubSignInCancelled.connect(self.cancel)
        signals.githubSignOutRequested.connect(self.sign_out)

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> Optional[GitHubUser]:
        return self._user

    @property
    def is_signed_in(self) -> bool:
        return self._state == AuthState.SignedIn

    def access_token(self) -> Optional[str]:
        return self.store.get(CredentialKey.GitHubAccessToken)

    def _set_state(self, state: AuthState) -> None:
        if state == self._state:
            return
        logging.debug(f'GitHub auth state: {self._state} -> {state}')
        self._state = state
        self.stateChanged.emit(state.value)
        signals.githubAuthStateChanged.emit(state.value)

    def _set_user(self, user: Optional[GitHubUser]) -> None:
        self._user = user
        self.userChanged.emit(user)
        signals.githubUserChanged.emit(user)

    def _start(self, worker: QtCore.QThread) -> None:
        self._worker = worker
        self._running.append(worker)
        worker.finished.connect(lambda: self._running.remove(worker) if worker in self._running else None)
        worker.start()

    def _forget_tokens(self) -> None:
        for key in (CredentialKey.GitHubAccessToken, CredentialKey.GitHubRefreshToken):
            try:
                self.store.delete(key)
            except status.CredentialStoreException as ex:
                logging.error(f'Could not remove "{key}": {ex}')

    def _fail(self, ex: status.BaseStatusException) -> None:
        self._worker = None
        self._set_user(None)
        self._set_state(AuthState.SignedOut)
        self.errorOccurred.emit(str(ex))

    def authenticate(self, client_id: str, client_secret: str) -> bool:
        """Start the sign-in flow.

        Returns:
            bool: True if a new attempt started, False if one is already running.

        Raises:
            status.ClientCredentialsNotConfiguredException: If client_id or client_secret is empty.
        """
        if self._state == AuthState.Authenticating:
            logging.warning('A GitHub sign-in is already in progress.')
            return False
        if not client_id or not client_secret:
            raise status.ClientCredentialsNotConfiguredException()

        worker = AuthFlowWorker(
            client_id,
            client_secret,
            self.config,
            self.receiver_factory(self.config),
            open_browser=self.open_browser,
        )
        worker.resultReady.connect(self.on_flow_result)
        worker.errorOccurred.connect(self.on_flow_error)

        logging.info('Starting GitHub sign-in...')
        self._set_state(AuthState.Authenticating)
        self._start(worker)
        return True

    def authenticate_with_stored_client(self) -> bool:
        """Start the sign-in flow with the client id and secret kept in the credential store."""
        return self.authenticate(
            self.store.get(CredentialKey.GitHubClientId) or '',
            self.store.get(CredentialKey.GitHubClientSecret) or '',
        )

    @QtCore.Slot()
    def on_sign_in_requested(self) -> None:
        try:
            self.authenticate_with_stored_client()
        except status.AuthenticationException as ex:
            self.errorOccurred.emit(str(ex))

    @QtCore.Slot()
    def cancel(self) -> None:
        """Abandon the running sign-in. A result that arrives later is discarded."""
        if self._state != AuthState.Authenticating:
            return
        worker, self._worker = self._worker, None
        if isinstance(worker, AuthFlowWorker):
            worker.cancel()
        logging.info('GitHub sign-in cancelled.')
        self._set_state(AuthState.SignedOut)

    @QtCore.Slot(object, object)
    def on_flow_result(self, worker: AuthFlowWorker, result: Tuple[Dict[str, Any], GitHubUser]) -> None:
        if worker is not self._worker:
            logging.debug('Discarding the result of an abandoned sign-in.')
            return
        token, user = result

        try:
            if token.get('refresh_token'):
                self.store.save(token['refresh_token'], CredentialKey.GitHubRefreshToken)
            self.store.save(token['access_token'], CredentialKey.GitHubAccessToken)
        except status.CredentialStoreException as ex:
            # A failed sign-in leaves no token behind
            self._forget_tokens()
            self._fail(status.AuthenticationException(f'Could not store the access token: {ex}'))
            return

        self._worker = None
        self._set_user(user)
        self._set_state(AuthState.SignedIn)
        logging.info(f'Signed in to GitHub as {user.login}')

    @QtCore.Slot(object, str)
    def on_flow_error(self, worker: AuthFlowWorker, message: str) -> None:
        if worker is not self._worker:
            logging.debug(f'Discarding the error of an abandoned sign-in: {message}')
            return
        self._worker = None
        self._set_state(AuthState.SignedOut)
        self.errorOccurred.emit(message)

    @QtCore.Slot()
    def sign_out(self) -> None:
        """Forget the stored tokens and the profile. Always ends signed out."""
        self.cancel()
        self._forget_tokens()
        self._worker = None
        self._set_user(None)
        self._set_state(AuthState.SignedOut)
        logging.info('Signed out of GitHub.')

    def restore_session(self) -> bool:
        """Validate a previously stored token in the background.

        Returns:
            bool: True if a stored token is being validated.
        """
        if self._state != AuthState.SignedOut:
            return False
        token = self.access_token()
        if not token:
            logging.debug('No stored GitHub token to restore.')
            return False

        worker = ProfileWorker(token, self.config)
        worker.resultReady.connect(self.on_profile_result)
        worker.errorOccurred.connect(self.on_profile_error)
        logging.debug('Validating the stored GitHub token...')
        self._start(worker)
        return True

    @QtCore.Slot(object, object)
    def on_profile_result(self, worker: ProfileWorker, user: GitHubUser) -> None:
        if worker is not self._worker:
            return
        self._worker = None
        self._set_user(user)
        self._set_state(AuthState.SignedIn)
        logging.info(f'Restored GitHub session for {user.login}')

    @QtCore.Slot(object, str)
    def on_profile_error(self, worker: ProfileWorker, message: str) -> None:
        if worker is not self._worker:
            return
        self._worker = None
        logging.warning(f'Stored GitHub token is no longer valid, removing it: {message}')
        self._forget_tokens()
        self._set_user(None)
        self._set_state(AuthState.SignedOut)
