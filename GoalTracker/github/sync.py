"""
Repository sync with the GitHub REST API.

Repository metadata and weekly commit statistics are fetched in a :class:`SyncWorker`
thread and written to the database on the main thread by :class:`SyncService`,
which owns the database handle. :func:`sync_repository` does both steps
synchronously.

GitHub computes repository statistics lazily and answers ``202 Accepted`` while it
does. Such responses are treated as "no data yet" rather than as errors.
"""
import datetime
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from PySide6 import QtCore

from ..core import models
from ..core.database import Database
from ..status import status
from ..ui.actions import signals

DEFAULT_API_URL = 'https://api.github.com'
REQUEST_TIMEOUT = 30


def create_api_session(access_token: str) -> requests.Session:
    session = requests.Session()
    session.headers.update({
        'Authorization': f'Bearer {access_token}',
        'Accept': 'application/vnd.github+json',
        'X-GitHub-Api-Version': '2022-11-28',
    })
    return session


def _get_json(session: requests.Session, url: str, params: Dict = None) -> Optional[Any]:
    """GET url and decode the JSON body. Returns None for ``202 Accepted``.

    Raises:
        status.SyncException: On network errors, error status codes or invalid JSON.
    """
    try:
        response = session.get(url, params=params, timeout=REQUEST_TIMEOUT)
        if response.status_code == 202:
            logging.debug(f'{url}: statistics are still being computed')
            return None
        response.raise_for_status()
        return response.json()
    except requests.HTTPError as ex:
        raise status.SyncException(f'{url} returned HTTP {ex.response.status_code}') from ex
    except requests.RequestException as ex:
        raise status.SyncException(f'Could not reach GitHub: {ex}') from ex
    except ValueError as ex:
        raise status.SyncException(f'{url} returned invalid JSON: {ex}') from ex


def fetch_repository(session: requests.Session, owner: str, name: str, api_url: str = DEFAULT_API_URL) -> Dict[str, Any]:
    data = _get_json(session, f'{api_url}/repos/{owner}/{name}')
    if not isinstance(data, dict):
        raise status.SyncException(f'No repository data for {owner}/{name}')
    return data


def list_user_repositories(session: requests.Session, api_url: str = DEFAULT_API_URL) -> List[Dict[str, Any]]:
    """Repositories owned by the signed-in user, most recently updated first."""
    data = _get_json(
        session,
        f'{api_url}/user/repos',
        params={'per_page': 100, 'sort': 'updated', 'type': 'owner'}
    )
    return data or []


def fetch_commit_activity(
        session: requests.Session,
        owner: str,
        name: str,
        api_url: str = DEFAULT_API_URL
) -> List[Dict[str, Any]]:
    """Weekly commit totals for the last year, oldest first.

    Each item has ``week`` (a UNIX timestamp of the week's Sunday), ``total`` and
    ``days``. Returns an empty list while GitHub is still computing the statistics.
    """
    return _get_json(session, f'{api_url}/repos/{owner}/{name}/stats/commit_activity') or []


def fetch_code_frequency(
        session: requests.Session,
        owner: str,
        name: str,
        api_url: str = DEFAULT_API_URL
) -> Dict[int, Tuple[int, int]]:
    """Weekly additions and deletions keyed by week timestamp."""
    data = _get_json(session, f'{api_url}/repos/{owner}/{name}/stats/code_frequency') or []
    return {int(week): (int(additions), abs(int(deletions))) for week, additions, deletions in data}


def build_commit_weeks(
        repository_id: str,
        activity: List[Dict[str, Any]],
        frequency: Optional[Dict[int, Tuple[int, int]]] = None
) -> List[models.CommitActivity]:
    """Convert API statistics into :class:`models.CommitActivity`, keeping weeks with commits."""
    frequency = frequency or {}
    weeks = []
    for item in activity:
        total = int(item.get('total', 0))
        if total <= 0:
            continue
        timestamp = int(item['week'])
        additions, deletions = frequency.get(timestamp, (0, 0))
        weeks.append(models.CommitActivity(
            repository_id=repository_id,
            week_start=datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc),
            commit_count=total,
            additions=additions,
            deletions=deletions,
        ))
    return weeks


def fetch_repository_data(
        repository: models.GitHubRepository,
        access_token: str,
        api_url: str = DEFAULT_API_URL
) -> Tuple[Dict[str, Any], List[models.CommitActivity]]:
    """Fetch everything a sync needs without touching the database."""
    logging.info(f'Fetching {repository.full_name} from GitHub...')
    with create_api_session(access_token) as session:
        data = fetch_repository(session, repository.owner, repository.name, api_url=api_url)
        activity = fetch_commit_activity(session, repository.owner, repository.name, api_url=api_url)
        frequency = fetch_code_frequency(session, repository.owner, repository.name, api_url=api_url)
    return data, build_commit_weeks(repository.id, activity, frequency)


def apply_repository_data(
        db: Database,
        repository: models.GitHubRepository,
        data: Dict[str, Any],
        weeks: List[models.CommitActivity]
) -> models.GitHubRepository:
    """Store fetched data, stamp the sync time, record a star snapshot and recompute the goal's progress."""
    repository.update_from_api(data)
    db.update_repository(repository)
    db.replace_commit_activity(repository.id, weeks)
    db.add_star_snapshot(models.StarHistory.from_api(repository.id, data, repository.last_synced_at))
    db.update_progress(repository.goal_id)
    logging.info(f'Synced {repository.full_name}: {models.total_commits(weeks)} commits in {len(weeks)} weeks')
    return repository


def sync_repository(
        db: Database,
        repository_id: str,
        access_token: str,
        api_url: str = DEFAULT_API_URL
) -> models.GitHubRepository:
    """Refresh one repository from GitHub.

    Raises:
        status.SyncException: If any request fails.
        status.RecordNotFoundException: If the repository does not exist.
    """
    repository = db.get_repository(repository_id)
    data, weeks = fetch_repository_data(repository, access_token, api_url=api_url)
    return apply_repository_data(db, repository, data, weeks)


class SyncWorker(QtCore.QThread):
    """
    QThread subclass that fetches one repository from GitHub.

    Emits:
      - resultReady(object): a (repository, data, weeks) tuple on success.
      - errorOccurred(object, str): the worker and an error message on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object, str)

    def __init__(self, repository: models.GitHubRepository, access_token: str, api_url: str = DEFAULT_API_URL, parent=None):
        super().__init__(parent)
        self.repository = repository
        self.access_token = access_token
        self.api_url = api_url

    def run(self):
        try:
            data, weeks = fetch_repository_data(self.repository, self.access_token, api_url=self.api_url)
        except status.SyncException as ex:
            self.errorOccurred.emit(self, str(ex))
            return
        self.resultReady.emit((self.repository, data, weeks))


class SyncService(QtCore.QObject):
    """Runs repository syncs requested through ``signals.repositorySyncRequested``.

    Args:
        db (Database): The open goal database. Only used on the main thread.
        token_provider (callable): Returns the current GitHub access token, or None.
        api_url (str): Base URL of the GitHub REST API.
    """

    def __init__(self, db: Database, token_provider, api_url: str = DEFAULT_API_URL, parent=None):
        super().__init__(parent=parent)
        self.db = db
        self.token_provider = token_provider
        self.api_url = api_url
        self._workers: Dict[str, SyncWorker] = {}

        signals.repositorySyncRequested.connect(self.on_sync_requested)

    @QtCore.Slot(str)
    def on_sync_requested(self, repository_id: str) -> None:
        try:
            self.sync(repository_id)
        except (status.SyncException, status.RecordNotFoundException) as ex:
            logging.debug(f'Sync of {repository_id} not started: {ex}')

    def sync(self, repository_id: str) -> bool:
        """Start a background sync. Returns False if one is already running for the repository."""
        if repository_id in self._workers:
            logging.debug(f'Sync of {repository_id} is already running')
            return False

        token = self.token_provider()
        if not token:
            raise status.SyncException('Sign in to GitHub to sync repositories.')

        repository = self.db.get_repository(repository_id)
        worker = SyncWorker(repository, token, api_url=self.api_url)
        worker.resultReady.connect(self.on_result)
        worker.errorOccurred.connect(self.on_error)
        worker.finished.connect(self.on_worker_finished)

        self._workers[repository_id] = worker
        worker.start()
        return True

    def sync_stale(self, goal_id: str) -> int:
        """Start syncs for every repository of a goal that has not been synced recently."""
        started = 0
        for repository in self.db.list_repositories(goal_id):
            if repository.needs_sync() and self.sync(repository.id):
                started += 1
        return started

    @QtCore.Slot(object)
    def on_result(self, result: Tuple[models.GitHubRepository, Dict[str, Any], List[models.CommitActivity]]) -> None:
        repository, data, weeks = result
        self._workers.pop(repository.id, None)
        try:
            apply_repository_data(self.db, repository, data, weeks)
        except status.RecordNotFoundException:
            logging.info(f'{repository.full_name} was deleted while syncing.')
            return
        signals.repositorySynced.emit(repository.id)
        signals.goalChanged.emit(repository.goal_id)

    @QtCore.Slot(object, str)
    def on_error(self, worker: SyncWorker, message: str) -> None:
        self._release(worker)
        logging.debug(f'Sync of {worker.repository.full_name} failed: {message}')

    @QtCore.Slot()
    def on_worker_finished(self) -> None:
        worker = self.sender()
        if isinstance(worker, SyncWorker):
            self._release(worker)

    def _release(self, worker: SyncWorker) -> None:
        # A finished worker must not evict a newer sync of the same repository
        if self._workers.get(worker.repository.id) is worker:
            del self._workers[worker.repository.id]
