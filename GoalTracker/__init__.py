"""
GoalTracker: desktop application for tracking yearly reading, fitness and programming goals.

This package provides:

- :mod:`GoalTracker.core` – Goal entities, the local SQLite database and the keychain-backed credential store.
- :mod:`GoalTracker.github` – GitHub OAuth sign-in and repository sync for programming goals.
- :mod:`GoalTracker.data` – Weekly analytics (:func:`GoalTracker.data.data.get_commit_trends`, :func:`GoalTracker.data.data.get_training_summary`).
- :mod:`GoalTracker.settings` – Settings management with schema validation, and locale utilities.
- :mod:`GoalTracker.log` – In-app logging.

Use :func:`GoalTracker.exec_` to launch the application.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('GoalTracker requires Python 3.11 or higher.')

__version__ = '0.1.0'
__description__ = 'GoalTracker: desktop application for tracking reading, fitness and programming goals.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Launch the GoalTracker application and enter its event loop.

    Opens the goal database, creates the GitHub services and starts the Qt event loop.
    Exits with a non-zero code if the database cannot be opened.
    """
    from .ui import app
    from .ui.actions import signals
    from .core import database
    from .core.credentials import CredentialStore
    from .github import auth, sync
    from .settings import lib
    from .status import status

    application = app.Application(sys.argv)

    try:
        db = database.open_database(lib.settings.db_path)
    except status.PersistenceException as ex:
        print(f'GoalTracker could not start: {ex}', file=sys.stderr)
        sys.exit(1)
    application.aboutToQuit.connect(db.close)

    store = CredentialStore.from_settings()
    auth_service = auth.GitHubAuthService(store, parent=application)
    sync_service = sync.SyncService(
        db,
        auth_service.access_token,
        api_url=lib.settings.get_section('github')['api_url'],
        parent=application
    )

    # Ask components to load their data
    QtCore.QTimer.singleShot(100, signals.initializationRequested.emit)

    sys.exit(application.exec())


if __name__ == '__main__':
    exec_()
