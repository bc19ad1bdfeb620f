"""Application-wide Qt signals for GoalTracker.

This module provides:
    - Signals: custom Qt signals for configuration changes, goal data changes,
      GitHub authentication requests and state, repository sync and errors.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for application config, data, and service events."""
    initializationRequested = QtCore.Signal()

    configSectionChanged = QtCore.Signal(str)
    metadataChanged = QtCore.Signal(str, object)

    goalChanged = QtCore.Signal(str)  # Goal id

    # Settings view -> auth service
    githubSignInRequested = QtCore.Signal()
    githubSignInCancelled = QtCore.Signal()
    githubSignOutRequested = QtCore.Signal()

    # Auth service -> settings view
    githubAuthStateChanged = QtCore.Signal(str)
    githubUserChanged = QtCore.Signal(object)

    repositorySyncRequested = QtCore.Signal(str)  # Repository id
    repositorySynced = QtCore.Signal(str)

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        @QtCore.Slot(str, object)
        def metadata_changed(key: str, value: object) -> None:
            if key != 'locale':
                return
            logging.debug(f'Locale changed to "{value}"')

        self.metadataChanged.connect(metadata_changed)


signals = Signals()
