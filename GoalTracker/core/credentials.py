"""
Secure storage for API keys, OAuth tokens and client secrets.

Secrets are kept out of the goal database and the settings file. They are stored in
the operating system's keychain through the :mod:`keyring` library, addressed by an
application-scoped service name and a fixed set of key names (:class:`CredentialKey`).

The backend is pluggable: :class:`CredentialStore` uses :func:`keyring.get_keyring`
by default and accepts any :class:`keyring.backend.KeyringBackend`, such as the
in-memory :class:`MemoryKeyring`.
"""
import enum
import logging
from typing import Dict, Optional, Tuple

import keyring
import keyring.backend
import keyring.errors

from ..status import status

DEFAULT_SERVICE = 'GoalTracker'


class CredentialKey(enum.StrEnum):
    """Names of the secrets the application stores."""
    AnthropicAPIKey = 'anthropicAPIKey'
    GitHubAccessToken = 'githubAccessToken'
    GitHubRefreshToken = 'githubRefreshToken'
    GitHubClientId = 'githubClientId'
    GitHubClientSecret = 'githubClientSecret'


# Failures on these keys must reach the caller
SECURITY_KEYS = frozenset({
    CredentialKey.GitHubAccessToken,
    CredentialKey.GitHubRefreshToken,
})


class MemoryKeyring(keyring.backend.KeyringBackend):
    """Keyring backend keeping secrets in a dict for the lifetime of the process."""
    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[Tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> Optional[str]:
        return self._data.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self._data[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self._data[(service, username)]
        except KeyError:
            raise keyring.errors.PasswordDeleteError(f'No password stored for {username}')


def get_backend(name: str) -> keyring.backend.KeyringBackend:
    """Return the keyring backend for a ``credential_backend`` setting value.

    Args:
        name (str): 'system' for the OS keychain, 'memory' for a process-local store.
    """
    if name == 'memory':
        return MemoryKeyring()
    if name == 'system':
        return keyring.get_keyring()
    raise ValueError(f'Unknown credential backend "{name}"')


class CredentialStore:
    """Save, read and delete secrets by :class:`CredentialKey`.

    Args:
        service (str): Application-scoped service identifier used by the keychain.
        backend (keyring.backend.KeyringBackend, optional): Storage backend. Defaults to
            the system keyring.
    """

    def __init__(self, service: str = DEFAULT_SERVICE, backend: Optional[keyring.backend.KeyringBackend] = None):
        self.service = service
        self.backend = backend if backend is not None else keyring.get_keyring()
        logging.debug(f'Credential store "{self.service}" using {type(self.backend).__name__}')

    @classmethod
    def from_settings(cls) -> 'CredentialStore':
        """Build a store from the ``credential_backend`` and ``credential_service`` settings."""
        from ..settings import lib
        return cls(
            service=lib.settings['credential_service'] or DEFAULT_SERVICE,
            backend=get_backend(lib.settings['credential_backend'] or 'system'),
        )

    def _fail(self, key: CredentialKey, action: str, ex: Exception) -> bool:
        msg = f'Failed to {action} "{key}": {ex}'
        if key in SECURITY_KEYS:
            raise status.CredentialStoreException(msg) from ex
        logging.warning(msg)
        return False

    def save(self, value: str, key: CredentialKey) -> bool:
        """Store or overwrite the secret for a key.

        Returns:
            bool: True if the value was stored. False if the backend failed for a
            non-critical key.

        Raises:
            status.CredentialStoreException: If the backend fails for a security-relevant key.
        """
        key = CredentialKey(key)
        try:
            self.backend.set_password(self.service, key.value, value)
        except keyring.errors.KeyringError as ex:
            return self._fail(key, 'save', ex)
        logging.debug(f'Saved credential "{key}"')
        return True

    def get(self, key: CredentialKey) -> Optional[str]:
        """Return the stored secret, or None if it was never set or cannot be read."""
        key = CredentialKey(key)
        try:
            return self.backend.get_password(self.service, key.value)
        except keyring.errors.KeyringError as ex:
            logging.error(f'Failed to read credential "{key}": {ex}')
            return None

    def delete(self, key: CredentialKey) -> bool:
        """Remove the stored secret. Deleting a key that is not stored succeeds.

        Raises:
            status.CredentialStoreException: If the backend fails for a security-relevant key.
        """
        key = CredentialKey(key)
        try:
            self.backend.delete_password(self.service, key.value)
        except keyring.errors.PasswordDeleteError:
            # Some backends raise for absent keys, others for real failures
            if self.get(key) is None:
                return True
            return self._fail(key, 'delete', keyring.errors.PasswordDeleteError(key.value))
        except keyring.errors.KeyringError as ex:
            return self._fail(key, 'delete', ex)
        logging.debug(f'Deleted credential "{key}"')
        return True

    def exists(self, key: CredentialKey) -> bool:
        return self.get(key) is not None
