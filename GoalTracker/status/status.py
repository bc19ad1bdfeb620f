"""Status definitions and exceptions for GoalTracker.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., PersistenceException) for error handling in services
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Settings status
    SettingsInvalid = enum.auto()

    # Authentication status
    ClientCredentialsNotConfigured = enum.auto()
    AuthenticationCancelled = enum.auto()
    NotAuthenticated = enum.auto()

    # Credential store status
    CredentialStoreUnavailable = enum.auto()

    # Persistence status
    PersistenceUnavailable = enum.auto()
    RecordNotFound = enum.auto()
    GoalTypeMismatch = enum.auto()
    GoalTypeImmutable = enum.auto()
    PageOutOfRange = enum.auto()
    InvalidRecord = enum.auto()

    # Remote sync status
    SyncFailed = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.SettingsInvalid: 'The settings file seems to be incomplete, or contains invalid values.',

    Status.ClientCredentialsNotConfigured: 'GitHub client credentials are not configured. Add a client id and secret in the settings.',
    Status.AuthenticationCancelled: 'Authentication was cancelled.',
    Status.NotAuthenticated: 'GitHub authentication failed. Try signing in again.',

    Status.CredentialStoreUnavailable: 'Could not access the system keychain.',

    Status.PersistenceUnavailable: 'Could not open the local goal database.',
    Status.RecordNotFound: 'The requested item no longer exists.',
    Status.GoalTypeMismatch: 'This item does not belong to this kind of goal.',
    Status.GoalTypeImmutable: 'The type of a goal cannot be changed once it is created.',
    Status.PageOutOfRange: 'The current page must be between zero and the page count of the book.',
    Status.InvalidRecord: 'The entry contains invalid values.',

    Status.SyncFailed: 'Could not refresh the repository from GitHub. Please check your connection.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in GoalTracker.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..ui.actions import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class SettingsInvalidException(BaseStatusException):
    """Exception raised when the settings file is missing sections or has invalid values."""
    status = Status.SettingsInvalid


class AuthenticationException(BaseStatusException):
    """Exception raised when the GitHub OAuth flow or token validation fails."""
    status = Status.NotAuthenticated


class AuthenticationCancelledException(AuthenticationException):
    """Exception raised when the user denies or abandons the authorization request."""
    status = Status.AuthenticationCancelled


class ClientCredentialsNotConfiguredException(AuthenticationException):
    """Exception raised when the GitHub client id or client secret is empty."""
    status = Status.ClientCredentialsNotConfigured


class CredentialStoreException(BaseStatusException):
    """Exception raised when the secure credential backend fails to save or delete a value."""
    status = Status.CredentialStoreUnavailable


class PersistenceException(BaseStatusException):
    """Exception raised when the local database cannot be opened or initialized."""
    status = Status.PersistenceUnavailable


class RecordNotFoundException(BaseStatusException):
    """Exception raised when an entity id does not exist in the database."""
    status = Status.RecordNotFound


class GoalTypeMismatchException(BaseStatusException):
    """Exception raised when a child entity is attached to a goal of the wrong type."""
    status = Status.GoalTypeMismatch


class GoalTypeImmutableException(BaseStatusException):
    """Exception raised when an update attempts to change the type of an existing goal."""
    status = Status.GoalTypeImmutable


class PageOutOfRangeException(BaseStatusException):
    """Exception raised when a book's current page is negative or exceeds its page count."""
    status = Status.PageOutOfRange


class InvalidRecordException(BaseStatusException):
    """Exception raised when an entity has out-of-range or missing values."""
    status = Status.InvalidRecord


class SyncException(BaseStatusException):
    """Exception raised when refreshing repository data from GitHub fails."""
    status = Status.SyncFailed
