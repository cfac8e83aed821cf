"""Status definitions and exceptions for SelfTracker.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., ServiceUnavailableException) for error handling in services
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ConfigNotFound = enum.auto()
    ConfigInvalid = enum.auto()

    # Remote store status
    RemoteNotConfigured = enum.auto()
    ServiceUnavailable = enum.auto()
    RemoteError = enum.auto()

    # Local data status
    ValidationFailed = enum.auto()
    ImportInvalid = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigNotFound: 'Could not find the settings file.',
    Status.ConfigInvalid: 'The settings file seems to be incomplete, or contains invalid values.',

    Status.RemoteNotConfigured: 'The remote store URL is not configured. Have you set "remote.url" in the settings?',
    Status.ServiceUnavailable: 'The remote store is unavailable. Please check your connection.',
    Status.RemoteError: 'The remote store reported an error.',

    Status.ValidationFailed: 'Please fill in all required fields.',
    Status.ImportInvalid: 'The import file format is invalid.',
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
    """Base exception for status-based errors in SelfTracker.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        detail (str): The additional context passed when raised, if any.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.detail = message or ''
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..core.signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ConfigNotFoundException(BaseStatusException):
    """Exception raised when the settings file cannot be found."""
    status = Status.ConfigNotFound


class ConfigInvalidException(BaseStatusException):
    """Exception raised when the settings file is invalid or malformed."""
    status = Status.ConfigInvalid


class RemoteNotConfiguredException(BaseStatusException):
    """Exception raised when a remote operation is attempted without a configured URL."""
    status = Status.RemoteNotConfigured


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when the remote store cannot be reached after all retries."""
    status = Status.ServiceUnavailable


class RemoteErrorException(BaseStatusException):
    """Exception raised when the remote store answers with an explicit ``error`` payload."""
    status = Status.RemoteError


class ValidationFailedException(BaseStatusException):
    """Exception raised when a change is missing required fields or carries invalid values."""
    status = Status.ValidationFailed


class ImportInvalidException(BaseStatusException):
    """Exception raised when an import payload does not carry a ``data`` section."""
    status = Status.ImportInvalid
