"""Status definitions and exceptions for DownloadLedger.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions for configuration, credentials, ledger access and watching

Errors raised while appending a single entry (credential and ledger errors) are
reported and the watcher keeps running. Configuration and watch errors are fatal.
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()

    # Config status
    LedgerConfigNotFound = enum.auto()
    LedgerConfigInvalid = enum.auto()

    # Authentication status
    ClientSecretNotFound = enum.auto()
    ClientSecretInvalid = enum.auto()
    CredentialUnavailable = enum.auto()

    # Ledger access status
    LedgerRead = enum.auto()
    LedgerWrite = enum.auto()

    # Watch status
    WatchSubsystem = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status.',

    Status.LedgerConfigNotFound: 'Could not find the ledger config.',
    Status.LedgerConfigInvalid: 'The ledger config seems to be incomplete, or contains invalid values.',

    Status.ClientSecretNotFound: 'Could not find the google client secret. Have you set up a valid Google client secret?',
    Status.ClientSecretInvalid: 'Could not verify the client secret. Have you set up a valid Google client secret?',
    Status.CredentialUnavailable: 'Could not obtain credentials. Try signing in again to your Google account.',

    Status.LedgerRead: 'Could not read the ledger spreadsheet.',
    Status.LedgerWrite: 'Could not append to the ledger spreadsheet.',

    Status.WatchSubsystem: 'The download directory can no longer be watched.',
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
    """Base exception for status-based errors in DownloadLedger.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus
    fatal: bool = False

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.debug(f'{self.__class__.__name__}: {exception_message}')


class LedgerConfigNotFoundException(BaseStatusException):
    """Exception raised when the ledger configuration file cannot be found."""
    status = Status.LedgerConfigNotFound
    fatal = True


class LedgerConfigInvalidException(BaseStatusException):
    """Exception raised when the ledger configuration is invalid or malformed."""
    status = Status.LedgerConfigInvalid
    fatal = True


class ClientSecretNotFoundException(BaseStatusException):
    """Exception raised when the Google OAuth client secret file cannot be found."""
    status = Status.ClientSecretNotFound
    fatal = True


class ClientSecretInvalidException(BaseStatusException):
    """Exception raised when the Google OAuth client secret is invalid or malformed."""
    status = Status.ClientSecretInvalid
    fatal = True


class CredentialUnavailableException(BaseStatusException):
    """Exception raised when no credential could be loaded, authorized or stored."""
    status = Status.CredentialUnavailable


class LedgerReadException(BaseStatusException):
    """Exception raised when reading the ledger values fails."""
    status = Status.LedgerRead


class LedgerWriteException(BaseStatusException):
    """Exception raised when appending a row to the ledger fails."""
    status = Status.LedgerWrite


class WatchSubsystemException(BaseStatusException):
    """Exception raised when the filesystem subscription cannot be established or is lost."""
    status = Status.WatchSubsystem
    fatal = True
