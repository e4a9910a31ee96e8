"""Google Sheets API integration.

Provides :func:`get_service` to build a Sheets v4 client with a bounded socket timeout,
and :class:`LedgerClient`, which reads the ledger column and appends single rows.
Every call is a network round trip; no ledger state is cached locally.
"""

import http.client
import logging
import socket
import ssl
from typing import Any, Dict, List, Optional, Sequence, Type

import google.auth.exceptions
import google_auth_httplib2
import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .planner import RangeDescriptor, read_range
from ..settings.lib import LedgerLocation
from ..status import status

DEFAULT_TIMEOUT: float = 60.0

VALUE_INPUT_OPTION: str = 'USER_ENTERED'
INSERT_DATA_OPTION: str = 'OVERWRITE'


def get_service(creds: Any, timeout: float = DEFAULT_TIMEOUT) -> Any:
    """
    Builds a Google Sheets service client.

    Args:
        creds: Authorized google-auth credentials.
        timeout: Socket timeout in seconds for every request.

    Returns:
        The Sheets API Resource.

    Raises:
        status.CredentialUnavailableException: If the client cannot be built from the credentials.
    """
    http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout))
    try:
        service: Any = build('sheets', 'v4', http=http, cache_discovery=False)
    except Exception as ex:
        raise status.CredentialUnavailableException(f'Cannot create Sheets client: {ex}') from ex
    logging.debug('Google Sheets service client created successfully.')
    return service


def _to_status_exception(ex: Exception, exc_cls: Type[status.BaseStatusException],
                         spreadsheet_id: str) -> status.BaseStatusException:
    """Translate a transport or API error into the given status exception."""
    if isinstance(ex, HttpError):
        stat: Optional[int] = ex.resp.status if ex.resp else None
        if stat == 404:
            return exc_cls(f'Spreadsheet "{spreadsheet_id}" not found (HTTP 404).')
        if stat == 403:
            return exc_cls(
                f'Access denied (HTTP 403) for spreadsheet "{spreadsheet_id}". '
                'Please share the sheet with your authenticated Google account.'
            )
        if stat == 401:
            return exc_cls(
                f'Not authorized (HTTP 401) for spreadsheet "{spreadsheet_id}". '
                'The cached credential may have expired; sign out and authenticate again.'
            )
        if stat == 400:
            return exc_cls(f'Request rejected (HTTP 400): {ex}')
        return exc_cls(f'Error accessing spreadsheet "{spreadsheet_id}": {ex}')
    if isinstance(ex, google.auth.exceptions.RefreshError):
        return exc_cls(f'Credential refresh failed: {ex}')
    if isinstance(ex, (socket.timeout, TimeoutError)):
        return exc_cls(f'Timeout error: {ex}')
    if isinstance(ex, ssl.SSLError):
        return exc_cls(f'SSL error: {ex}')
    if isinstance(ex, http.client.HTTPException):
        return exc_cls(f'Connection dropped ({type(ex).__name__}): {ex}')
    return exc_cls(f'{type(ex).__name__}: {ex}')


# Errors a Sheets request may raise that are reported rather than crashing the caller
TRANSPORT_ERRORS = (
    HttpError,
    google.auth.exceptions.GoogleAuthError,
    httplib2.HttpLib2Error,
    http.client.HTTPException,  # IncompleteRead, BadStatusLine after httplib2 gives up
    OSError,  # socket.timeout, ssl.SSLError and connection errors
)


class LedgerClient:
    """Reads and appends rows of one worksheet of one spreadsheet."""

    def __init__(self, location: LedgerLocation, service: Any) -> None:
        self.location = location
        self.service = service

    def read_all(self) -> List[List[Any]]:
        """
        Fetch every value of the ledger column.

        Returns:
            The rows as a list of lists. An empty sheet yields an empty list.

        Raises:
            status.LedgerReadException: On transport or authorization failure.
        """
        range_ = read_range(self.location.worksheet)
        logging.debug(f'Reading ledger range "{range_}".')
        try:
            result: Dict[str, Any] = self.service.spreadsheets().values().get(
                spreadsheetId=self.location.spreadsheet_id,
                range=range_,
            ).execute()
        except TRANSPORT_ERRORS as ex:
            raise _to_status_exception(ex, status.LedgerReadException, self.location.spreadsheet_id) from ex

        values: List[List[Any]] = result.get('values', []) if result else []
        logging.debug(f'Total ledger rows fetched: {len(values)}.')
        return values

    def append(self, row: Sequence[Any], target: RangeDescriptor) -> Dict[str, Any]:
        """
        Write one row at ``target``.

        Values are parsed by the sheet as if typed by a user and existing cells are
        overwritten rather than shifted down. Not retried on failure.

        Args:
            row: The cell values of the new row.
            target: Where the row goes.

        Returns:
            The API's append response.

        Raises:
            status.LedgerWriteException: On transport, authorization or range failure.
        """
        body: Dict[str, Any] = {
            'range': target.a1,
            'majorDimension': 'ROWS',
            'values': [list(row)],
        }
        logging.debug(f'Appending {list(row)} at "{target.a1}".')
        try:
            response: Dict[str, Any] = self.service.spreadsheets().values().append(
                spreadsheetId=self.location.spreadsheet_id,
                range=target.a1,
                valueInputOption=VALUE_INPUT_OPTION,
                insertDataOption=INSERT_DATA_OPTION,
                body=body,
            ).execute()
        except TRANSPORT_ERRORS as ex:
            raise _to_status_exception(ex, status.LedgerWriteException, self.location.spreadsheet_id) from ex

        updated = (response or {}).get('updates', {}).get('updatedRange', target.a1)
        logging.debug(f'Ledger updated range "{updated}".')
        return response or {}
