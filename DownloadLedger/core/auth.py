"""
Google OAuth2 authentication and credential caching.

The :class:`CredentialCache` owns the one credential the process uses. It reads the
cached authorized-user file, and only when that is missing or unreadable asks its
:class:`CredentialProvider` to authorize, persisting the result for later runs.
"""

import json
import logging
import os
import pathlib
import threading
from typing import Optional, Protocol, Sequence

import google.oauth2.credentials
import google_auth_oauthlib.flow

from ..status import status

DEFAULT_SCOPES = ['https://www.googleapis.com/auth/spreadsheets', ]


class CredentialProvider(Protocol):
    """Anything able to run an authorization exchange for the given scopes."""

    def authorize(self, scopes: Sequence[str]) -> google.oauth2.credentials.Credentials:
        ...


class InstalledAppFlowProvider:
    """Authorize interactively through the browser using the installed-app OAuth flow."""

    def __init__(self, settings, port: int = 0, open_browser: bool = True):
        self.settings = settings
        self.port = port
        self.open_browser = open_browser

    def authorize(self, scopes: Sequence[str]) -> google.oauth2.credentials.Credentials:
        """
        Run the OAuth flow and return the resulting credentials.

        Raises:
            status.ClientSecretNotFoundException: If client_secret.json is missing.
            status.ClientSecretInvalidException: If client_secret.json is malformed.
            status.CredentialUnavailableException: If the flow fails or is aborted.
        """
        client_config = self.settings.load_client_secret()

        logging.info('Starting OAuth flow, complete the sign-in in your browser...')
        flow = google_auth_oauthlib.flow.InstalledAppFlow.from_client_config(client_config, scopes=list(scopes))
        try:
            creds = flow.run_local_server(port=self.port, open_browser=self.open_browser)
        except Exception as ex:
            raise status.CredentialUnavailableException(f'OAuth flow failed: {ex}') from ex

        if not creds or not creds.token:
            raise status.CredentialUnavailableException('Authentication was cancelled or no credentials obtained.')
        return creds


class CredentialCache:
    """Loads, stores and hands out the process' OAuth2 credential.

    The cached file is trusted without expiry validation. An expired token shows up as
    an authentication error from the Sheets API, not here.
    """

    def __init__(self, path: pathlib.Path, provider: CredentialProvider,
                 scopes: Sequence[str] = tuple(DEFAULT_SCOPES)):
        self.path = pathlib.Path(path)
        self.provider = provider
        self.scopes = list(scopes)

        self._lock = threading.Lock()
        self._creds: Optional[google.oauth2.credentials.Credentials] = None

    def obtain(self) -> google.oauth2.credentials.Credentials:
        """
        Return the credential, authorizing through the provider on a cache miss.

        Raises:
            status.CredentialUnavailableException: If the cache directory cannot be created,
                the credential cannot be stored, or the provider fails.
        """
        with self._lock:
            if self._creds is not None:
                return self._creds

            self._ensure_dir()

            creds = self._load()
            if creds is None:
                logging.debug('No usable cached credentials. Asking the provider to authorize...')
                try:
                    creds = self.provider.authorize(self.scopes)
                except status.CredentialUnavailableException:
                    raise
                except Exception as ex:
                    raise status.CredentialUnavailableException(f'Authorization failed: {ex}') from ex

                if creds is None:
                    raise status.CredentialUnavailableException('The provider returned no credentials.')
                self.save(creds)

            self._creds = creds
            return creds

    def _ensure_dir(self) -> None:
        directory = self.path.parent
        if directory.exists():
            return
        logging.debug(f'Creating credentials directory: {directory}')
        try:
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as ex:
            raise status.CredentialUnavailableException(
                f'Cannot create credentials directory "{directory}": {ex}') from ex

    def _load(self) -> Optional[google.oauth2.credentials.Credentials]:
        if not self.path.exists():
            logging.debug(f'Credentials file not found: {self.path}')
            return None

        try:
            logging.debug(f'Loading credentials from {self.path}...')
            creds = google.oauth2.credentials.Credentials.from_authorized_user_file(str(self.path))
        except (OSError, ValueError) as ex:
            # json.JSONDecodeError is a ValueError
            logging.warning(f'Failed to load cached credentials, will re-authenticate: {ex}')
            return None

        logging.debug(f'Credentials loaded successfully. Scopes={creds.scopes}')
        return creds

    def save(self, creds: google.oauth2.credentials.Credentials) -> None:
        """
        Persist the credential as authorized-user JSON, readable by the owner only.

        Raises:
            status.CredentialUnavailableException: If the file cannot be written.
        """
        logging.info(f'Saving credential file to: {self.path}')
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w', encoding='utf-8') as token_file:
                token_file.write(creds.to_json())
        except (OSError, TypeError) as ex:
            raise status.CredentialUnavailableException(f'Unable to cache oauth token: {ex}') from ex

    def clear(self) -> bool:
        """
        Delete the cached credential from memory and disk.

        Returns:
            bool: True if a file was removed.
        """
        with self._lock:
            self._creds = None
            if not self.path.exists():
                logging.debug('No credentials file found. No action taken.')
                return False
            logging.debug(f'Deleting {self.path}...')
            self.path.unlink()
            return True


def describe(creds: google.oauth2.credentials.Credentials) -> str:
    """Return a short, token-free summary of a credential for display."""
    data = json.loads(creds.to_json())
    return json.dumps({
        'client_id': data.get('client_id'),
        'scopes': data.get('scopes'),
        'expiry': data.get('expiry'),
        'has_refresh_token': bool(data.get('refresh_token')),
    }, indent=4)
