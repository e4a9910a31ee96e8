"""Unittest base class and fakes for a clean, offline test environment."""
import json
import logging
import os
import re
import shutil
import tempfile
import threading
import time
import unittest
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import google.oauth2.credentials
import httplib2
from googleapiclient.errors import HttpError

from DownloadLedger.core import auth
from DownloadLedger.core.service import LedgerClient
from DownloadLedger.core.sync import Synchronizer
from DownloadLedger.log import log
from DownloadLedger.settings import lib

SPREADSHEET_ID = 'test-spreadsheet-id'
WORKSHEET = 'Downloads'

GOOD_LEDGER: Dict[str, Any] = {
    'spreadsheet': {'id': SPREADSHEET_ID, 'worksheet': WORKSHEET},
}

GOOD_CLIENT_SECRET: Dict[str, Any] = {
    'installed': {
        'client_id': 'client-id.apps.googleusercontent.com',
        'project_id': 'download-ledger-test',
        'client_secret': 'client-secret',
        'auth_uri': 'https://accounts.google.com/o/oauth2/auth',
        'token_uri': 'https://oauth2.googleapis.com/token',
        'redirect_uris': ['http://localhost'],
    }
}

_A1_ROW = re.compile(r'!\$?[A-Z]+\$?(\d+)')


def make_creds(token: str = 'access-token') -> google.oauth2.credentials.Credentials:
    """Return real authorized-user credentials that can be serialized and reloaded."""
    return google.oauth2.credentials.Credentials(
        token=token,
        refresh_token='refresh-token',
        client_id=GOOD_CLIENT_SECRET['installed']['client_id'],
        client_secret=GOOD_CLIENT_SECRET['installed']['client_secret'],
        token_uri=GOOD_CLIENT_SECRET['installed']['token_uri'],
        scopes=auth.DEFAULT_SCOPES,
    )


def http_error(code: int) -> HttpError:
    return HttpError(httplib2.Response({'status': code}), b'{"error": {"message": "fake"}}')


class FakeProvider:
    """Credential provider counting its calls."""

    def __init__(self, creds=None, error: Optional[Exception] = None):
        self.creds = creds if creds is not None else make_creds()
        self.error = error
        self.calls: List[List[str]] = []

    def authorize(self, scopes):
        self.calls.append(list(scopes))
        if self.error:
            raise self.error
        return self.creds


class _Request:
    def __init__(self, func):
        self._func = func

    def execute(self):
        return self._func()


class FakeSheetsService:
    """In-memory stand-in for the Sheets v4 resource.

    Supports ``spreadsheets().values().get`` and ``append``. An append writes its rows
    starting at the first cell of the requested range, overwriting existing cells.
    """

    def __init__(self, rows: Optional[List[List[Any]]] = None):
        self.rows: List[List[Any]] = [list(r) for r in (rows or [])]
        self.get_calls: List[Dict[str, Any]] = []
        self.append_calls: List[Dict[str, Any]] = []
        self.get_errors: List[Exception] = []
        self.append_errors: List[Exception] = []
        self.get_delay: float = 0.0
        self._lock = threading.Lock()

    def spreadsheets(self):
        return self

    def values(self):
        return self

    def get(self, spreadsheetId, range):
        def _execute():
            self.get_calls.append({'spreadsheetId': spreadsheetId, 'range': range})
            if self.get_errors:
                raise self.get_errors.pop(0)
            with self._lock:
                snapshot = [list(r) for r in self.rows]
            if self.get_delay:
                time.sleep(self.get_delay)
            result = {'range': range, 'majorDimension': 'ROWS'}
            if snapshot:
                result['values'] = snapshot
            return result

        return _Request(_execute)

    def append(self, spreadsheetId, range, valueInputOption, insertDataOption, body):
        def _execute():
            self.append_calls.append({
                'spreadsheetId': spreadsheetId,
                'range': range,
                'valueInputOption': valueInputOption,
                'insertDataOption': insertDataOption,
                'body': body,
            })
            if self.append_errors:
                raise self.append_errors.pop(0)
            match = _A1_ROW.search(range)
            if not match:
                raise http_error(400)
            start = int(match.group(1)) - 1
            with self._lock:
                for offset, row in enumerate(body['values']):
                    idx = start + offset
                    while len(self.rows) <= idx:
                        self.rows.append([])
                    self.rows[idx] = list(row)
            return {
                'spreadsheetId': spreadsheetId,
                'updates': {'updatedRange': range, 'updatedRows': len(body['values'])},
            }

        return _Request(_execute)


class FakeObserver:
    """Stand-in for watchdog's Observer that lets tests push events."""

    def __init__(self, start_error: Optional[Exception] = None):
        self.start_error = start_error
        self.handler = None
        self.path = None
        self.recursive = None
        self.alive = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.handler = handler
        self.path = path
        self.recursive = recursive

    def start(self):
        if self.start_error:
            raise self.start_error
        self.alive = True

    def stop(self):
        self.alive = False
        self.stopped = True

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.alive

    def emit(self, event):
        self.handler.dispatch(event)


class BaseTestCase(unittest.TestCase):
    """Base test case with a temporary home and working directory."""

    def setUp(self) -> None:
        """Point the home directory and config path at a fresh temporary directory."""
        self.tmp_dir = Path(tempfile.mkdtemp(prefix='downloadledger_test_'))
        logging.debug(f'Created temporary directory at {self.tmp_dir}')

        self.home_dir = self.tmp_dir / 'home'
        self.home_dir.mkdir()
        self.ledger_path = self.tmp_dir / 'ledger.json'
        self.client_secret_path = self.tmp_dir / 'client_secret.json'

        env = {
            'HOME': str(self.home_dir),
            'USERPROFILE': str(self.home_dir),
            lib.CONFIG_ENV_KEY: str(self.ledger_path),
            lib.CLIENT_SECRET_ENV_KEY: str(self.client_secret_path),
        }
        self.env_patcher = patch.dict(os.environ, env)
        self.env_patcher.start()

        log.setup_logging(enable_stream_handler=False, log_level=logging.DEBUG)
        self.tank = log.get_tank()

    def tearDown(self) -> None:
        self.env_patcher.stop()
        patch.stopall()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)
        logging.debug(f'Removed temporary directory {self.tmp_dir}')

    def write_ledger(self, data: Optional[Dict[str, Any]] = None) -> Path:
        with open(self.ledger_path, 'w', encoding='utf-8') as f:
            json.dump(GOOD_LEDGER if data is None else data, f, indent=4)
        return self.ledger_path

    def write_client_secret(self, data: Optional[Dict[str, Any]] = None) -> Path:
        with open(self.client_secret_path, 'w', encoding='utf-8') as f:
            json.dump(GOOD_CLIENT_SECRET if data is None else data, f, indent=4)
        return self.client_secret_path

    def error_logs(self) -> List[str]:
        return self.tank.get_logs(logging.ERROR)


class BaseSyncTestCase(BaseTestCase):
    """Provides a Synchronizer wired to a fake Sheets service and credential provider."""

    def setUp(self) -> None:
        super().setUp()
        self.location = lib.LedgerLocation(SPREADSHEET_ID, WORKSHEET)
        self.service = FakeSheetsService()
        self.provider = FakeProvider()
        self.cache = auth.CredentialCache(self.home_dir / '.credentials' / lib.CREDS_FILE_NAME, self.provider)
        self.watch_dir = self.tmp_dir / 'Downloads'
        self.watch_dir.mkdir()
        self.factory_calls: List[Any] = []

    def client_factory(self, creds) -> LedgerClient:
        self.factory_calls.append(creds)
        return LedgerClient(self.location, self.service)

    def make_synchronizer(self, **kwargs) -> Synchronizer:
        kwargs.setdefault('client_factory', self.client_factory)
        kwargs.setdefault('poll_interval', 0.05)
        return Synchronizer(self.location, self.cache, **kwargs)

    def ledger_values(self) -> List[Any]:
        return [row[0] if row else None for row in self.service.rows]
