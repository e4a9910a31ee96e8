"""Settings library for the ledger and authentication configuration.

Provides:
    - Schema validation for the ledger.json structure.
    - Resolution of the config, client secret and credential cache paths.
    - Loading of ledger.json and client_secret.json into typed values.
"""

import copy
import json
import logging
import os
import pathlib
import shutil
from dataclasses import dataclass
from typing import Dict, Any, Optional, List

from ..status import status

app_name: str = 'DownloadLedger'

CONFIG_ENV_KEY: str = 'DOWNLOAD_LEDGER_CONFIG'
CLIENT_SECRET_ENV_KEY: str = 'DOWNLOAD_LEDGER_CLIENT_SECRET'

CONFIG_FILE_NAME: str = 'ledger.json'
CREDS_FILE_NAME: str = 'sheets.googleapis.com-download-ledger.json'

# Only kinds that mean the file is complete
WATCH_EVENT_TYPES: List[str] = ['closed', 'moved']

LEDGER_SCHEMA: Dict[str, Any] = {
    'spreadsheet': {
        'type': dict,
        'required': True,
        'item_schema': {
            'id': {'type': str, 'required': True},
            'worksheet': {'type': str, 'required': True},
        }
    },
    'watch': {
        'type': dict,
        'required': False,
        'item_schema': {
            'directory': {'type': str, 'required': False, 'default': '~/Downloads'},
            'extension': {'type': str, 'required': False, 'default': '.torrent'},
            'events': {'type': list, 'required': False, 'default': ['closed', 'moved'],
                       'allowed_values': WATCH_EVENT_TYPES},
        }
    },
    'service': {
        'type': dict,
        'required': False,
        'item_schema': {
            'timeout': {'type': (int, float), 'required': False, 'default': 60},
        }
    },
}


@dataclass(frozen=True)
class LedgerLocation:
    """The spreadsheet and worksheet new rows are appended to."""
    spreadsheet_id: str
    worksheet: str


@dataclass(frozen=True)
class WatchConfig:
    """Where to watch and which events count as a finished download."""
    directory: pathlib.Path
    extension: str
    events: tuple


def _validate_section(name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate one ledger.json section against its item schema.

    Args:
        name: Name of the section, used in error messages.
        section: Section data loaded from ledger.json.
        item_schema: Mapping of keys to their 'type', 'required' and 'allowed_values' specs.

    Raises:
        status.LedgerConfigInvalidException: If a key is missing, unknown or of the wrong type.
    """
    logging.debug(f'Validating "{name}" section.')
    unknown = set(section.keys()) - set(item_schema.keys())
    if unknown:
        raise status.LedgerConfigInvalidException(
            f'Unknown keys in "{name}": {", ".join(sorted(unknown))}.')

    for key, specs in item_schema.items():
        if key not in section:
            if specs.get('required'):
                raise status.LedgerConfigInvalidException(f'Missing required key "{name}.{key}".')
            continue

        value = section[key]
        # bool is an int subclass, never a valid timeout or name
        if isinstance(value, bool) or not isinstance(value, specs['type']):
            raise status.LedgerConfigInvalidException(
                f'"{name}.{key}" must be {specs["type"]}, got {type(value)}.')
        if isinstance(value, str) and not value.strip():
            raise status.LedgerConfigInvalidException(f'"{name}.{key}" must not be empty.')

        allowed = specs.get('allowed_values')
        if allowed and isinstance(value, list):
            invalid = [v for v in value if v not in allowed]
            if invalid or not value:
                raise status.LedgerConfigInvalidException(
                    f'"{name}.{key}" values must be a non-empty subset of {allowed}.')


class ConfigPaths:
    """Resolve the application's file paths.

    The ledger config defaults to ``ledger.json`` in the working directory, the client
    secret and the cached credential live in the hidden ``~/.credentials`` directory.
    Both config paths can be overridden by environment variables.
    """

    def __init__(self) -> None:
        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.ledger_template: pathlib.Path = self.template_dir / 'ledger.json.template'

        self.auth_dir: pathlib.Path = pathlib.Path.home() / '.credentials'
        self.creds_path: pathlib.Path = self.auth_dir / CREDS_FILE_NAME

        env_ledger = os.environ.get(CONFIG_ENV_KEY)
        self.ledger_path: pathlib.Path = (
            pathlib.Path(env_ledger) if env_ledger else pathlib.Path.cwd() / CONFIG_FILE_NAME
        )

        env_secret = os.environ.get(CLIENT_SECRET_ENV_KEY)
        self.client_secret_path: pathlib.Path = (
            pathlib.Path(env_secret) if env_secret else self.auth_dir / 'client_secret.json'
        )
        logging.debug(f'Using ledger config "{self.ledger_path}" and credentials in "{self.auth_dir}"')

    def write_ledger_template(self, overwrite: bool = False) -> pathlib.Path:
        """Copy the default ledger.json template to the ledger path.

        Args:
            overwrite: Replace an existing ledger.json.

        Returns:
            The path written.

        Raises:
            FileNotFoundError: If the ledger template file is missing.
            FileExistsError: If ledger.json exists and overwrite is False.
        """
        if not self.ledger_template.exists():
            msg: str = f'Ledger template not found: {self.ledger_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if self.ledger_path.exists() and not overwrite:
            raise FileExistsError(f'{self.ledger_path} already exists.')

        logging.debug(f'Copying ledger template to {self.ledger_path}')
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy(self.ledger_template, self.ledger_path)
        return self.ledger_path


class SettingsAPI(ConfigPaths):
    """
    Loads and validates ledger.json and client_secret.json.

    The ledger config is read once on construction; a missing or malformed file is a
    fatal startup error.
    """
    required_client_secret_keys: List[str] = ['client_id', 'client_secret', 'auth_uri', 'token_uri']

    def __init__(self, ledger_path: Optional[str] = None, client_secret_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the ledger data.

        Args:
            ledger_path: Optional path to a custom ledger.json file.
            client_secret_path: Optional path to a custom client_secret.json file.

        Raises:
            status.LedgerConfigNotFoundException: If ledger.json is missing.
            status.LedgerConfigInvalidException: If ledger.json is malformed.
        """
        super().__init__()

        self.ledger_path: pathlib.Path = pathlib.Path(ledger_path) if ledger_path else self.ledger_path

        self.client_secret_path: pathlib.Path = (
            pathlib.Path(client_secret_path)
            if client_secret_path
            else self.client_secret_path
        )

        self.ledger_data: Dict[str, Any] = {}
        self.client_secret_data: Dict[str, Any] = {}

        self.load_ledger()

    def load_ledger(self) -> Dict[str, Any]:
        """Load ledger.json from disk and validate against schema.

        Returns:
            The loaded ledger data dictionary.

        Raises:
            status.LedgerConfigNotFoundException: If ledger.json file is missing.
            status.LedgerConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading ledger from "{self.ledger_path}"')
        if not self.ledger_path.exists():
            raise status.LedgerConfigNotFoundException(str(self.ledger_path))

        try:
            with self.ledger_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except (OSError, ValueError) as ex:
            raise status.LedgerConfigInvalidException(f'{self.ledger_path}: {ex}') from ex

        self.validate_ledger_data(data)
        self.ledger_data = data
        return self.ledger_data

    def load_client_secret(self) -> Dict[str, Any]:
        """Load client_secret.json from disk and validate required OAuth fields.

        Returns:
            The loaded client secret data dictionary.

        Raises:
            status.ClientSecretNotFoundException: If client_secret.json file is missing.
            status.ClientSecretInvalidException: If JSON parsing or required fields are missing.
        """
        logging.debug(f'Loading client_secret from "{self.client_secret_path}"')
        if not self.client_secret_path.exists():
            raise status.ClientSecretNotFoundException(str(self.client_secret_path))
        try:
            with self.client_secret_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except (OSError, ValueError) as ex:
            raise status.ClientSecretInvalidException(str(ex)) from ex

        self.validate_client_secret(data)
        self.client_secret_data = data
        return self.client_secret_data

    def validate_client_secret(self, data=None) -> str:
        """Validate that the client configuration contains required OAuth credentials.

        Args:
            data (dict, optional): Client secret data to validate. Defaults to loaded client_secret_data.

        Returns:
            str: Section key used ('installed' or 'web').

        Raises:
            status.ClientSecretInvalidException: If no valid client_secret section exists or required fields are missing.
        """
        if data is None:
            data = self.client_secret_data

        if not isinstance(data, dict):
            raise status.ClientSecretInvalidException('Client secret must be a JSON object.')

        # Determine which section to use: prefer 'installed', then 'web'
        key = next((k for k in ('installed', 'web') if k in data), None)
        if not key:
            raise status.ClientSecretInvalidException('Missing "installed" or "web" section in client_secret.')

        logging.debug(f'Found "{key}" section in client_secret.')

        config_section: Dict[str, Any] = data[key]
        missing: List[str] = [k for k in self.required_client_secret_keys if k not in config_section]
        if missing:
            raise status.ClientSecretInvalidException(
                f'Missing required fields in the \'{key}\' section: {missing}.'
            )
        return key

    def validate_ledger_data(self, data: Dict[str, Any] = None) -> None:
        """Validate ledger data against the defined LEDGER_SCHEMA.

        Args:
            data (dict, optional): Ledger data to validate. Defaults to self.ledger_data.

        Raises:
            status.LedgerConfigInvalidException: If a required section is missing or validation fails.
        """
        if data is None:
            data = self.ledger_data
        if not isinstance(data, dict) or not data:
            raise status.LedgerConfigInvalidException('Ledger data must be a non-empty JSON object.')

        logging.debug('Validating ledger data against schema.')
        for field, specs in LEDGER_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise status.LedgerConfigInvalidException(f'Missing required field: {field}')

            if field not in data:
                continue

            if not isinstance(data[field], specs['type']):
                raise status.LedgerConfigInvalidException(
                    f'Field "{field}" must be {specs["type"]}, got {type(data[field])}.')

            _validate_section(field, data[field], specs['item_schema'])

        logging.debug('Ledger data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a section with schema defaults filled in.

        Args:
            section_name: Section name ('client_secret' or key from ledger schema).

        Returns:
            A copied dict of the requested section data.

        Raises:
            KeyError: If section_name is not a known section.
        """
        if section_name == 'client_secret':
            return copy.deepcopy(self.client_secret_data)

        specs = LEDGER_SCHEMA[section_name]
        data = copy.deepcopy(self.ledger_data.get(section_name, {}))
        for key, item in specs['item_schema'].items():
            if key not in data and 'default' in item:
                data[key] = copy.deepcopy(item['default'])
        return data

    def get_location(self) -> LedgerLocation:
        """Return the configured spreadsheet location."""
        section = self.get_section('spreadsheet')
        return LedgerLocation(spreadsheet_id=section['id'], worksheet=section['worksheet'])

    def get_watch_config(self) -> WatchConfig:
        """Return the configured watch directory, file extension and terminal events."""
        section = self.get_section('watch')
        extension = section['extension']
        if not extension.startswith('.'):
            extension = f'.{extension}'
        return WatchConfig(
            directory=pathlib.Path(section['directory']).expanduser(),
            extension=extension,
            events=tuple(section['events']),
        )

    def get_timeout(self) -> float:
        """Return the HTTP timeout in seconds used for Sheets API calls."""
        return float(self.get_section('service')['timeout'])
