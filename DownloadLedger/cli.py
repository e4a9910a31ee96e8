"""
Command-line interface for DownloadLedger.

Commands:
- run: Watch the download directory and append finished downloads to the ledger
- init: Write a template ledger.json to fill in
- auth: Sign in (if needed) and cache the credential
- sign-out: Delete the cached credential
- show: Print the rows currently in the ledger

Usage:
    download-ledger run [--directory DIR]
    download-ledger init [--force]
    download-ledger auth
    download-ledger sign-out
    download-ledger show

Environment Variables:
    DOWNLOAD_LEDGER_CONFIG: Path to ledger.json (default: ./ledger.json)
    DOWNLOAD_LEDGER_CLIENT_SECRET: Path to client_secret.json (default: ~/.credentials/client_secret.json)
"""

import argparse
import logging
import pathlib
import sys

from .core import auth
from .core.events import EventFilter
from .core.planner import RangePlanner
from .core.service import LedgerClient, get_service
from .core.sync import Synchronizer
from .log import log
from .settings import lib
from .status import status


def _load_settings(args: argparse.Namespace) -> lib.SettingsAPI:
    return lib.SettingsAPI(ledger_path=args.config, client_secret_path=args.client_secret)


def _credential_cache(settings: lib.SettingsAPI) -> auth.CredentialCache:
    return auth.CredentialCache(settings.creds_path, auth.InstalledAppFlowProvider(settings))


def cmd_run(args: argparse.Namespace) -> int:
    """Watch for finished downloads until interrupted or the watch fails."""
    settings = _load_settings(args)
    location = settings.get_location()
    watch = settings.get_watch_config()
    directory = args.directory or watch.directory

    synchronizer = Synchronizer(
        location,
        _credential_cache(settings),
        event_filter=EventFilter(watch.extension, watch.events),
        planner=RangePlanner(location.worksheet),
        timeout=settings.get_timeout(),
    )

    logging.info(f'Recording to spreadsheet "{location.spreadsheet_id}", worksheet "{location.worksheet}".')
    try:
        synchronizer.run(directory)
    except KeyboardInterrupt:
        logging.info('Interrupted.')
    finally:
        logging.info(f'{synchronizer.appended} recorded, {synchronizer.failed} failed.')
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Write the ledger.json template."""
    paths = lib.ConfigPaths()
    if args.config:
        paths.ledger_path = pathlib.Path(args.config)
    try:
        path = paths.write_ledger_template(overwrite=args.force)
    except FileExistsError as ex:
        print(f'{ex} Use --force to overwrite.', file=sys.stderr)
        return 1
    except FileNotFoundError as ex:
        print(f'Error: {ex}', file=sys.stderr)
        return 1
    print(f'Wrote {path}. Fill in the spreadsheet id and worksheet name.')
    return 0


def cmd_auth(args: argparse.Namespace) -> int:
    """Obtain and cache the credential."""
    settings = _load_settings(args)
    creds = _credential_cache(settings).obtain()
    print(f'Credential cached in {settings.creds_path}')
    print(auth.describe(creds))
    return 0


def cmd_sign_out(args: argparse.Namespace) -> int:
    """Delete the cached credential."""
    paths = lib.ConfigPaths()
    cache = auth.CredentialCache(paths.creds_path, provider=None)
    if cache.clear():
        print(f'Deleted {paths.creds_path}')
    else:
        print('Not signed in.')
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Print the ledger rows."""
    settings = _load_settings(args)
    location = settings.get_location()
    creds = _credential_cache(settings).obtain()
    client = LedgerClient(location, get_service(creds, timeout=settings.get_timeout()))

    rows = client.read_all()
    if not rows:
        print('No data found.')
        return 0
    for idx, row in enumerate(rows, start=1):
        print(f'{idx:>5}  {row[0] if row else ""}')
    print(f'{len(rows)} rows.')
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='download-ledger',
        description='Record finished downloads in a Google Sheets ledger.',
    )
    parser.add_argument('--config', help='Path to ledger.json')
    parser.add_argument('--client-secret', help='Path to the Google OAuth client_secret.json')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Watch the download directory')
    run_parser.add_argument('--directory', help='Directory to watch (overrides ledger.json)')
    run_parser.set_defaults(func=cmd_run)

    init_parser = subparsers.add_parser('init', help='Write a template ledger.json')
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing ledger.json')
    init_parser.set_defaults(func=cmd_init)

    auth_parser = subparsers.add_parser('auth', help='Sign in and cache the credential')
    auth_parser.set_defaults(func=cmd_auth)

    sign_out_parser = subparsers.add_parser('sign-out', help='Delete the cached credential')
    sign_out_parser.set_defaults(func=cmd_sign_out)

    show_parser = subparsers.add_parser('show', help='Print the ledger rows')
    show_parser.set_defaults(func=cmd_show)

    return parser


def main(argv=None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        log.set_logging_level(logging.DEBUG)

    try:
        return args.func(args)
    except status.BaseStatusException as ex:
        print(f'Error: {ex}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
