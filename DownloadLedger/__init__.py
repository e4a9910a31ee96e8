"""
DownloadLedger: record finished downloads as rows of a Google Sheets ledger.

This package provides:

- :mod:`DownloadLedger.core` – Credential caching, the Sheets client, range planning, event filtering and the watch loop.
- :mod:`DownloadLedger.settings` – Config path resolution and ledger.json validation.
- :mod:`DownloadLedger.status` – Status codes and the exception taxonomy.
- :mod:`DownloadLedger.log` – Logging setup with an in-memory record tank.

Use :func:`DownloadLedger.exec_` to run the command-line interface.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('DownloadLedger requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'DownloadLedger: record finished downloads in a Google Sheets ledger.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Run the command-line interface and exit with its return code."""
    from . import cli
    sys.exit(cli.main())


if __name__ == '__main__':
    exec_()
