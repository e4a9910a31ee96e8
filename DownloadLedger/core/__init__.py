"""
Core package for DownloadLedger.

This package includes:

- :mod:`DownloadLedger.core.auth` – Google OAuth2 credential cache and the interactive credential provider.
- :mod:`DownloadLedger.core.service` – Google Sheets client reading the ledger column and appending rows.
- :mod:`DownloadLedger.core.planner` – A1 range computation for the next ledger row.
- :mod:`DownloadLedger.core.events` – Filesystem events and the finished-download filter.
- :mod:`DownloadLedger.core.sync` – The watch loop serializing appends to the ledger.
"""
