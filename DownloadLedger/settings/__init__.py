"""
Settings package for DownloadLedger.

- :mod:`DownloadLedger.settings.lib` – Path resolution, ledger.json schema validation and client secret loading.
"""
