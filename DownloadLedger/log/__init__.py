"""
Logging subsystem for DownloadLedger.

Modules:

- :mod:`DownloadLedger.log.log` – Root logger setup and an in-memory handler that keeps
  formatted records available to the operator.
"""
