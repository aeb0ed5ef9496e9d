"""
dues_services -- facade over the dues kernel.

Dependency direction:
    dues_services/ -> dues_kernel/  (allowed)
    dues_kernel/   -> dues_services/ (FORBIDDEN)
"""

from dues_services.csv_export import CSV_HEADER, defaulters_csv, write_defaulters_csv
from dues_services.ledger_api import DuesLedgerAPI, error_payload

__all__ = [
    "CSV_HEADER",
    "DuesLedgerAPI",
    "defaulters_csv",
    "error_payload",
    "write_defaulters_csv",
]
