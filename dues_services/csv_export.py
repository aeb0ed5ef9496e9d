"""
Defaulter CSV export.

One row per defaulter, columns fixed by the bursary's spreadsheet template.
The Status column is always UNPAID: the export only ever lists defaulters.
"""

import csv
import io
from collections.abc import Iterable
from typing import TextIO

from dues_kernel.selectors.report_selector import DefaulterRow

CSV_HEADER = ("IndexNumber", "FirstName", "LastName", "Program", "Hall", "AmountDue", "Status")
UNPAID_STATUS = "UNPAID"


def defaulter_csv_row(row: DefaulterRow) -> list[str]:
    return [
        row.index_number or "",
        row.first_name,
        row.last_name,
        row.program or "",
        row.hall_name or row.hall_id or "",
        format(row.amount_due.normalize(), "f"),
        UNPAID_STATUS,
    ]


def write_defaulters_csv(defaulters: Iterable[DefaulterRow], out: TextIO) -> int:
    """
    Write the header and one line per defaulter to ``out``.

    Returns:
        Number of data rows written.
    """
    writer = csv.writer(out, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    count = 0
    for row in defaulters:
        writer.writerow(defaulter_csv_row(row))
        count += 1
    return count


def defaulters_csv(defaulters: Iterable[DefaulterRow]) -> str:
    buffer = io.StringIO()
    write_defaulters_csv(defaulters, buffer)
    return buffer.getvalue()
