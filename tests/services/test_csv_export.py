"""Tests for the defaulter CSV export."""

import csv
import io
from decimal import Decimal

from dues_kernel.selectors.report_selector import DefaulterRow
from dues_services.csv_export import CSV_HEADER, defaulters_csv, write_defaulters_csv


def _row(**overrides) -> DefaulterRow:
    values = {
        "profile_key": "ama@ntc.edu.gh",
        "index_number": "NTCW/23/002",
        "first_name": "Ama",
        "last_name": "Owusu",
        "program": "Midwifery",
        "hall_id": "h1",
        "hall_name": "Agongo",
        "amount_due": Decimal("20.000000000"),
    }
    values.update(overrides)
    return DefaulterRow(**values)


class TestDefaultersCsv:
    def test_header_only_when_no_defaulters(self):
        assert defaulters_csv([]) == "IndexNumber,FirstName,LastName,Program,Hall,AmountDue,Status\n"

    def test_row_layout(self):
        rows = list(csv.reader(io.StringIO(defaulters_csv([_row()]))))

        assert tuple(rows[0]) == CSV_HEADER
        assert rows[1] == ["NTCW/23/002", "Ama", "Owusu", "Midwifery", "Agongo", "20", "UNPAID"]

    def test_missing_fields_left_blank(self):
        rows = list(
            csv.reader(io.StringIO(defaulters_csv([_row(index_number=None, program=None, hall_name=None)])))
        )
        assert rows[1][0] == ""
        assert rows[1][3] == ""
        # falls back to the hall id when the hall has no name
        assert rows[1][4] == "h1"

    def test_fractional_amount_and_quoting(self):
        rows = list(
            csv.reader(io.StringIO(defaulters_csv([_row(amount_due=Decimal("22.50"), last_name="Owusu, Jr.")])))
        )
        assert rows[1][2] == "Owusu, Jr."
        assert rows[1][5] == "22.5"

    def test_write_returns_row_count(self):
        out = io.StringIO()
        assert write_defaulters_csv([_row(), _row(first_name="Esi")], out) == 2
        assert all(line.endswith("UNPAID") for line in out.getvalue().splitlines()[1:])
