"""
Unit tests for spreadsheet parsing.
"""

import io

import pandas as pd
import pytest

from src.exceptions import FileParseError, UnsupportedFormatError
from src.ingestion.parsers import detect_file_format, parse_spreadsheet


class TestDetectFileFormat:
    @pytest.mark.parametrize(
        "file_name,expected",
        [("roster.csv", "csv"), ("Roster.XLSX", "xlsx"), ("old.xls", "xls")],
    )
    def test_supported(self, file_name, expected):
        assert detect_file_format(file_name) == expected

    def test_unsupported(self):
        with pytest.raises(UnsupportedFormatError):
            detect_file_format("roster.json")


class TestParseCsv:
    """Tests for CSV uploads."""

    def test_rows_keyed_by_header(self):
        buf = b"Email,Full Name,Roles\na@studio.io, Alice ,Developer|Investor\n"
        rows = parse_spreadsheet(buf, "csv")

        assert rows == [
            {"Email": "a@studio.io", "Full Name": "Alice", "Roles": "Developer|Investor"}
        ]

    def test_values_stay_text(self):
        rows = parse_spreadsheet(b"Email,Badge\na@studio.io,00042\n", "csv")
        assert rows[0]["Badge"] == "00042"

    def test_blank_rows_dropped(self):
        rows = parse_spreadsheet(b"Email,Name\na@studio.io,A\n,\nb@studio.io,B\n", "csv")
        assert [r["Email"] for r in rows] == ["a@studio.io", "b@studio.io"]

    def test_bom_and_text_input(self):
        rows = parse_spreadsheet("\ufeffEmail,Name\na@studio.io,A\n", "csv")
        assert "Email" in rows[0]

    def test_latin1_fallback(self):
        buf = "Email,Name\na@studio.io,Jos\xe9\n".encode("latin-1")
        rows = parse_spreadsheet(buf, "csv")
        assert rows[0]["Name"] == "Jos\xe9"

    def test_empty_buffer(self):
        with pytest.raises(FileParseError):
            parse_spreadsheet(b"", "csv")

    def test_header_only(self):
        with pytest.raises(FileParseError):
            parse_spreadsheet(b"Email,Name\n", "csv")

    def test_max_rows(self):
        buf = b"Email\na@studio.io\nb@studio.io\nc@studio.io\n"
        with pytest.raises(FileParseError, match="maximum"):
            parse_spreadsheet(buf, "csv", max_rows=2)

    def test_unsupported_format(self):
        with pytest.raises(UnsupportedFormatError):
            parse_spreadsheet(b"x", "pdf")


class TestParseExcel:
    """Tests for XLSX uploads."""

    def test_xlsx(self):
        df = pd.DataFrame(
            [
                {"Email": "a@studio.io", "Name": "Alice", "Badge": "B-1"},
                {"Email": "b@studio.io", "Name": "Bob", "Badge": ""},
            ]
        )
        out = io.BytesIO()
        df.to_excel(out, index=False, engine="openpyxl")

        rows = parse_spreadsheet(out.getvalue(), "xlsx")

        assert len(rows) == 2
        assert rows[0] == {"Email": "a@studio.io", "Name": "Alice", "Badge": "B-1"}
        assert rows[1]["Badge"] == ""

    def test_corrupt_xlsx(self):
        with pytest.raises(FileParseError):
            parse_spreadsheet(b"definitely not a zip file", "xlsx")
