"""
tests/test_file_ingestion_service.py
"""

from __future__ import annotations

import io
import unittest
from datetime import datetime

import openpyxl

from app.services.file_ingestion_service import (
    XLSX_MIME_TYPE,
    EmptyFileError,
    FileIngestor,
    FileTooLargeError,
    TooManyRowsError,
    UnsupportedFileTypeError,
)


def _workbook_bytes(rows: list[list]) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestCsvIngestion(unittest.TestCase):
    def setUp(self) -> None:
        self.ingestor = FileIngestor(max_rows=100, max_file_bytes=1024 * 1024)

    def test_semicolon_delimited_file(self) -> None:
        content = b"RUT;Nombre;Monto\n12345678;Juan;1.500\n\n;;\n11111111; Ana ;200\n"

        parsed = self.ingestor.parse(content, "text/csv", "deudas.csv")

        self.assertEqual(parsed.file_kind, "csv")
        self.assertEqual(parsed.headers, ("RUT", "Nombre", "Monto"))
        self.assertEqual(
            parsed.records,
            [
                {"RUT": "12345678", "Nombre": "Juan", "Monto": "1.500"},
                {"RUT": "11111111", "Nombre": "Ana", "Monto": "200"},
            ],
        )

    def test_comma_delimited_file_with_quotes(self) -> None:
        content = b'RUT,Nombre,Monto\n12345678,"Perez, Juan","1.500,50"\n'

        records = self.ingestor.ingest(content, "text/csv")

        self.assertEqual(records, [{"RUT": "12345678", "Nombre": "Perez, Juan", "Monto": "1.500,50"}])

    def test_cp1252_fallback_and_bom(self) -> None:
        latin = "RUT;Teléfono\n1;é\n".encode("cp1252")
        with_bom = "\ufeffRUT,Nombre\n1,Ana\n".encode("utf-8")

        self.assertEqual(self.ingestor.parse(latin, "text/csv").headers, ("RUT", "Teléfono"))
        self.assertEqual(self.ingestor.parse(with_bom, "text/csv").headers, ("RUT", "Nombre"))

    def test_duplicate_and_trailing_blank_headers(self) -> None:
        parsed = self.ingestor.parse(b"Monto,Monto,\n1,2,\n", "text/csv")

        self.assertEqual(parsed.headers, ("Monto", "Monto_2"))
        self.assertEqual(parsed.records, [{"Monto": "1", "Monto_2": "2"}])

    def test_renamed_duplicate_does_not_shadow_existing_header(self) -> None:
        parsed = self.ingestor.parse(b"a,a,a_2\n1,2,3\n", "text/csv")

        self.assertEqual(parsed.headers, ("a", "a_3", "a_2"))
        self.assertEqual(parsed.records, [{"a": "1", "a_3": "2", "a_2": "3"}])

    def test_blank_middle_header_gets_positional_name(self) -> None:
        parsed = self.ingestor.parse(b"A,,C\n1,2,3\n", "text/csv")

        self.assertEqual(parsed.headers, ("A", "column_2", "C"))

    def test_short_rows_are_padded(self) -> None:
        parsed = self.ingestor.parse(b"A,B,C\n1\n", "text/csv")

        self.assertEqual(parsed.records, [{"A": "1", "B": "", "C": ""}])

    def test_generic_mime_uses_extension(self) -> None:
        parsed = self.ingestor.parse(b"A,B\n1,2\n", "application/octet-stream", "upload.txt")

        self.assertEqual(parsed.file_kind, "csv")


class TestSpreadsheetIngestion(unittest.TestCase):
    def setUp(self) -> None:
        self.ingestor = FileIngestor(max_rows=100, max_file_bytes=1024 * 1024)

    def test_reads_first_sheet_and_coerces_cells(self) -> None:
        content = _workbook_bytes(
            [
                ["RUT", "Nombre", "Monto", "Vencimiento"],
                ["12345678", " Juan ", 1500.0, datetime(2024, 12, 31)],
                [None, None, None, None],
                ["11111111", "Ana", 250.5, "31/12/2024"],
            ]
        )

        parsed = self.ingestor.parse(content, XLSX_MIME_TYPE, "deudas.xlsx")

        self.assertEqual(parsed.file_kind, "xlsx")
        self.assertEqual(parsed.headers, ("RUT", "Nombre", "Monto", "Vencimiento"))
        self.assertEqual(
            parsed.records,
            [
                {"RUT": "12345678", "Nombre": "Juan", "Monto": 1500, "Vencimiento": "2024-12-31"},
                {"RUT": "11111111", "Nombre": "Ana", "Monto": 250.5, "Vencimiento": "31/12/2024"},
            ],
        )

    def test_zip_signature_is_sniffed_as_spreadsheet(self) -> None:
        content = _workbook_bytes([["A"], [1]])

        parsed = self.ingestor.parse(content, "application/octet-stream")

        self.assertEqual(parsed.file_kind, "xlsx")
        self.assertEqual(parsed.records, [{"A": 1}])

    def test_corrupt_spreadsheet_is_rejected(self) -> None:
        with self.assertRaises(UnsupportedFileTypeError):
            self.ingestor.parse(b"PK\x03\x04not really a workbook", XLSX_MIME_TYPE)


class TestIngestionLimits(unittest.TestCase):
    def test_empty_inputs(self) -> None:
        ingestor = FileIngestor(max_rows=10, max_file_bytes=1024)

        with self.assertRaises(EmptyFileError):
            ingestor.parse(b"   \n", "text/csv")
        with self.assertRaises(EmptyFileError):
            ingestor.parse(b"RUT,Nombre\n", "text/csv")

    def test_row_ceiling(self) -> None:
        ingestor = FileIngestor(max_rows=2, max_file_bytes=1024)

        with self.assertRaises(TooManyRowsError) as ctx:
            ingestor.parse(b"A\n1\n2\n3\n", "text/csv")

        self.assertEqual(ctx.exception.row_count, 3)
        self.assertEqual(ctx.exception.code, "too_many_rows")

    def test_size_ceiling(self) -> None:
        ingestor = FileIngestor(max_rows=10, max_file_bytes=10)

        with self.assertRaises(FileTooLargeError):
            ingestor.parse(b"A,B\n1,2\n3,4\n", "text/csv")

    def test_legacy_and_unknown_types(self) -> None:
        ingestor = FileIngestor(max_rows=10, max_file_bytes=1024)
        legacy = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 16

        with self.assertRaises(UnsupportedFileTypeError):
            ingestor.parse(legacy, "application/octet-stream")
        with self.assertRaises(UnsupportedFileTypeError):
            ingestor.parse(b"A\n1\n", "application/octet-stream", "deudas.xls")
        with self.assertRaises(UnsupportedFileTypeError):
            ingestor.parse(b"%PDF-1.4", "application/pdf")


class TestUploadEnvelope(unittest.TestCase):
    def setUp(self) -> None:
        self.ingestor = FileIngestor(max_rows=10, max_file_bytes=10 * 1024 * 1024)

    def test_accepts_csv(self) -> None:
        check = self.ingestor.validate_upload("deudas.csv", "text/csv; charset=utf-8", 120)

        self.assertTrue(check.is_valid)
        self.assertEqual(check.warnings, [])

    def test_rejects_legacy_excel_and_empty_upload(self) -> None:
        check = self.ingestor.validate_upload("deudas.xls", "application/vnd.ms-excel", 0)

        self.assertFalse(check.is_valid)
        self.assertEqual(len(check.errors), 2)

    def test_rejects_unknown_type(self) -> None:
        check = self.ingestor.validate_upload("deudas.pdf", "application/pdf", 10)

        self.assertFalse(check.is_valid)

    def test_warns_on_large_file_and_long_name(self) -> None:
        check = self.ingestor.validate_upload("x" * 120 + ".csv", "text/csv", 6 * 1024 * 1024)

        self.assertTrue(check.is_valid)
        self.assertEqual(len(check.warnings), 2)


if __name__ == "__main__":
    unittest.main()
