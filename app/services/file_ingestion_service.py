"""
app/services/file_ingestion_service.py

Parse uploaded CSV and spreadsheet bytes into ordered flat records.

The ingestor does not interpret field contents; it only turns bytes into
header-keyed rows and enforces the size and row-count ceilings.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from functools import lru_cache
from typing import Any, Iterable, Sequence

import openpyxl

from app.config import get_import_settings
from app.domain.import_records import FlatRecord

logger = logging.getLogger(__name__)

CSV_MIME_TYPES = {"text/csv", "application/csv", "text/plain", "text/x-csv", "application/x-csv"}
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
LEGACY_EXCEL_MIME_TYPE = "application/vnd.ms-excel"
GENERIC_MIME_TYPES = {"application/octet-stream", "binary/octet-stream", ""}

_ZIP_SIGNATURE = b"PK\x03\x04"
_OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_EXTENSION_KINDS = {".csv": "csv", ".txt": "csv", ".xlsx": "xlsx", ".xlsm": "xlsx", ".xls": "xls"}

LARGE_FILE_WARNING_BYTES = 5 * 1024 * 1024
MAX_FILENAME_LENGTH = 100


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ImportInputError(ValueError):
    """
    Raised when an uploaded file cannot be turned into records.
    """

    code = "invalid_input"


class EmptyFileError(ImportInputError):
    code = "empty_file"


class TooManyRowsError(ImportInputError):
    code = "too_many_rows"

    def __init__(self, *, row_count: int, max_rows: int) -> None:
        super().__init__(f"File has {row_count} data rows; the maximum is {max_rows}.")
        self.row_count = row_count
        self.max_rows = max_rows


class UnsupportedFileTypeError(ImportInputError):
    code = "unsupported_file_type"


class FileTooLargeError(ImportInputError):
    code = "file_too_large"

    def __init__(self, *, size: int, max_bytes: int) -> None:
        super().__init__(f"File is {size} bytes; the maximum is {max_bytes} bytes.")
        self.size = size
        self.max_bytes = max_bytes


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedFile:
    """
    Header row plus data rows of one uploaded file.
    """

    headers: tuple[str, ...]
    records: list[FlatRecord]
    file_kind: str


@dataclass(frozen=True)
class UploadCheck:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class FileIngestor:
    """
    Dispatches uploaded bytes to the CSV or spreadsheet parser.
    """

    def __init__(self, *, max_rows: int, max_file_bytes: int) -> None:
        self._max_rows = max(1, max_rows)
        self._max_file_bytes = max(1, max_file_bytes)

    def ingest(
        self,
        file_bytes: bytes,
        mime_type: str | None,
        filename: str | None = None,
    ) -> list[FlatRecord]:
        return self.parse(file_bytes, mime_type, filename).records

    def parse(
        self,
        file_bytes: bytes,
        mime_type: str | None,
        filename: str | None = None,
    ) -> ParsedFile:
        """
        Parse file bytes into headers and records, enforcing input ceilings.
        """

        if len(file_bytes) > self._max_file_bytes:
            raise FileTooLargeError(size=len(file_bytes), max_bytes=self._max_file_bytes)
        if not file_bytes.strip():
            raise EmptyFileError("Uploaded file is empty.")

        kind = self._detect_kind(file_bytes, mime_type, filename)
        if kind == "xlsx":
            headers, rows = self._read_spreadsheet(file_bytes)
        else:
            headers, rows = self._read_csv(file_bytes)

        if not headers:
            raise EmptyFileError("File has no header row.")
        if not rows:
            raise EmptyFileError("File has a header row but no data rows.")
        if len(rows) > self._max_rows:
            raise TooManyRowsError(row_count=len(rows), max_rows=self._max_rows)

        logger.info(
            "Parsed upload filename=%s kind=%s columns=%d rows=%d",
            filename,
            kind,
            len(headers),
            len(rows),
        )
        return ParsedFile(headers=tuple(headers), records=rows, file_kind=kind)

    def validate_upload(
        self,
        filename: str | None,
        mime_type: str | None,
        size: int,
    ) -> UploadCheck:
        """
        Pre-parse checks on the upload envelope: type, size, and filename.
        """

        errors: list[str] = []
        warnings: list[str] = []
        normalized_mime = (mime_type or "").split(";")[0].strip().lower()
        extension_kind = _extension_kind(filename)

        known_mime = (
            normalized_mime in CSV_MIME_TYPES
            or normalized_mime in {XLSX_MIME_TYPE, LEGACY_EXCEL_MIME_TYPE}
        )
        if extension_kind == "xls":
            errors.append("Legacy .xls workbooks are not supported; save the file as .xlsx or .csv.")
        elif not known_mime and extension_kind is None:
            errors.append(f"Unsupported file type: {mime_type or 'unknown'}. Use CSV or .xlsx.")

        if size <= 0:
            errors.append("Uploaded file is empty.")
        elif size > self._max_file_bytes:
            errors.append(f"File is {size} bytes; the maximum is {self._max_file_bytes} bytes.")
        elif size > LARGE_FILE_WARNING_BYTES:
            warnings.append("File is larger than 5 MB; processing may take a while.")

        if filename and len(filename) > MAX_FILENAME_LENGTH:
            warnings.append(f"Filename is longer than {MAX_FILENAME_LENGTH} characters.")

        return UploadCheck(errors=errors, warnings=warnings)

    # ------------------------------------------------------------------
    # Type detection
    # ------------------------------------------------------------------

    @staticmethod
    def _detect_kind(file_bytes: bytes, mime_type: str | None, filename: str | None) -> str:
        normalized_mime = (mime_type or "").split(";")[0].strip().lower()

        if normalized_mime in CSV_MIME_TYPES:
            return "csv"
        if normalized_mime == XLSX_MIME_TYPE:
            return "xlsx"
        if normalized_mime == LEGACY_EXCEL_MIME_TYPE:
            # Browsers send this for .csv files too.
            return _sniff_binary_kind(file_bytes)
        if normalized_mime in GENERIC_MIME_TYPES:
            extension_kind = _extension_kind(filename)
            if extension_kind == "xls":
                raise UnsupportedFileTypeError("Legacy .xls workbooks are not supported.")
            if extension_kind is not None:
                return extension_kind
            return _sniff_binary_kind(file_bytes)

        raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type}.")

    # ------------------------------------------------------------------
    # Parsers
    # ------------------------------------------------------------------

    def _read_csv(self, file_bytes: bytes) -> tuple[list[str], list[FlatRecord]]:
        text = _decode_text(file_bytes)
        lines = text.splitlines()
        first_line = next((line for line in lines if line.strip()), "")
        delimiter = ";" if first_line.count(";") > first_line.count(",") else ","

        reader = csv.reader(io.StringIO(text), delimiter=delimiter)
        header_values: list[str] | None = None
        for row in reader:
            if any(cell.strip() for cell in row):
                header_values = row
                break
        if header_values is None:
            return [], []

        headers = _dedupe_headers(header_values)
        records: list[FlatRecord] = []
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            records.append(_build_record(headers, (cell.strip() for cell in row)))
        return headers, records

    def _read_spreadsheet(self, file_bytes: bytes) -> tuple[list[str], list[FlatRecord]]:
        try:
            workbook = openpyxl.load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
        except Exception as exc:  # noqa: BLE001
            raise UnsupportedFileTypeError(f"Spreadsheet could not be opened: {exc}") from exc

        try:
            sheet = workbook.worksheets[0] if workbook.worksheets else None
            if sheet is None:
                return [], []

            rows_iter = sheet.iter_rows(values_only=True)
            header_values: Sequence[Any] | None = None
            for row_values in rows_iter:
                if row_values and any(not _is_empty_cell(value) for value in row_values):
                    header_values = row_values
                    break
            if header_values is None:
                return [], []

            headers = _dedupe_headers(_cell_to_text(value) for value in header_values)
            records: list[FlatRecord] = []
            for row_values in rows_iter:
                if not row_values or all(_is_empty_cell(value) for value in row_values):
                    continue
                records.append(_build_record(headers, (_cell_value(value) for value in row_values)))
            return headers, records
        finally:
            workbook.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _extension_kind(filename: str | None) -> str | None:
    if not filename or "." not in filename:
        return None
    extension = "." + filename.rsplit(".", 1)[-1].strip().lower()
    return _EXTENSION_KINDS.get(extension)


def _sniff_binary_kind(file_bytes: bytes) -> str:
    if file_bytes.startswith(_ZIP_SIGNATURE):
        return "xlsx"
    if file_bytes.startswith(_OLE2_SIGNATURE):
        raise UnsupportedFileTypeError("Legacy .xls workbooks are not supported; save the file as .xlsx or .csv.")
    return "csv"


def _decode_text(file_bytes: bytes) -> str:
    try:
        return file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("Upload is not valid UTF-8; decoding as cp1252.")
        return file_bytes.decode("cp1252", errors="replace")


def _dedupe_headers(values: Iterable[Any]) -> list[str]:
    raw = [str(value).strip() if value is not None else "" for value in values]
    # Trailing empty cells produce no columns.
    while raw and not raw[-1]:
        raw.pop()
    names = [header or f"column_{position}" for position, header in enumerate(raw, start=1)]

    # A renamed duplicate never takes a name that appears elsewhere in the row.
    taken = set(names)
    emitted: set[str] = set()
    headers: list[str] = []
    for name in names:
        header, suffix = name, 1
        while header in emitted or (header != name and header in taken):
            suffix += 1
            header = f"{name}_{suffix}"
        emitted.add(header)
        headers.append(header)
    return headers


def _build_record(headers: Sequence[str], values: Iterable[Any]) -> FlatRecord:
    cells = list(values)
    return {
        header: cells[index] if index < len(cells) else ""
        for index, header in enumerate(headers)
    }


def _is_empty_cell(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _cell_to_text(value: Any) -> str:
    converted = _cell_value(value)
    return str(converted) if converted != "" else ""


@lru_cache(maxsize=1)
def get_file_ingestor() -> FileIngestor:
    settings = get_import_settings()
    return FileIngestor(
        max_rows=settings.max_rows,
        max_file_bytes=settings.max_file_bytes,
    )
