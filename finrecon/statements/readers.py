"""Row readers for tabular statement exports.

Each reader turns raw file bytes into an iterator of rows, where a row is
a list of cell values (strings for CSV, native Python values for XLSX).
"""

import csv
import io
from collections.abc import Iterator
from pathlib import PurePath
from typing import Any

from openpyxl import load_workbook

from finrecon.utils.errors import UnsupportedFormatError
from finrecon.utils.logger import get_logger

logger = get_logger(__name__)

Row = list[Any]

SUPPORTED_EXTENSIONS: tuple[str, ...] = (".csv", ".xlsx", ".xlsm")


def file_extension(filename: str) -> str:
    """Return the lower-cased extension of a filename, including the dot."""
    return PurePath(filename).suffix.lower()


def decode_text(content: bytes, encoding: str = "utf-8") -> str:
    """Decode CSV bytes, tolerating a BOM and falling back to Latin-1."""
    for candidate in (encoding, "utf-8-sig"):
        try:
            return content.decode(candidate).lstrip("\ufeff")
        except (UnicodeDecodeError, LookupError):
            continue
    logger.warning("Statement is not valid %s, decoding as latin-1", encoding)
    return content.decode("latin-1")


def read_csv_rows(content: bytes, encoding: str = "utf-8") -> Iterator[Row]:
    """Yield CSV rows from raw bytes.

    Quoted multi-line fields are handled by the ``csv`` module.
    """
    text = decode_text(content, encoding)
    reader = csv.reader(io.StringIO(text, newline=""))
    yield from reader


def read_xlsx_rows(content: bytes, max_bytes: int | None = None) -> Iterator[Row]:
    """Yield rows from the first worksheet of an XLSX workbook.

    Args:
        content: Raw workbook bytes.
        max_bytes: Optional size limit; larger workbooks are rejected.

    Raises:
        UnsupportedFormatError: If the workbook is too large.
    """
    if max_bytes is not None and len(content) > max_bytes:
        size_mb = len(content) / (1024 * 1024)
        raise UnsupportedFormatError(
            f"Spreadsheet too large ({size_mb:.1f}MB). Please export to CSV."
        )

    workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        for values in sheet.iter_rows(values_only=True):
            yield list(values)
    finally:
        workbook.close()


def read_rows(
    content: bytes,
    filename: str,
    encoding: str = "utf-8",
    max_spreadsheet_bytes: int | None = None,
) -> Iterator[Row]:
    """Dispatch to the reader matching the file extension.

    Raises:
        UnsupportedFormatError: If the extension is not supported.
    """
    ext = file_extension(filename)
    if ext == ".csv":
        return read_csv_rows(content, encoding)
    if ext in (".xlsx", ".xlsm"):
        return read_xlsx_rows(content, max_spreadsheet_bytes)
    raise UnsupportedFormatError(f"Unsupported file format: {ext or filename}")
