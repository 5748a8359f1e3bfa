"""
Tabular decoder: turns an uploaded file into one normalized text blob.

Delimited text is decoded as-is; spreadsheet workbooks are flattened to
comma-separated text from their first sheet.
"""
import csv
import io
import logging
from datetime import date, datetime, time
from pathlib import PurePath
from typing import Any, Iterable, List, Optional

import pandas as pd

from scada_import.core.config import settings
from scada_import.domain.imports.errors import DecodeFailed, UnsupportedFormat

logger = logging.getLogger(__name__)

WORKBOOK_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}
DATETIME_OUTPUT_FORMAT = "%Y-%m-%d %H:%M:%S"
BINARY_SNIFF_BYTES = 8192


def detect_file_kind(file_name: str) -> str:
    """Return "workbook" for spreadsheet extensions, "text" for everything else."""
    suffix = PurePath(file_name or "").suffix.lower()
    if suffix in WORKBOOK_EXTENSIONS:
        return "workbook"
    return "text"


def _excel_engine(file_name: str) -> str:
    suffix = PurePath(file_name).suffix.lower()
    if suffix == ".xls":
        return "xlrd"
    return "openpyxl"


def cell_to_text(value: Any) -> str:
    """Render one spreadsheet cell as text, using the date value for date cells."""
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    if value is pd.NaT:
        return ""
    if isinstance(value, (pd.Timestamp, datetime)):
        return value.strftime(DATETIME_OUTPUT_FORMAT)
    if isinstance(value, date):
        return datetime.combine(value, time.min).strftime(DATETIME_OUTPUT_FORMAT)
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows_to_csv(rows: Iterable[List[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def decode_workbook(file_name: str, raw: bytes) -> str:
    """Flatten the first sheet of a workbook into comma-separated text."""
    try:
        workbook = pd.ExcelFile(io.BytesIO(raw), engine=_excel_engine(file_name))
    except Exception as e:
        logger.error(f"Could not open workbook {file_name}: {e}")
        raise DecodeFailed(f"Could not read workbook '{file_name}': {e}", file_name=file_name)

    with workbook:
        if not workbook.sheet_names:
            raise UnsupportedFormat(f"Workbook '{file_name}' contains no sheets", file_name=file_name)

        first_sheet = workbook.sheet_names[0]
        try:
            df = workbook.parse(first_sheet, header=None, dtype=object)
        except Exception as e:
            logger.error(f"Could not parse sheet '{first_sheet}' of {file_name}: {e}")
            raise DecodeFailed(f"Could not read sheet '{first_sheet}' of '{file_name}': {e}", file_name=file_name)

    df = df.dropna(how="all")
    rows = [[cell_to_text(value) for value in row] for row in df.itertuples(index=False, name=None)]
    logger.info(f"Decoded workbook {file_name}: sheet '{first_sheet}', {len(rows)} rows")
    return _rows_to_csv(rows)


def decode_text(file_name: str, raw: bytes) -> str:
    """Decode delimited text using the configured encodings, in order."""
    if b"\x00" in raw[:BINARY_SNIFF_BYTES]:
        raise UnsupportedFormat(f"'{file_name}' looks like binary data, not delimited text", file_name=file_name)

    last_error: Optional[Exception] = None
    for encoding in settings.text_encodings:
        try:
            return raw.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            last_error = e
            logger.debug("Decoding %s as %s failed: %s", file_name, encoding, e)

    raise DecodeFailed(f"Could not decode '{file_name}' as text: {last_error}", file_name=file_name)


def decode_file(file_name: str, raw: bytes) -> str:
    """
    Convert an uploaded file into a normalized text blob.

    Args:
        file_name: Original file name, used only to pick the file kind
        raw: File content as bytes

    Returns:
        Text equivalent to a delimited-text export of the first sheet/table

    Raises:
        UnsupportedFormat: The content is not a kind this decoder reads
        DecodeFailed: The kind is recognised but the content is unreadable
    """
    if detect_file_kind(file_name) == "workbook":
        return decode_workbook(file_name, raw)
    return decode_text(file_name, raw)
