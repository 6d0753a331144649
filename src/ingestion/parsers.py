"""
Spreadsheet parsers for attendee uploads.

Turns an uploaded buffer into a list of row dicts keyed by header. All
cells are read as text; type coercion is the schema validator's job.
"""

import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from src.exceptions import FileParseError, UnsupportedFormatError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "xlsx", "xls")

EXCEL_ENGINES = {
    "xlsx": "openpyxl",
    "xls": "xlrd",
}

CSV_ENCODINGS = ("utf-8-sig", "latin-1")


def detect_file_format(file_name: str) -> str:
    """
    Infer the upload format from a file name extension.

    Raises:
        UnsupportedFormatError: For extensions other than csv/xlsx/xls
    """
    suffix = Path(file_name).suffix.lower().lstrip(".")
    if suffix not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(f"Unsupported file format: '{suffix or file_name}'")
    return suffix


def _read_csv(buffer: bytes) -> pd.DataFrame:
    last_error: Optional[Exception] = None
    for encoding in CSV_ENCODINGS:
        try:
            return pd.read_csv(
                io.BytesIO(buffer),
                dtype=str,
                keep_default_na=False,
                encoding=encoding,
                skipinitialspace=True,
            )
        except UnicodeDecodeError as e:
            logger.debug(f"CSV decode with {encoding} failed: {e}")
            last_error = e
    raise FileParseError(f"Could not decode CSV upload: {last_error}")


def _read_excel(buffer: bytes, file_format: str) -> pd.DataFrame:
    return pd.read_excel(
        io.BytesIO(buffer),
        sheet_name=0,
        dtype=str,
        keep_default_na=False,
        engine=EXCEL_ENGINES[file_format],
    )


def _clean_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def parse_spreadsheet(
    buffer: Union[bytes, str],
    file_format: str,
    max_rows: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Parse an upload buffer into header-keyed rows.

    Args:
        buffer: Raw file content (text is encoded as UTF-8)
        file_format: One of csv, xlsx, xls
        max_rows: Reject uploads with more data rows than this

    Returns:
        List of row dicts; fully blank rows are dropped

    Raises:
        UnsupportedFormatError: Unknown format
        FileParseError: Unreadable, empty or oversized file
    """
    file_format = (file_format or "").lower().lstrip(".")
    if file_format not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(f"Unsupported file format: '{file_format}'")

    if isinstance(buffer, str):
        buffer = buffer.encode("utf-8")
    if not buffer:
        raise FileParseError("File is empty")

    try:
        if file_format == "csv":
            df = _read_csv(buffer)
        else:
            df = _read_excel(buffer, file_format)
    except FileParseError:
        raise
    except pd.errors.EmptyDataError as e:
        raise FileParseError("File is empty") from e
    except Exception as e:
        raise FileParseError(f"Failed to parse {file_format} file: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]

    rows = []
    for record in df.to_dict(orient="records"):
        cleaned = {header: _clean_cell(value) for header, value in record.items()}
        if all(v == "" for v in cleaned.values()):
            continue
        rows.append(cleaned)

    if not rows:
        raise FileParseError("File is empty")
    if max_rows is not None and len(rows) > max_rows:
        raise FileParseError(
            f"File has {len(rows)} rows; the maximum per upload is {max_rows}"
        )

    logger.info(f"Parsed {len(rows)} rows from {file_format} upload")
    return rows
