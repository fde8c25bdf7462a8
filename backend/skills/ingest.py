"""
Ingestion skill — turns uploaded file content into a TabularDataset.

Delimited text, generic JSON and spreadsheets are supported. Byte-level
parsing is delegated to pandas / json; this module only shapes the result
into columns + records and classifies failures as DatasetError.
"""

from __future__ import annotations

import io
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from app.config import CHART_MAX_UPLOAD_BYTES
from app.utils.numeric_utils import coerce_cell, to_python_scalar
from core.models import DatasetErrorKind, TabularDataset

logger = logging.getLogger("uvicorn.error")

SUPPORTED_EXTENSIONS = [".csv", ".json", ".xlsx", ".xls"]


class DatasetError(ValueError):
    """Raised when uploaded content cannot become a usable dataset."""

    def __init__(self, kind: DatasetErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class DatasetFormat(str, Enum):
    csv = "csv"
    json = "json"
    spreadsheet = "spreadsheet"


_FORMAT_ALIASES = {
    "csv": DatasetFormat.csv,
    "text/csv": DatasetFormat.csv,
    "application/csv": DatasetFormat.csv,
    "json": DatasetFormat.json,
    "application/json": DatasetFormat.json,
    "text/json": DatasetFormat.json,
    "xlsx": DatasetFormat.spreadsheet,
    "xls": DatasetFormat.spreadsheet,
    "excel": DatasetFormat.spreadsheet,
    "spreadsheet": DatasetFormat.spreadsheet,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DatasetFormat.spreadsheet,
    "application/vnd.ms-excel": DatasetFormat.spreadsheet,
}


def _extension(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower().strip()


def resolve_format(declared_format: Optional[str], filename: Optional[str] = None) -> DatasetFormat:
    """Pick the parser from the declared format, else from the filename extension."""
    if isinstance(declared_format, DatasetFormat):
        return declared_format
    key = (declared_format or "").strip().lower().lstrip(".")
    if not key:
        key = _extension(filename)
    fmt = _FORMAT_ALIASES.get(key)
    if fmt is None:
        shown = declared_format or (f".{key}" if key else "unknown")
        raise DatasetError(
            DatasetErrorKind.unsupported_format,
            f"Unsupported file type '{shown}'. Use: {', '.join(SUPPORTED_EXTENSIONS)}",
        )
    return fmt


def _as_bytes(raw: Union[bytes, str]) -> bytes:
    if isinstance(raw, str):
        return raw.encode("utf-8")
    return bytes(raw)


def _as_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DatasetError(
            DatasetErrorKind.malformed_content,
            f"File is not valid UTF-8 text: {exc}",
        ) from exc


# ---------------------------------------------------------------------------
# Per-format readers
# ---------------------------------------------------------------------------

def _records_from_frame(df: pd.DataFrame, coerce_text: bool) -> List[Dict[str, Any]]:
    convert = coerce_cell if coerce_text else to_python_scalar
    records: List[Dict[str, Any]] = []
    for row in df.itertuples(index=False, name=None):
        records.append({col: convert(val) for col, val in zip(df.columns, row)})
    return records


def _parse_csv(text: str) -> tuple[List[str], List[Dict[str, Any]]]:
    if not text.strip():
        return [], []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        return [], []
    except (pd.errors.ParserError, ValueError) as exc:
        raise DatasetError(
            DatasetErrorKind.malformed_content,
            f"Failed to read CSV: {exc}",
        ) from exc
    # pandas turns a leading extra field on every row into an implicit index
    if not isinstance(df.index, pd.RangeIndex):
        raise DatasetError(
            DatasetErrorKind.malformed_content,
            "Failed to read CSV: rows have more fields than the header",
        )
    df.columns = [str(c) for c in df.columns]
    return list(df.columns), _records_from_frame(df, coerce_text=True)


def _json_cell(val: Any) -> Any:
    if isinstance(val, (dict, list)):
        return json.dumps(val, ensure_ascii=False)
    return val


def _parse_json(text: str) -> tuple[List[str], List[Dict[str, Any]]]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DatasetError(
            DatasetErrorKind.malformed_content,
            f"Failed to read JSON: {exc}",
        ) from exc

    if isinstance(parsed, list):
        rows = parsed
    elif isinstance(parsed, dict):
        # first property holding a list wins, else the object is the only record
        rows = next((v for v in parsed.values() if isinstance(v, list)), None)
        if rows is None:
            rows = [parsed]
    else:
        raise DatasetError(
            DatasetErrorKind.malformed_content,
            "Invalid JSON layout. Expected an array or an object.",
        )

    if not rows:
        return [], []
    if not all(isinstance(r, dict) for r in rows):
        raise DatasetError(
            DatasetErrorKind.malformed_content,
            "Invalid JSON layout. Every record must be an object.",
        )

    columns = [str(k) for k in rows[0].keys()]
    records = [{str(k): _json_cell(v) for k, v in r.items()} for r in rows]
    return columns, records


def _parse_spreadsheet(raw: bytes) -> tuple[List[str], List[Dict[str, Any]]]:
    try:
        df = pd.read_excel(io.BytesIO(raw), sheet_name=0, dtype=object)
    except ImportError:
        raise
    except Exception as exc:
        raise DatasetError(
            DatasetErrorKind.malformed_content,
            f"Failed to read spreadsheet: {exc}",
        ) from exc
    df.columns = [str(c) for c in df.columns]
    return list(df.columns), _records_from_frame(df, coerce_text=False)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def ingest(
    raw: Union[bytes, str],
    declared_format: Optional[str] = None,
    filename: Optional[str] = None,
    *,
    max_bytes: int = CHART_MAX_UPLOAD_BYTES,
) -> TabularDataset:
    """
    Parse raw upload content into a TabularDataset.

    Size is checked before any parsing; the format comes from
    `declared_format` when given, else from the filename extension.

    Raises:
        DatasetError: too_large, unsupported_format, malformed_content or empty.
    """
    content = _as_bytes(raw)
    if len(content) > max_bytes:
        raise DatasetError(
            DatasetErrorKind.too_large,
            f"File too large. Maximum size: {max_bytes / 1024 / 1024:g}MB",
        )

    fmt = resolve_format(declared_format, filename)
    name = filename or f"data.{'xlsx' if fmt == DatasetFormat.spreadsheet else fmt.value}"

    if fmt == DatasetFormat.csv:
        columns, records = _parse_csv(_as_text(content))
    elif fmt == DatasetFormat.json:
        columns, records = _parse_json(_as_text(content))
    else:
        columns, records = _parse_spreadsheet(content)

    if not records:
        raise DatasetError(DatasetErrorKind.empty, f"File '{name}' contains no records")

    logger.info("Ingested %s: %d rows x %d columns (%s)", name, len(records), len(columns), fmt.value)
    return TabularDataset(filename=name, columns=columns, data=records)
