"""Spreadsheet parsing (XLSX / XLS / CSV -> pandas -> row lists).

The parsed structure is what gets stored on an UploadRecord as
``extracted_data``::

    {
        "sheets": [{"name", "rows", "rowCount", "columnCount"}, ...],
        "summary": {"totalSheets", "totalRows", "totalColumns"},
    }

Row 0 of every sheet is assumed to be the header row. Nothing here touches
storage or the database.
"""

from __future__ import annotations

import csv
import datetime as dt
import io
import math
import os
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .exceptions import ParseError, UnsupportedMediaType


XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MIMETYPE = "application/vnd.ms-excel"
CSV_MIMETYPE = "text/csv"

SUPPORTED_MIMETYPES = (XLSX_MIMETYPE, XLS_MIMETYPE, CSV_MIMETYPE)

ZIP_SIGNATURE = b"PK\x03\x04"
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
# BOF opcodes of single-stream BIFF2..BIFF8 files
BIFF_BOF_CODES = (b"\x09\x00", b"\x09\x02", b"\x09\x04", b"\x09\x08")

CSV_ENCODINGS = ("utf-8-sig", "cp1252")

CSV_SHEET_NAME = "Sheet1"

NUMBER_KINDS = {"integer", "floating", "mixed-integer-float", "decimal"}
DATE_KINDS = {"datetime", "datetime64", "date", "time"}


def is_supported_mimetype(mimetype: Optional[str]) -> bool:
    return mimetype in SUPPORTED_MIMETYPES


def _read_bytes(source) -> bytes:
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as handle:
            return handle.read()
    if hasattr(source, "read"):
        return source.read()
    return bytes(source)


def sniff_engine(content: bytes, mimetype: Optional[str]) -> Optional[str]:
    """Pick the reader from the container signature (None means CSV).

    Browsers label .csv and .xlsx files as ``application/vnd.ms-excel`` often
    enough that the declared type only decides what happens to bytes with no
    recognisable signature.
    """
    if content.startswith(ZIP_SIGNATURE):
        return "openpyxl"
    if content.startswith(OLE_SIGNATURE) or content[:2] in BIFF_BOF_CODES:
        return "xlrd"
    if mimetype == XLSX_MIMETYPE:
        return "openpyxl"
    return None


def _decode_text(content: bytes) -> str:
    for encoding in CSV_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    # latin-1 maps every byte
    return content.decode("latin-1")


def _csv_value(text: str) -> Any:
    """Type a CSV field the way a spreadsheet application would."""
    stripped = text.strip()
    upper = stripped.upper()
    if upper in ("TRUE", "FALSE"):
        return upper == "TRUE"
    # int()/float() accept digit separators ("1_000"), spreadsheets do not
    if "_" in stripped:
        return text
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        number = float(stripped)
    except ValueError:
        return text
    return number if math.isfinite(number) else text


def _read_csv(content: bytes) -> pd.DataFrame:
    text = _decode_text(content)
    # Rows may be wider than the first one; size the frame to the widest
    width = max((len(row) for row in csv.reader(io.StringIO(text))), default=0)
    if not width:
        return pd.DataFrame()
    frame = pd.read_csv(
        io.StringIO(text),
        header=None,
        names=list(range(width)),
        dtype=str,
        keep_default_na=False,
        na_values=[""],
        skip_blank_lines=False,
    )
    return frame.map(lambda v: v if pd.isna(v) else _csv_value(v))


def read_workbook(source, mimetype: Optional[str]) -> Dict[str, pd.DataFrame]:
    """Read every sheet of a workbook into a header-less DataFrame.

    Returns an ordered mapping of sheet name -> DataFrame in the order the
    container declares them. CSV files yield a single ``Sheet1``.

    Raises UnsupportedMediaType before reading anything when ``mimetype`` is
    not one of SUPPORTED_MIMETYPES, and ParseError when the content cannot
    be decoded. The reader is chosen by ``sniff_engine``.
    """
    if not is_supported_mimetype(mimetype):
        raise UnsupportedMediaType(mimetype)

    try:
        content = _read_bytes(source)
        engine = sniff_engine(content, mimetype)
        if engine is None:
            return {CSV_SHEET_NAME: _read_csv(content)}
        return pd.read_excel(
            io.BytesIO(content),
            sheet_name=None,
            header=None,
            dtype=object,
            engine=engine,
        )
    except Exception as exc:
        raise ParseError(str(exc) or type(exc).__name__) from exc


def normalize_cell(value: Any) -> Any:
    """Convert a pandas/numpy cell into text, number, boolean or None."""
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (dt.datetime, dt.date, dt.time, pd.Timestamp)):
        if pd.isna(value):
            return None
        return value.isoformat()
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        if math.isnan(value):
            return None
        if math.isinf(value):
            return str(value)
        return float(value)
    if value is pd.NaT or value is pd.NA:
        return None
    return str(value)


def _strip_trailing(cells: List[Any]) -> List[Any]:
    end = len(cells)
    while end and cells[end - 1] is None:
        end -= 1
    return cells[:end]


def sheet_rows(frame: pd.DataFrame) -> List[List[Any]]:
    rows = [
        _strip_trailing([normalize_cell(v) for v in record])
        for record in frame.itertuples(index=False, name=None)
    ]
    while rows and not rows[-1]:
        rows.pop()
    return rows


def extract_data(frames: Dict[str, pd.DataFrame]) -> Dict[str, Any]:
    """Build the ``extracted_data`` payload; sheets without rows are skipped."""
    sheets = []
    for name, frame in frames.items():
        rows = sheet_rows(frame)
        if not rows:
            continue
        sheets.append(
            {
                "name": str(name),
                "rows": rows,
                "rowCount": len(rows),
                "columnCount": len(rows[0]),
            }
        )

    return {
        "sheets": sheets,
        "summary": {
            "totalSheets": len(sheets),
            "totalRows": sum(s["rowCount"] for s in sheets),
            "totalColumns": max((s["columnCount"] for s in sheets), default=0),
        },
    }


def parse_spreadsheet(source, mimetype: Optional[str]) -> Dict[str, Any]:
    return extract_data(read_workbook(source, mimetype))


def describe_columns(frames: Dict[str, pd.DataFrame], filename: str = "") -> Dict[str, Any]:
    """Column metadata for the first non-empty sheet.

    Columns are classified from their data cells (header row excluded) using
    pandas' dtype inference. Columns holding no data are left unclassified.
    """
    metadata = {
        "fileExtension": os.path.splitext(filename)[1].lower(),
        "headers": [],
        "numberColumns": [],
        "dateColumns": [],
        "textColumns": [],
    }

    frame = next((f for f in frames.values() if sheet_rows(f)), None)
    if frame is None:
        return metadata

    header = [normalize_cell(v) for v in frame.iloc[0].tolist()]
    headers = [str(h) if h is not None else f"Column {i + 1}" for i, h in enumerate(header)]
    metadata["headers"] = [str(h) for h in _strip_trailing(header) if h is not None]

    body = frame.iloc[1:]
    for position, name in enumerate(headers):
        column = body.iloc[:, position]
        kind = pd.api.types.infer_dtype(column, skipna=True)
        if kind == "empty":
            continue
        if kind in NUMBER_KINDS:
            metadata["numberColumns"].append(name)
        elif kind in DATE_KINDS:
            metadata["dateColumns"].append(name)
        else:
            metadata["textColumns"].append(name)
    return metadata
