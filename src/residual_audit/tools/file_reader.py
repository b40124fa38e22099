"""Read CSV/XLSX processor exports into raw rows"""

import csv
from io import BytesIO, StringIO
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from residual_audit.tools.normalizer import FIELD_CANDIDATES, clean_value
from residual_audit.utils.errors import InputFormatError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

EXCEL_SUFFIXES = {'.xlsx', '.xlsm'}

# Exports often carry title/summary lines above the real header
_HEADER_MARKERS = {h.lower() for h in FIELD_CANDIDATES["merchant_id"]}


def _is_header(cells: Sequence) -> bool:
    return bool({clean_value(cell).lower() for cell in cells} & _HEADER_MARKERS)


def _frame_to_rows(frame: pd.DataFrame) -> List[Dict[str, str]]:
    rows: List[Dict[str, str]] = []
    headers = [clean_value(h) for h in frame.columns]
    for raw in frame.itertuples(index=False):
        values = [clean_value(cell) for cell in raw]
        if not any(values):
            continue
        rows.append({h: v for h, v in zip(headers, values) if h})
    return rows


def _read_csv(data: bytes) -> pd.DataFrame:
    text = data.decode('utf-8-sig', errors='replace')
    lines = [line for line in text.splitlines() if line.strip()]

    header_idx = next(
        (i for i, line in enumerate(lines) if _is_header(next(csv.reader([line]), []))),
        None
    )
    if header_idx is None:
        raise InputFormatError("Could not find header row with a merchant identifier column")

    return pd.read_csv(
        StringIO("\n".join(lines[header_idx:])),
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        on_bad_lines='skip',
        engine='python'
    )


def _read_excel(data: bytes) -> pd.DataFrame:
    sheet = pd.read_excel(BytesIO(data), header=None, dtype=str, engine="openpyxl")
    for idx, row in sheet.iterrows():
        if _is_header(row.tolist()):
            body = sheet.loc[idx + 1:].copy()
            body.columns = [clean_value(cell) for cell in row.tolist()]
            return body
    raise InputFormatError("Could not find header row with a merchant identifier column")


def read_tabular(
    source: Union[str, Path, bytes, BytesIO],
    filename: Optional[str] = None
) -> List[Dict[str, str]]:
    """
    Read a processor export into raw rows.

    Args:
        source: File path, raw bytes or BytesIO
        filename: Original filename, used to pick CSV vs Excel for byte input

    Returns:
        List of header -> cell maps, blank rows removed

    Raises:
        InputFormatError: If the file cannot be parsed or has no header row
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        filename = filename or path.name
        try:
            data = path.read_bytes()
        except OSError as e:
            raise InputFormatError(f"Cannot read {path}: {e}")
    elif isinstance(source, BytesIO):
        data = source.getvalue()
    elif isinstance(source, bytes):
        data = source
    else:
        raise InputFormatError(f"Unsupported source type: {type(source)!r}")

    suffix = Path(filename or '').suffix.lower()

    try:
        frame = _read_excel(data) if suffix in EXCEL_SUFFIXES else _read_csv(data)
    except (ValueError, pd.errors.ParserError) as e:
        raise InputFormatError(f"Failed to parse {filename or 'upload'}: {e}")

    rows = _frame_to_rows(frame)
    logger.info(f"Read {len(rows)} rows from {filename or 'upload'}")
    return rows
