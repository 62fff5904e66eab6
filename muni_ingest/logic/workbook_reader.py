# muni_ingest/logic/workbook_reader.py
"""
Workbook Reader

Opens an uploaded spreadsheet and exposes its FIRST sheet as a header row
plus a lazy sequence of raw records (original column label -> cell value).

Key Features:
- xlsx/xlsm (openpyxl), legacy xls (xlrd) and csv uploads
- Header row = first non-empty row, so title-less exports and exports with
  leading blank rows both work
- Blank header cells become positional labels (__empty_<col>), duplicate
  labels get a numeric suffix, so every cell keeps a unique key
- Pure parse: no storage, no logging side effects beyond debug output
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List

import pandas as pd

from .constants import EMPTY_HEADER_PREFIX, SUPPORTED_EXTENSIONS
from .errors import UnreadableFile
from .parse_utils import clean_text, is_blank

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]


@dataclass
class SheetData:
    """First sheet of a workbook, ready for the mapping pipeline."""
    sheet_name: str
    headers: List[str]
    row_count: int
    records: Iterator[RawRecord]
    header_row_index: int = 0
    source_rows: List[int] = field(default_factory=list)

    def source_row(self, position: int) -> int:
        """Excel (1-based) row number of the record at `position`."""
        return self.source_rows[position]


# ====================================================================================
# LOW LEVEL READING
# ====================================================================================

def _read_first_sheet(data: bytes, file_name: str) -> tuple[str, pd.DataFrame]:
    """Read the first sheet into a raw DataFrame with no header assumed."""
    ext = Path(file_name or "").suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnreadableFile(f"Unsupported spreadsheet extension: '{ext or file_name}'")
    if not data:
        raise UnreadableFile(f"File '{file_name}' is empty")

    buffer = io.BytesIO(data)
    try:
        if ext == ".csv":
            return "csv", pd.read_csv(buffer, header=None, dtype=object, keep_default_na=False)

        xl = pd.ExcelFile(buffer, engine="xlrd" if ext == ".xls" else "openpyxl")
        try:
            if not xl.sheet_names:
                raise UnreadableFile(f"No sheets found in '{file_name}'")
            sheet_name = xl.sheet_names[0]
            df = xl.parse(sheet_name=sheet_name, header=None, dtype=object)
        finally:
            xl.close()
        return str(sheet_name), df
    except UnreadableFile:
        raise
    except Exception as e:
        raise UnreadableFile(f"Could not open spreadsheet '{file_name}': {e}") from e


def _cell_value(v: Any) -> Any:
    """Convert a pandas cell to a plain Python value (NaN -> None)."""
    if is_blank(v):
        return None
    if isinstance(v, pd.Timestamp):
        return v.to_pydatetime()
    if isinstance(v, str):
        return v.strip()
    if hasattr(v, "item") and not isinstance(v, datetime):
        # numpy scalars
        return v.item()
    return v


def _build_headers(header_cells: List[Any]) -> List[str]:
    """Label each column; blanks become positional, duplicates get _<n>."""
    headers: List[str] = []
    taken = set()
    for col, cell in enumerate(header_cells):
        base = clean_text(cell) or f"{EMPTY_HEADER_PREFIX}{col}"
        label, n = base, 0
        while label in taken:
            n += 1
            label = f"{base}_{n}"
        taken.add(label)
        headers.append(label)
    return headers


def _detect_header_row(df: pd.DataFrame) -> int:
    """Index of the first row with at least one non-empty cell."""
    for idx in range(len(df)):
        if any(not is_blank(v) for v in df.iloc[idx].tolist()):
            return idx
    return -1


# ====================================================================================
# PUBLIC API
# ====================================================================================

def read_workbook(data: bytes, file_name: str) -> SheetData:
    """
    Parse an uploaded spreadsheet.

    Args:
        data: Raw file bytes
        file_name: Original file name (used for the format only)

    Returns:
        SheetData whose `records` is a one-shot iterator of RawRecords

    Raises:
        UnreadableFile: the bytes are not a supported spreadsheet, or the
            first sheet has no header row
    """
    sheet_name, df = _read_first_sheet(data, file_name)

    # Trailing all-empty columns are formatting residue; inner ones keep their
    # position so positional lookups still line up with the sheet
    width = df.shape[1]
    while width > 0 and all(is_blank(v) for v in df.iloc[:, width - 1].tolist()):
        width -= 1
    df = df.iloc[:, :width]
    df.columns = range(width)

    header_idx = _detect_header_row(df)
    if header_idx < 0:
        raise UnreadableFile(f"No header row found in sheet '{sheet_name}'")

    headers = _build_headers(df.iloc[header_idx].tolist())

    rows: List[List[Any]] = []
    source_rows: List[int] = []
    for idx in range(header_idx + 1, len(df)):
        values = [_cell_value(v) for v in df.iloc[idx].tolist()]
        if all(v is None for v in values):
            continue
        rows.append(values)
        source_rows.append(idx + 1)

    logger.debug(
        f"Sheet '{sheet_name}': header at row {header_idx + 1}, "
        f"{len(headers)} columns, {len(rows)} data rows"
    )

    def _records() -> Iterator[RawRecord]:
        for values in rows:
            yield dict(zip(headers, values))

    return SheetData(
        sheet_name=sheet_name,
        headers=headers,
        row_count=len(rows),
        records=_records(),
        header_row_index=header_idx,
        source_rows=source_rows,
    )
