"""
Section extraction for stacked IBKR activity statements.

The CSV export stacks many unrelated tables vertically. Every row starts with the
name of its table followed by a marker column ('Header', 'Data', 'SubTotal', 'Total'),
and a table may restart its header half-way through (e.g. 'Trades' repeats its header
for each asset category because the columns differ).

Extraction happens in two phases:
1. Classify: decode every line on its own and cut the file into runs of lines that
   share a table name, starting a new run whenever a 'Header' token shows up.
2. Decode: re-read each run with its own first line as the column header.

The column schema lives in the data, so a run cannot be typed until it is complete.
"""
import csv
import io
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Union

import pandas as pd

from .config import AGGREGATE_MARKERS, DATA_MARKER, HEADER_MARKER, PRECISION
from .errors import StatementFormatError

log = logging.getLogger(__name__)

Row = Mapping[str, Any]
RowPredicate = Callable[[Row], bool]

_QUANTUM = Decimal(1).scaleb(-PRECISION)


# ==========================================
# SECTION 1: READING & CLASSIFYING LINES
# ==========================================
def read_lines(filepath: Union[str, Path]) -> List[str]:
    """
    Reads the whole statement into memory.

    'utf-8-sig' drops the Byte Order Mark that broker exports often start with.
    OSError (e.g. FileNotFoundError) propagates to the caller.
    """
    with open(filepath, encoding='utf-8-sig', newline='') as f:
        return f.read().splitlines()


def _decode_line(line: str) -> List[str]:
    try:
        return next(csv.reader([line]), [])
    except csv.Error as e:
        raise StatementFormatError(f"Malformed CSV line: {line!r}") from e


def split_sections(lines: Iterable[str]) -> List[str]:
    """
    Cuts the file into contiguous runs of lines that belong to the same table.

    A new run starts when the first column differs from the previous row's, or when
    any cell of the row is the literal 'Header' token. Blank lines stay attached to
    the run they appear in.

    Args:
        lines (Iterable[str]): Raw lines of the file, without line terminators.

    Returns:
        List[str]: The text of every run, lines joined with '\\n'.
    """
    sections = []
    buffer: List[str] = []
    first_column = ''

    for line in lines:
        row = _decode_line(line)
        if (row and row[0] != first_column) or HEADER_MARKER in row:
            first_column = row[0]
            if buffer:
                sections.append('\n'.join(buffer))
            buffer = []
        buffer.append(line)

    if buffer:
        sections.append('\n'.join(buffer))
    log.debug("Split statement into %d sections", len(sections))
    return sections


# ==========================================
# SECTION 2: DECODING ROWS
# ==========================================
def _check_row_widths(text: str) -> None:
    # No row may be wider than its header
    lines = [line for line in text.splitlines() if line.strip()]
    width = len(_decode_line(lines[0]))
    for line in lines[1:]:
        cells = _decode_line(line)
        if len(cells) > width:
            raise StatementFormatError(
                f"Row has {len(cells)} cells but its header has {width}: {line!r}")


def decode_section(text: str) -> pd.DataFrame:
    """
    Decodes one section using its first line as the column header.

    All cells are kept as strings: no type inference, no NA conversion, and cells
    missing from short rows become ''.

    Args:
        text (str): The section text as produced by split_sections().

    Returns:
        pd.DataFrame: One row per data line (possibly none).
    """
    if not text.strip():
        return pd.DataFrame()
    _check_row_widths(text)
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            index_col=False,
            skip_blank_lines=True
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise StatementFormatError(f"Malformed section starting with {text.splitlines()[0]!r}: {e}") from e
    return frame.fillna('')


def first_row(frame: pd.DataFrame) -> dict:
    return frame.iloc[0].to_dict()


def section_matches(frame: pd.DataFrame, predicate: RowPredicate) -> bool:
    return not frame.empty and predicate(first_row(frame))


def select_sections(frames: Iterable[pd.DataFrame], predicate: RowPredicate) -> List[pd.DataFrame]:
    """
    Keeps the decoded sections whose first data row satisfies the predicate.

    Only the first row is tested, so a section that starts out matching is kept whole
    even if later rows would not match. Sections without data rows are dropped.
    """
    return [frame for frame in frames if section_matches(frame, predicate)]


def extract_sections(lines: Iterable[str], predicate: RowPredicate) -> List[str]:
    """
    Returns the text of every section whose first data row satisfies the predicate.

    Args:
        lines (Iterable[str]): Raw lines of the file.
        predicate (RowPredicate): Test applied to the first data row (column name -> value).

    Returns:
        List[str]: Matching sections, in file order.
    """
    return [text for text in split_sections(lines) if section_matches(decode_section(text), predicate)]


def is_data_row(row: Row) -> bool:
    """
    True for substantive rows, False for 'SubTotal'/'Total' aggregate rows.

    Raises:
        StatementFormatError: If the marker column holds anything else.
    """
    marker = row.get(HEADER_MARKER)
    if marker == DATA_MARKER:
        return True
    if marker in AGGREGATE_MARKERS:
        return False
    raise StatementFormatError(f"Unsupported {HEADER_MARKER} value: {marker!r}", row)


def require_columns(frame: pd.DataFrame, columns: Iterable[str], section_name: str) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise StatementFormatError(
            f"'{section_name}' section is missing columns {missing}; found {list(frame.columns)}")


def require_count(sections: List[Any], expected: int, section_name: str) -> None:
    if len(sections) != expected:
        raise StatementFormatError(
            f"Expected {expected} '{section_name}' section(s), found {len(sections)}")


# ==========================================
# SECTION 3: CELL CONVERSION
# ==========================================
def clean_number(value: Any, scale: bool = True) -> Decimal:
    """
    Converts a numeric cell to a Decimal.

    Thousands separators are removed first. With scale=True the result is rounded to
    PRECISION fractional digits using banker's rounding.

    Raises:
        StatementFormatError: If the cell is not a number.
    """
    text = str(value).replace(',', '').strip()
    try:
        number = Decimal(text)
    except InvalidOperation as e:
        raise StatementFormatError(f"Not a number: {value!r}") from e
    if not number.is_finite():
        raise StatementFormatError(f"Not a finite number: {value!r}")
    if scale:
        number = number.quantize(_QUANTUM, rounding=ROUND_HALF_EVEN)
    return number


def parse_date_time(value: str, fmt: str) -> datetime:
    # An explicit format avoids pandas guessing day/month order.
    try:
        timestamp = pd.to_datetime(str(value).strip(), format=fmt)
    except (ValueError, TypeError) as e:
        raise StatementFormatError(f"Cannot parse {value!r} using format {fmt!r}") from e
    if pd.isna(timestamp):
        raise StatementFormatError(f"Missing date: {value!r}")
    return timestamp.to_pydatetime()


def parse_date(value: str, fmt: str) -> date:
    return parse_date_time(value, fmt).date()
