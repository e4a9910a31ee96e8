"""Compute where the next ledger row lands.

The ledger holds one value per row in column A. The next row always goes directly
below the last row currently reported by the sheet, so the target has to be
recomputed from a fresh read before every append: other editors may have added or
removed rows in the meantime.
"""
import re
from dataclasses import dataclass

_PLAIN_SHEET_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
# Titles that read as A1 or R1C1 references
_CELL_REFERENCE = re.compile(r'^(?:[A-Za-z]{1,3}[0-9]+|[Rr][0-9]*(?:[Cc][0-9]*)?|[Cc][0-9]*)$')


def idx_to_col(idx: int) -> str:
    """Convert zero-based column index to spreadsheet letter(s).

    Args:
        idx: The zero-based column index.

    Returns:
        The spreadsheet column letter(s) (e.g., A, B, AA).
    """
    if idx < 0:
        raise ValueError(f'Column index must be >= 0, got {idx}.')
    letters = ''
    while idx >= 0:
        letters = chr((idx % 26) + ord('A')) + letters
        idx = idx // 26 - 1
    return letters


def quote_sheet_name(name: str) -> str:
    """Quote a worksheet title for use in A1 notation when it needs it.

    Titles containing spaces or punctuation, or that look like a cell reference, must
    be wrapped in single quotes, with embedded quotes doubled.
    """
    if _PLAIN_SHEET_NAME.match(name) and not _CELL_REFERENCE.match(name):
        return name
    escaped = name.replace("'", "''")
    return f"'{escaped}'"


@dataclass(frozen=True)
class RangeDescriptor:
    """An A1 range on one worksheet spanning rows start_row..end_row of one column."""
    worksheet: str
    column: str
    start_row: int
    end_row: int

    @property
    def a1(self) -> str:
        return (f'{quote_sheet_name(self.worksheet)}!'
                f'{self.column}{self.start_row}:{self.column}{self.end_row}')

    def __str__(self) -> str:
        return self.a1


def read_range(worksheet: str, column_idx: int = 0) -> str:
    """Return the open-ended A1 range covering every row of one column."""
    column = idx_to_col(column_idx)
    return f'{quote_sheet_name(worksheet)}!{column}1:{column}'


class RangePlanner:
    """Plans the single-row append target for a worksheet.

    Only one value column is supported. Multi-column rows would need the range to span
    every value column.
    """

    def __init__(self, worksheet: str, column_idx: int = 0):
        self.worksheet = worksheet
        self.column = idx_to_col(column_idx)

    def plan(self, current_row_count: int) -> RangeDescriptor:
        """Return the range of the row directly after ``current_row_count`` rows.

        Args:
            current_row_count: Number of rows the ledger holds right now.

        Returns:
            A one-row RangeDescriptor starting at ``current_row_count + 1``.
        """
        if current_row_count < 0:
            raise ValueError(f'Row count must be >= 0, got {current_row_count}.')
        row = current_row_count + 1
        return RangeDescriptor(self.worksheet, self.column, row, row)
