"""
Grid assembly: addressed cells -> dense comma-separated text.

This is the only place formula cells become text for the outside world.
Fields holding a comma (SUMPRODUCT arguments, odd ingredient names) are
quoted the way spreadsheet applications expect.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Iterable

from rich.table import Table

from sheet_render import DEFAULT_PLACES, column_label, render_value
from sheet_types import Cell, CellValue, Failure, FailureKind

__all__ = ["assemble_grid", "parse_grid", "preview_table"]

logger = logging.getLogger(__name__)

SparseGrid = dict[int, dict[int, CellValue]]


def _collect(cells: Iterable[Cell]) -> tuple[SparseGrid, int, int] | Failure:
    """Build the sparse row -> col -> value map, refusing duplicate positions."""
    sparse: SparseGrid = {}
    max_row = -1
    max_col = -1
    for cell in cells:
        row, col = cell.position.row, cell.position.col
        columns = sparse.setdefault(row, {})
        if col in columns:
            return Failure(
                FailureKind.OVERLAPPING_CELLS,
                f"two cells assigned to {column_label(col)}{row + 1}",
                position=cell.position,
            )
        columns[col] = cell.value
        max_row = max(max_row, row)
        max_col = max(max_col, col)
    return (sparse, max_row, max_col)


def assemble_grid(cells: Iterable[Cell], places: int = DEFAULT_PLACES) -> str | Failure:
    """
    Render cells into a dense (max_row+1) x (max_col+1) text grid.

    Positions with no cell render as empty fields. Every row, including the
    last, ends with a newline. An empty cell collection yields "".

    Returns:
        The grid text, or a Failure if two cells share a position
    """
    collected = _collect(cells)
    if isinstance(collected, Failure):
        logger.warning("assemble_grid: %s", collected)
        return collected
    sparse, max_row, max_col = collected

    logger.debug("assemble_grid: %d rows x %d cols", max_row + 1, max_col + 1)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in range(max_row + 1):
        columns = sparse.get(row, {})
        fields = []
        for col in range(max_col + 1):
            value = columns.get(col)
            fields.append("" if value is None else render_value(value, places))
        writer.writerow(fields)
    return buffer.getvalue()


def parse_grid(text: str) -> dict[tuple[int, int], str]:
    """
    Read assembled grid text back into a (row, col) -> field mapping.

    Empty fields are left out, so the result matches the non-empty cells
    the grid was assembled from. Formulas are not evaluated.
    """
    result: dict[tuple[int, int], str] = {}
    for row, fields in enumerate(csv.reader(io.StringIO(text))):
        for col, field in enumerate(fields):
            if field:
                result[(row, col)] = field
    return result


def preview_table(text: str, title: str | None = None) -> Table:
    """Lay assembled grid text out as a rich Table with sheet-style headers."""
    rows = list(csv.reader(io.StringIO(text)))
    width = max((len(fields) for fields in rows), default=0)

    table = Table(title=title, show_lines=False)
    table.add_column("", style="dim", justify="right")
    for col in range(width):
        table.add_column(column_label(col))
    for row, fields in enumerate(rows):
        padded = fields + [""] * (width - len(fields))
        table.add_row(str(row + 1), *padded)
    return table
