"""Tests for csv_grid assembly."""

from fractions import Fraction

from rich.table import Table

from csv_grid import assemble_grid, parse_grid, preview_table
from sheet_render import render_value
from sheet_types import (
    Cell,
    CellRange,
    CellReference,
    Empty,
    Expr,
    Failure,
    FailureKind,
    Number,
    Percentage,
    Position,
    Reference,
    Str,
    SumProduct,
)


def at(row: int, col: int, value) -> Cell:
    return Cell(value, Position(row, col))


class TestAssembleGrid:
    """Tests for dense grid output."""

    def test_sparse_cells_fill_with_blanks(self) -> None:
        """Missing positions become empty fields; every row ends with a newline."""
        cells = [at(0, 0, Str("a")), at(1, 2, Str("b"))]
        assert assemble_grid(cells) == "a,,\n,,b\n"

    def test_input_order_does_not_matter(self) -> None:
        """Cells are placed by position, not arrival order."""
        cells = [at(1, 1, Str("d")), at(0, 1, Str("b")), at(1, 0, Str("c")), at(0, 0, Str("a"))]
        assert assemble_grid(cells) == "a,b\nc,d\n"

    def test_blank_rows_are_kept(self) -> None:
        """Rows with no cells still appear."""
        cells = [at(0, 0, Str("x")), at(2, 1, Str("y"))]
        assert assemble_grid(cells) == "x,\n,\n,y\n"

    def test_formulas_rendered(self) -> None:
        """Expressions render with their leading = and rounding."""
        cells = [
            at(0, 0, Expr(Percentage(Fraction(2, 3)))),
            at(0, 1, Expr(Number(Fraction(450)))),
            at(0, 2, Expr(Reference(CellReference(Position(0, 0), fix_row=True)))),
        ]
        assert assemble_grid(cells) == "=66.667%,=450,=A$1\n"

    def test_explicit_empty_value(self) -> None:
        """An Empty value renders like a missing cell."""
        cells = [at(0, 0, Empty()), at(0, 1, Str("z"))]
        assert assemble_grid(cells) == ",z\n"

    def test_field_with_comma_is_quoted(self) -> None:
        """SUMPRODUCT arguments contain a comma, so the field is quoted."""
        left = CellRange(CellReference(Position(0, 0)), CellReference(Position(0, 1)))
        right = CellRange(CellReference(Position(1, 0)), CellReference(Position(1, 1)))
        cells = [at(0, 2, Expr(SumProduct(left, right))), at(1, 0, Str("q"))]
        assert assemble_grid(cells) == ',,"=SUMPRODUCT(A1:B1,A2:B2)"\nq,,\n'

    def test_no_cells(self) -> None:
        """Nothing to place, nothing to print."""
        assert assemble_grid([]) == ""

    def test_overlapping_cells_fail(self) -> None:
        """Two cells at one position never silently overwrite."""
        cells = [at(0, 0, Str("a")), at(3, 2, Str("b")), at(3, 2, Str("c"))]
        result = assemble_grid(cells)
        assert isinstance(result, Failure)
        assert result.kind == FailureKind.OVERLAPPING_CELLS
        assert result.position == Position(3, 2)


class TestParseGrid:
    """Structural round trip through the text form."""

    def test_round_trip(self) -> None:
        """Re-reading the grid recovers every non-empty rendered cell."""
        left = CellRange(CellReference(Position(1, 0)), CellReference(Position(1, 2)))
        right = CellRange(CellReference(Position(2, 0)), CellReference(Position(2, 2)))
        cells = [
            at(0, 0, Str("name, with comma")),
            at(0, 3, Str("header")),
            at(1, 1, Expr(Percentage(Fraction(1, 45)))),
            at(2, 2, Expr(SumProduct(left, right))),
            at(4, 0, Str("total")),
        ]
        text = assemble_grid(cells)
        assert isinstance(text, str)

        expected = {(c.position.row, c.position.col): render_value(c.value) for c in cells}
        assert parse_grid(text) == expected

    def test_empty_text(self) -> None:
        """No rows, no cells."""
        assert parse_grid("") == {}


class TestPreviewTable:
    """Tests for the rich preview."""

    def test_table_shape(self) -> None:
        """One column per grid column plus the row-number column."""
        table = preview_table("a,b,c\nd,,f\n", title="loaf")
        assert isinstance(table, Table)
        assert len(table.columns) == 4
        assert table.row_count == 2
        assert [col.header for col in table.columns] == ["", "A", "B", "C"]
