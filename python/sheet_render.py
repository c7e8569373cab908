"""
Formula text rendering for doughgrid expressions.

Rendering is recursive and side-effect free. Binary operations are always
fully parenthesized, so no precedence rules are needed and the output
re-parses the same way in any spreadsheet engine.
"""

from __future__ import annotations

from fractions import Fraction

from sheet_types import (
    BinaryOp,
    CellRange,
    CellReference,
    CellValue,
    Empty,
    Expr,
    Expression,
    Number,
    Percentage,
    Reference,
    Str,
    Sum,
    SumProduct,
)

__all__ = [
    "column_label",
    "row_label",
    "format_decimal",
    "render_reference",
    "render_range",
    "render_expression",
    "render_value",
]

DEFAULT_PLACES = 3


def column_label(col: int) -> str:
    """
    Label for a zero-based column index.

    Repeated-letter scheme: the letter is 'A' + (col mod 26), repeated
    (col div 26) + 1 times. Column 25 is "Z", 26 is "AA", 27 is "BB",
    29 is "DD". This is not the bijective base-26 naming spreadsheets use
    past column Z; existing sheets depend on it.
    """
    if col < 0:
        raise ValueError(f"Column index must be non-negative, got {col}")
    return chr(ord("A") + col % 26) * (col // 26 + 1)


def row_label(row: int) -> str:
    """Label for a zero-based row index (1-based in the sheet)."""
    if row < 0:
        raise ValueError(f"Row index must be non-negative, got {row}")
    return str(row + 1)


def format_decimal(value: Fraction | int, places: int = DEFAULT_PLACES) -> str:
    """
    Round to `places` decimals, half to even, and drop trailing zeros.

    Rounding is exact: the value is scaled as a Fraction and rounded with
    Python's round(), so 2.0005 -> "2" and 2.0015 -> "2.002".
    """
    scale = 10**places
    scaled = round(Fraction(value) * scale)
    sign = "-" if scaled < 0 else ""
    whole, frac = divmod(abs(scaled), scale)
    if frac == 0:
        return f"{sign}{whole}"
    digits = f"{frac:0{places}d}".rstrip("0")
    return f"{sign}{whole}.{digits}"


def render_reference(ref: CellReference) -> str:
    """Render as [$]COL[$]ROW."""
    col_prefix = "$" if ref.fix_col else ""
    row_prefix = "$" if ref.fix_row else ""
    return f"{col_prefix}{column_label(ref.col)}{row_prefix}{row_label(ref.row)}"


def render_range(cells: CellRange) -> str:
    """Render as <start>:<end>."""
    return f"{render_reference(cells.start)}:{render_reference(cells.end)}"


def render_expression(expr: Expression, places: int = DEFAULT_PLACES) -> str:
    """Render an expression tree to formula text (without the leading '=')."""
    match expr:
        case BinaryOp(op=op, left=left, right=right):
            return f"({render_expression(left, places)}{op.value}{render_expression(right, places)})"
        case Number(value=value):
            return format_decimal(value, places)
        case Percentage(value=value):
            return f"{format_decimal(Fraction(value) * 100, places)}%"
        case Reference(ref=ref):
            return render_reference(ref)
        case Sum(cells=cells):
            return f"SUM({render_range(cells)})"
        case SumProduct(left=left, right=right):
            if len(left) != len(right):
                raise ValueError(
                    f"DimensionMismatch: SUMPRODUCT ranges have lengths {len(left)} and {len(right)}: "
                    f"{render_range(left)}, {render_range(right)}"
                )
            return f"SUMPRODUCT({render_range(left)},{render_range(right)})"
        case _:
            raise TypeError(f"Unknown expression type: {expr!r}")


def render_value(value: CellValue, places: int = DEFAULT_PLACES) -> str:
    """Render a cell value: formulas get a leading '=', empty cells are ''."""
    match value:
        case Str(text=text):
            return text
        case Expr(expression=expression):
            return f"={render_expression(expression, places)}"
        case Empty():
            return ""
        case _:
            raise TypeError(f"Unknown cell value type: {value!r}")
