"""
Shared type definitions for the doughgrid system.

Spreadsheet addressing (Position, CellReference, CellRange), the formula
expression tree, cell values, and the Failure value returned by every
fallible operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction


class FailureKind(Enum):
    """Why a conversion was rejected."""

    INVALID_RANGE = "invalid_range"  # Range endpoints differ on both axes
    DIMENSION_MISMATCH = "dimension_mismatch"  # SUMPRODUCT over unequal ranges
    OVERLAPPING_CELLS = "overlapping_cells"  # Two cells at one position
    DUPLICATE_INGREDIENT_NAME = "duplicate_ingredient_name"
    DUPLICATE_COMPONENT_NAME = "duplicate_component_name"
    MISSING_ROOT_COMPONENT = "missing_root_component"  # Zero or several roots
    CYCLIC_REFERENCE = "cyclic_reference"
    DISCONNECTED_COMPONENT = "disconnected_component"  # Unreachable from root
    MISSING_FLOUR = "missing_flour"  # Component has no flour mass
    INVALID_MASS = "invalid_mass"  # Mass is zero or negative


@dataclass(frozen=True)
class Position:
    """A zero-based (row, col) coordinate in the output grid."""

    row: int
    col: int


@dataclass(frozen=True)
class Failure:
    """
    A rejected conversion step.

    Returned (never raised) by fallible operations. `name` and `position`
    carry whatever context locates the problem in the source recipe.
    """

    kind: FailureKind
    details: str
    name: str | None = None
    position: Position | None = None

    def __str__(self) -> str:
        context = ""
        if self.name is not None:
            context += f" [{self.name}]"
        if self.position is not None:
            context += f" at ({self.position.row}, {self.position.col})"
        return f"{self.kind.value}{context}: {self.details}"


# =============================================================================
# Addressing
# =============================================================================


@dataclass(frozen=True)
class CellReference:
    """A reference to a cell; fixed axes render with a `$` prefix."""

    position: Position
    fix_row: bool = False
    fix_col: bool = False

    @property
    def row(self) -> int:
        return self.position.row

    @property
    def col(self) -> int:
        return self.position.col


@dataclass(frozen=True)
class CellRange:
    """
    A one-dimensional run of cells, vertical (same column) or horizontal
    (same row). `cell_range` reports a bad shape as a Failure; building one
    directly with a bad shape is a programming error and raises.
    """

    start: CellReference
    end: CellReference

    def __post_init__(self) -> None:
        if self.start.row != self.end.row and self.start.col != self.end.col:
            raise ValueError(
                f"CellRange endpoints ({self.start.row}, {self.start.col}) and "
                f"({self.end.row}, {self.end.col}) share neither a row nor a column"
            )

    @property
    def is_vertical(self) -> bool:
        return self.start.col == self.end.col

    def __len__(self) -> int:
        if self.is_vertical:
            return abs(self.end.row - self.start.row) + 1
        return abs(self.end.col - self.start.col) + 1


def cell_range(start: CellReference, end: CellReference) -> CellRange | Failure:
    """
    Build a range, rejecting endpoints that differ on both axes.

    A single-cell range (both axes equal) is accepted and has length 1.
    """
    if start.row != end.row and start.col != end.col:
        return Failure(
            FailureKind.INVALID_RANGE,
            f"range endpoints ({start.row}, {start.col}) and ({end.row}, {end.col}) "
            f"must share a row or a column",
            position=start.position,
        )
    return CellRange(start, end)


# =============================================================================
# Expressions
# =============================================================================


class Op(Enum):
    """Binary operator, valued by its formula symbol."""

    ADD = "+"
    SUB = "-"
    MULT = "*"
    DIV = "/"


@dataclass(frozen=True)
class Number:
    """An exact numeric literal."""

    value: Fraction


@dataclass(frozen=True)
class Percentage:
    """A ratio literal: 1 renders as 100%."""

    value: Fraction


@dataclass(frozen=True)
class Reference:
    """Points at another cell."""

    ref: CellReference


@dataclass(frozen=True)
class Sum:
    """SUM over a range."""

    cells: CellRange


@dataclass(frozen=True)
class SumProduct:
    """SUMPRODUCT over two equal-length ranges. Build through `sum_product`."""

    left: CellRange
    right: CellRange


@dataclass(frozen=True)
class BinaryOp:
    """Binary operation; owns both operand subtrees."""

    op: Op
    left: Expression
    right: Expression


Expression = Number | Percentage | Reference | Sum | SumProduct | BinaryOp


def sum_product(left: CellRange, right: CellRange) -> SumProduct | Failure:
    """Build a SumProduct, rejecting ranges of unequal length."""
    if len(left) != len(right):
        return Failure(
            FailureKind.DIMENSION_MISMATCH,
            f"SUMPRODUCT ranges have lengths {len(left)} and {len(right)}",
            position=left.start.position,
        )
    return SumProduct(left, right)


# =============================================================================
# Cell Values
# =============================================================================


@dataclass(frozen=True)
class Str:
    """Verbatim text."""

    text: str


@dataclass(frozen=True)
class Expr:
    """A live formula."""

    expression: Expression


@dataclass(frozen=True)
class Empty:
    """An empty cell."""

    pass


CellValue = Str | Expr | Empty


@dataclass(frozen=True)
class Cell:
    """A value placed at a grid position."""

    value: CellValue
    position: Position
