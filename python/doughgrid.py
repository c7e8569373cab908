"""
Dough formula -> live spreadsheet grid.

A recipe is a tree of components (pre-ferments, soakers, the final mix)
whose ingredients are baker's percentages of the component's flour. The
conversion runs in fixed stages, each a pure function of the previous
one's output:

    build_formula -> validate_formula -> order_formula -> plan_layout
        -> synthesize_contributions -> layout_cells -> assemble_grid

Any stage may return a Failure, which aborts the conversion.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from functools import reduce
from typing import Iterable

from csv_grid import assemble_grid
from sheet_types import (
    BinaryOp,
    Cell,
    CellRange,
    CellReference,
    Empty,
    Expr,
    Expression,
    Failure,
    FailureKind,
    Number,
    Op,
    Percentage,
    Position,
    Reference,
    Str,
    Sum,
    cell_range,
    sum_product,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SheetRules:
    """Rules governing sheet shape and rendering."""

    root_name: str = "mix"
    row_offset: int = 1  # Row 0 holds headers
    col_offset: int = 2  # Column 0 holds labels, column 1 the dough %
    dough_col: int = 1
    decimal_places: int = 3
    mirror_labels: bool = True
    default_flour_mass: int = 1000  # Used when the root carries no flour mass


# =============================================================================
# Data Structures: Recipe Input
# =============================================================================


@dataclass(frozen=True)
class IngredientInput:
    """An ingredient line as parsed: name, mass, and whether it is flour."""

    name: str
    mass: Fraction
    is_flour: bool


@dataclass(frozen=True)
class ComponentInput:
    """A component as parsed, ingredients in source order."""

    name: str
    ingredients: tuple[IngredientInput, ...]


@dataclass(frozen=True)
class RecipeInput:
    """A parsed recipe, components in source order."""

    name: str
    components: tuple[ComponentInput, ...]


# =============================================================================
# Data Structures: Formula
# =============================================================================


@dataclass(frozen=True)
class Flour:
    """A flour ingredient; percentage of the component's flour mass."""

    percentage: Fraction


@dataclass(frozen=True)
class NonFlour:
    """A non-flour ingredient (or a component used as one)."""

    percentage: Fraction


Ingredient = Flour | NonFlour


@dataclass(frozen=True)
class Component:
    """
    A named sub-recipe.

    An ingredient whose name matches another component is an edge: this
    component consumes that one.
    """

    name: str
    ingredients: dict[str, Ingredient]
    flour_mass: Fraction | None = None  # Source flour mass, when known


@dataclass(frozen=True)
class DoughFormula:
    """A whole recipe: components keyed by name plus ingredient classification."""

    name: str
    components: dict[str, Component]
    flour: frozenset[str]
    non_flour: frozenset[str]
    root: str = "mix"


def build_formula(recipe: RecipeInput, root: str = "mix") -> DoughFormula | Failure:
    """
    Convert parsed recipe input into a DoughFormula of baker's percentages.

    Each ingredient's percentage is its mass divided by the total flour mass
    of its component, computed exactly.

    Args:
        recipe: The parsed recipe
        root: Name of the component representing the final dough

    Returns:
        The formula, or a Failure naming the first offending component or
        ingredient
    """
    root_count = sum(1 for comp in recipe.components if comp.name == root)
    if root_count != 1:
        return Failure(
            FailureKind.MISSING_ROOT_COMPONENT,
            f"recipe must have exactly one component named '{root}', found {root_count}",
            name=root,
        )

    components: dict[str, Component] = {}
    flour: set[str] = set()
    non_flour: set[str] = set()

    for comp in recipe.components:
        if comp.name in components:
            return Failure(
                FailureKind.DUPLICATE_COMPONENT_NAME,
                f"component '{comp.name}' is defined more than once",
                name=comp.name,
            )

        seen: set[str] = set()
        for ing in comp.ingredients:
            if ing.name in seen:
                return Failure(
                    FailureKind.DUPLICATE_INGREDIENT_NAME,
                    f"ingredient '{ing.name}' is listed twice in component '{comp.name}'",
                    name=ing.name,
                )
            seen.add(ing.name)
            if Fraction(ing.mass) <= 0:
                return Failure(
                    FailureKind.INVALID_MASS,
                    f"ingredient '{ing.name}' in component '{comp.name}' has mass {ing.mass}; "
                    f"masses must be positive",
                    name=ing.name,
                )

        flour_mass = sum((Fraction(ing.mass) for ing in comp.ingredients if ing.is_flour), Fraction(0))
        if flour_mass == 0:
            return Failure(
                FailureKind.MISSING_FLOUR,
                f"component '{comp.name}' has no flour, so baker's percentages are undefined",
                name=comp.name,
            )

        ingredients: dict[str, Ingredient] = {}
        for ing in comp.ingredients:
            percentage = Fraction(ing.mass) / flour_mass
            if ing.is_flour:
                flour.add(ing.name)
                ingredients[ing.name] = Flour(percentage)
            else:
                non_flour.add(ing.name)
                ingredients[ing.name] = NonFlour(percentage)

        components[comp.name] = Component(comp.name, ingredients, flour_mass)

    return DoughFormula(recipe.name, components, frozenset(flour), frozenset(non_flour), root)


def sort_ingredient_names(names: Iterable[str], flour: frozenset[str]) -> list[str]:
    """Flour names first, then the rest; each group in descending order."""
    names = list(names)
    flour_names = sorted((n for n in names if n in flour), reverse=True)
    other_names = sorted((n for n in names if n not in flour), reverse=True)
    return flour_names + other_names


def component_edges(formula: DoughFormula, name: str) -> list[str]:
    """Components consumed directly by `name`, in row order."""
    comp = formula.components[name]
    return [
        ing_name
        for ing_name in sort_ingredient_names(comp.ingredients, formula.flour)
        if ing_name in formula.components
    ]


# =============================================================================
# Validation
# =============================================================================


class VisitState(Enum):
    """DFS node state. Absent from the state map means unvisited."""

    ON_PATH = "on_path"  # On the current recursion stack
    VISITED = "visited"  # Finished


@dataclass(frozen=True)
class ValidatedFormula:
    """A formula that passed validation; the only input layout accepts."""

    formula: DoughFormula


def _find_overlap(formula: DoughFormula) -> str | None:
    overlap = formula.flour & formula.non_flour
    return max(overlap) if overlap else None


def _depth_first_check(formula: DoughFormula) -> dict[str, VisitState] | Failure:
    """
    DFS from the root, failing on the first edge back into the current path.

    Returns:
        The final state map (every reached component VISITED), or a Failure
    """
    state: dict[str, VisitState] = {}
    path: list[str] = []

    def visit(name: str) -> Failure | None:
        state[name] = VisitState.ON_PATH
        path.append(name)
        for child in component_edges(formula, name):
            child_state = state.get(child)
            if child_state is VisitState.ON_PATH:
                cycle = path[path.index(child):] + [child]
                return Failure(
                    FailureKind.CYCLIC_REFERENCE,
                    f"component may not reference itself, directly or indirectly: "
                    f"{' -> '.join(cycle)}",
                    name=child,
                )
            if child_state is None:
                failure = visit(child)
                if failure is not None:
                    return failure
        path.pop()
        state[name] = VisitState.VISITED
        return None

    failure = visit(formula.root)
    if failure is not None:
        return failure
    return state


def validate_formula(formula: DoughFormula) -> ValidatedFormula | Failure:
    """
    Check every structural invariant before any layout work.

    - the root component exists
    - no ingredient is classified as both flour and non-flour
    - every component has some flour
    - the component graph is acyclic
    - the root reaches every component

    Returns:
        ValidatedFormula on success, else the first Failure found
    """
    if formula.root not in formula.components:
        return Failure(
            FailureKind.MISSING_ROOT_COMPONENT,
            f"recipe must have exactly one component named '{formula.root}', found 0",
            name=formula.root,
        )

    overlap = _find_overlap(formula)
    if overlap is not None:
        return Failure(
            FailureKind.DUPLICATE_INGREDIENT_NAME,
            f"ingredient '{overlap}' is classified as both flour and non-flour",
            name=overlap,
        )

    for name in sorted(formula.components):
        comp = formula.components[name]
        if not any(isinstance(ing, Flour) for ing in comp.ingredients.values()):
            return Failure(
                FailureKind.MISSING_FLOUR,
                f"component '{name}' has no flour, so baker's percentages are undefined",
                name=name,
            )

    state = _depth_first_check(formula)
    if isinstance(state, Failure):
        return state

    if len(state) < len(formula.components):
        unreachable = sorted(set(formula.components) - set(state))
        return Failure(
            FailureKind.DISCONNECTED_COMPONENT,
            f"{formula.root} must reference all components directly or indirectly; "
            f"unreachable: {', '.join(unreachable)}",
            name=unreachable[0],
        )

    logger.debug("validate_formula: %s accepted (%d components)", formula.name, len(state))
    return ValidatedFormula(formula)


# =============================================================================
# Ordering
# =============================================================================


@dataclass(frozen=True)
class Ordering:
    """Row order of ingredients and column order of components (leaves first)."""

    ingredients: tuple[str, ...]
    components: tuple[str, ...]


def order_ingredients(formula: DoughFormula) -> tuple[str, ...] | Failure:
    """All ingredient names: flour descending, then non-flour descending."""
    overlap = _find_overlap(formula)
    if overlap is not None:
        return Failure(
            FailureKind.DUPLICATE_INGREDIENT_NAME,
            f"ingredient '{overlap}' is classified as both flour and non-flour",
            name=overlap,
        )
    return tuple(sort_ingredient_names(formula.flour | formula.non_flour, formula.flour))


def order_components(formula: DoughFormula) -> tuple[str, ...]:
    """
    Breadth-first order from the root, each component listed once.

    The result runs root first (distance from root); reverse it for a
    leaves-first column order.
    """
    order: list[str] = [formula.root]
    queue: deque[str] = deque([formula.root])
    while queue:
        current = queue.popleft()
        for child in component_edges(formula, current):
            if child not in order:
                order.append(child)
                queue.append(child)
    return tuple(order)


def component_parents(formula: DoughFormula, ordering: Ordering, name: str) -> list[str]:
    """Components that use `name` as an ingredient, root first."""
    return [
        parent
        for parent in reversed(ordering.components)
        if name in component_edges(formula, parent)
    ]


def order_formula(validated: ValidatedFormula) -> Ordering | Failure:
    """Row and column orders for a validated formula."""
    ingredients = order_ingredients(validated.formula)
    if isinstance(ingredients, Failure):
        return ingredients
    components = tuple(reversed(order_components(validated.formula)))
    return Ordering(ingredients, components)


# =============================================================================
# Layout
# =============================================================================


@dataclass(frozen=True)
class SheetLayout:
    """
    Grid coordinates for every part of the sheet.

    Component j (leaves first) owns a percentage column and, to its right,
    a value column (grams).
    """

    rules: SheetRules
    ingredient_rows: dict[str, int]
    percent_cols: dict[str, int]
    total_row: int
    flour_row: int
    share_row: int
    weight_row: int
    first_col: int
    last_col: int  # Value column of the last component
    mirror_col: int

    def value_col(self, component: str) -> int:
        return self.percent_cols[component] + 1

    def percent_position(self, component: str, ingredient: str) -> Position:
        return Position(self.ingredient_rows[ingredient], self.percent_cols[component])

    def value_position(self, component: str, ingredient: str) -> Position:
        return Position(self.ingredient_rows[ingredient], self.value_col(component))

    def flour_position(self, component: str) -> Position:
        return Position(self.flour_row, self.value_col(component))

    def share_position(self, component: str) -> Position:
        return Position(self.share_row, self.percent_cols[component])

    def weight_position(self, component: str) -> Position:
        return Position(self.weight_row, self.percent_cols[component])


def plan_layout(
    validated: ValidatedFormula,
    ordering: Ordering,
    rules: SheetRules = SheetRules(),
) -> SheetLayout:
    """Assign rows to ingredients and column pairs to components."""
    assert isinstance(validated, ValidatedFormula), "layout requires a validated formula"
    assert isinstance(ordering, Ordering), "layout requires a computed ordering"

    n = len(ordering.ingredients)
    k = len(ordering.components)
    ingredient_rows = {name: rules.row_offset + i for i, name in enumerate(ordering.ingredients)}
    percent_cols = {name: rules.col_offset + 2 * j for j, name in enumerate(ordering.components)}

    return SheetLayout(
        rules=rules,
        ingredient_rows=ingredient_rows,
        percent_cols=percent_cols,
        total_row=rules.row_offset + n,
        flour_row=rules.row_offset + n + 1,
        share_row=rules.row_offset + n + 2,
        weight_row=rules.row_offset + n + 3,
        first_col=rules.col_offset,
        last_col=rules.col_offset + 2 * k - 1,
        mirror_col=rules.col_offset + 2 * k,
    )


# =============================================================================
# Contribution Synthesis
# =============================================================================


def _fixed(position: Position) -> Reference:
    return Reference(CellReference(position, fix_row=True, fix_col=True))


def synthesize_contributions(
    validated: ValidatedFormula,
    layout: SheetLayout,
) -> dict[str, Expression]:
    """
    Build each non-root component's share of the final mix.

    Walks every root-to-component path. Along a path the share is the
    product of the percentage cells at each hop (left-folded); a component
    reached by several paths gets the sum of the per-path products, in
    traversal order. References are fully fixed so the formulas survive
    copy and paste.

    Args:
        validated: The formula; its graph is known to be acyclic
        layout: Cell coordinates for the percentage cells

    Returns:
        Component name -> share expression, for every component but the root
    """
    formula = validated.formula
    contributions: dict[str, Expression] = {}

    def walk(name: str, path: tuple[Reference, ...]) -> None:
        if name != formula.root:
            product: Expression = reduce(
                lambda acc, hop: BinaryOp(Op.MULT, acc, hop), path[1:], path[0]
            )
            previous = contributions.get(name)
            if previous is None:
                contributions[name] = product
            else:
                contributions[name] = BinaryOp(Op.ADD, previous, product)
        for child in component_edges(formula, name):
            hop = _fixed(layout.percent_position(name, child))
            walk(child, path + (hop,))

    walk(formula.root, ())
    logger.debug("synthesize_contributions: %d shares", len(contributions))
    return contributions


# =============================================================================
# Cell Generation
# =============================================================================


def _row_range(row: int, first_col: int, last_col: int, fix_row: bool) -> CellRange | Failure:
    return cell_range(
        CellReference(Position(row, first_col), fix_row=fix_row, fix_col=True),
        CellReference(Position(row, last_col), fix_row=fix_row, fix_col=True),
    )


def _column_sum(col: int, first_row: int, last_row: int) -> Expression | Failure:
    cells = cell_range(
        CellReference(Position(first_row, col)),
        CellReference(Position(last_row, col)),
    )
    if isinstance(cells, Failure):
        return cells
    return Sum(cells)


def layout_cells(
    validated: ValidatedFormula,
    ordering: Ordering,
    layout: SheetLayout,
) -> list[Cell] | Failure:
    """
    Produce every cell of the sheet.

    Args:
        validated: The validated formula
        ordering: Row/column orders used to build `layout`
        layout: Coordinates from plan_layout

    Returns:
        The cells, or a Failure if a range or SUMPRODUCT could not be built
    """
    formula = validated.formula
    rules = layout.rules
    root = formula.root
    first_row = rules.row_offset
    last_row = layout.total_row - 1
    cells: list[Cell] = []

    def put(row: int, col: int, value: Str | Expr | Empty) -> None:
        cells.append(Cell(value, Position(row, col)))

    # Labels
    put(0, 0, Str(formula.name))
    put(0, rules.dough_col, Str("dough %"))
    for name in ordering.ingredients:
        put(layout.ingredient_rows[name], 0, Str(name))
    put(layout.total_row, 0, Str("total"))
    put(layout.flour_row, 0, Str("flour"))
    put(layout.share_row, 0, Str("share"))
    put(layout.weight_row, 0, Str("flour share"))

    # Component columns
    for comp_name in ordering.components:
        comp = formula.components[comp_name]
        pcol = layout.percent_cols[comp_name]
        vcol = layout.value_col(comp_name)
        flour_ref = Reference(CellReference(layout.flour_position(comp_name), fix_row=True))

        put(0, pcol, Str(comp_name))
        put(0, vcol, Str("g"))

        for ing_name, ing in comp.ingredients.items():
            pct_pos = layout.percent_position(comp_name, ing_name)
            val_pos = layout.value_position(comp_name, ing_name)
            put(pct_pos.row, pct_pos.col, Expr(Percentage(ing.percentage)))
            mass = BinaryOp(Op.MULT, Reference(CellReference(pct_pos)), flour_ref)
            put(val_pos.row, val_pos.col, Expr(mass))

        for col in (pcol, vcol):
            total = _column_sum(col, first_row, last_row)
            if isinstance(total, Failure):
                return total
            put(layout.total_row, col, Expr(total))

    # Flour, share and flour-share rows. A component's flour is the mass its
    # parents use of it, divided by its own percentage total. The flour share
    # is that flour over the flour of the whole dough.
    contributions = synthesize_contributions(validated, layout)
    root_flour = formula.components[root].flour_mass
    if root_flour is None:
        root_flour = Fraction(rules.default_flour_mass)
    flour_range = _row_range(layout.flour_row, layout.first_col, layout.last_col, fix_row=True)
    if isinstance(flour_range, Failure):
        return flour_range
    for comp_name in ordering.components:
        share_pos = layout.share_position(comp_name)
        weight_pos = layout.weight_position(comp_name)
        flour_pos = layout.flour_position(comp_name)
        if comp_name == root:
            put(share_pos.row, share_pos.col, Expr(Percentage(Fraction(1))))
            put(flour_pos.row, flour_pos.col, Expr(Number(root_flour)))
        else:
            used: Expression = reduce(
                lambda acc, hop: BinaryOp(Op.ADD, acc, hop),
                [
                    BinaryOp(
                        Op.MULT,
                        _fixed(layout.flour_position(parent)),
                        _fixed(layout.percent_position(parent, comp_name)),
                    )
                    for parent in component_parents(formula, ordering, comp_name)
                ],
            )
            total_pos = Position(layout.total_row, layout.percent_cols[comp_name])
            flour = BinaryOp(Op.DIV, used, Reference(CellReference(total_pos, fix_row=True)))
            put(share_pos.row, share_pos.col, Expr(contributions[comp_name]))
            put(flour_pos.row, flour_pos.col, Expr(flour))
        weight = BinaryOp(
            Op.DIV,
            Reference(CellReference(flour_pos, fix_row=True)),
            Sum(flour_range),
        )
        put(weight_pos.row, weight_pos.col, Expr(weight))

    # Dough % column: each raw ingredient weighted by every component's flour
    # share. Value columns are empty on the flour-share row, so they add zero.
    weight_range = _row_range(layout.weight_row, layout.first_col, layout.last_col, fix_row=True)
    if isinstance(weight_range, Failure):
        return weight_range
    for name in ordering.ingredients:
        if name in formula.components:
            continue
        row = layout.ingredient_rows[name]
        row_range = _row_range(row, layout.first_col, layout.last_col, fix_row=False)
        if isinstance(row_range, Failure):
            return row_range
        weighted = sum_product(row_range, weight_range)
        if isinstance(weighted, Failure):
            return weighted
        put(row, rules.dough_col, Expr(weighted))
    dough_total = _column_sum(rules.dough_col, first_row, last_row)
    if isinstance(dough_total, Failure):
        return dough_total
    put(layout.total_row, rules.dough_col, Expr(dough_total))

    # Mirror labels on the right edge
    if rules.mirror_labels:
        labelled_rows = [
            0,
            *layout.ingredient_rows.values(),
            layout.total_row,
            layout.flour_row,
            layout.share_row,
            layout.weight_row,
        ]
        for row in labelled_rows:
            put(row, layout.mirror_col, Expr(Reference(CellReference(Position(row, 0)))))

    return cells


# =============================================================================
# Pipeline
# =============================================================================


def convert_formula(formula: DoughFormula, rules: SheetRules = SheetRules()) -> str | Failure:
    """Validate, lay out and render an already-built formula."""
    validated = validate_formula(formula)
    if isinstance(validated, Failure):
        logger.warning("convert: %s", validated)
        return validated

    ordering = order_formula(validated)
    if isinstance(ordering, Failure):
        logger.warning("convert: %s", ordering)
        return ordering

    logger.info(
        "convert: formula=%s components=%d ingredients=%d",
        formula.name,
        len(ordering.components),
        len(ordering.ingredients),
    )

    layout = plan_layout(validated, ordering, rules)
    cells = layout_cells(validated, ordering, layout)
    if isinstance(cells, Failure):
        logger.warning("convert: %s", cells)
        return cells

    return assemble_grid(cells, rules.decimal_places)


def convert(recipe: RecipeInput, rules: SheetRules = SheetRules()) -> str | Failure:
    """
    Convert a parsed recipe into spreadsheet text with live formulas.

    Args:
        recipe: The parsed recipe
        rules: Sheet shape and rendering rules

    Returns:
        Comma-separated grid text, one line per row, or the first Failure
    """
    formula = build_formula(recipe, rules.root_name)
    if isinstance(formula, Failure):
        logger.warning("convert: %s", formula)
        return formula
    return convert_formula(formula, rules)
