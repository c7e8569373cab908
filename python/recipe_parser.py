"""
Recipe parsing for doughgrid.

Reads the YAML recipe format into a RecipeInput. Each ingredient is a
[name, mass, is_flour] triple:

    name: Country loaf
    components:
      - name: levain
        ingredients:
          - [bread flour, 50, true]
          - [water, 50, false]
      - name: mix
        ingredients:
          - [bread flour, 450, true]
          - [water, 300, false]
          - [levain, 100, false]
"""

from __future__ import annotations

from fractions import Fraction
from pathlib import Path
from typing import Any

import yaml

from doughgrid import ComponentInput, IngredientInput, RecipeInput

__all__ = ["RecipeParseError", "parse_recipe", "load_recipe"]


class RecipeParseError(ValueError):
    """The recipe document does not have the expected shape."""


def _parse_mass(value: Any, where: str) -> Fraction:
    # bool is an int subclass; a flag in the mass slot is a mistake
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise RecipeParseError(f"Invalid mass {value!r}\n  {where}\n  Mass must be a number")
    try:
        return Fraction(str(value))
    except ValueError as exc:
        raise RecipeParseError(f"Invalid mass {value!r}\n  {where}\n  Mass must be a number") from exc


def _parse_ingredient(entry: Any, where: str) -> IngredientInput:
    if not isinstance(entry, list) or len(entry) != 3:
        raise RecipeParseError(
            f"Invalid ingredient {entry!r}\n"
            f"  {where}\n"
            f"  Expected a [name, mass, is_flour] triple, e.g. [water, 300, false]"
        )
    name, mass, is_flour = entry
    if not isinstance(name, str) or not name:
        raise RecipeParseError(f"Invalid ingredient name {name!r}\n  {where}")
    if not isinstance(is_flour, bool):
        raise RecipeParseError(
            f"Invalid flour flag {is_flour!r} for '{name}'\n"
            f"  {where}\n"
            f"  Expected true or false"
        )
    return IngredientInput(name, _parse_mass(mass, where), is_flour)


def _parse_component(entry: Any, index: int) -> ComponentInput:
    if not isinstance(entry, dict):
        raise RecipeParseError(f"Component {index} must be a mapping with 'name' and 'ingredients'")

    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise RecipeParseError(f"Component {index} is missing a 'name'")

    ingredients = entry.get("ingredients")
    if not isinstance(ingredients, list):
        raise RecipeParseError(
            f"Component '{name}' must have an 'ingredients' list\n"
            f"  Got: {ingredients!r}"
        )

    parsed = tuple(
        _parse_ingredient(ing, f"Component '{name}', ingredient {i}")
        for i, ing in enumerate(ingredients)
    )
    return ComponentInput(name, parsed)


def parse_recipe(text: str) -> RecipeInput:
    """
    Parse a recipe from YAML text.

    Only the document's shape is checked here; recipe-level rules (a single
    root, acyclic references, flour present) are checked by the converter.

    Raises:
        RecipeParseError: If the YAML is malformed or not shaped like a recipe
    """
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise RecipeParseError(f"Invalid YAML syntax - {exc}") from exc

    if not isinstance(doc, dict):
        raise RecipeParseError("Recipe must be a mapping with 'name' and 'components'")

    name = doc.get("name")
    if not isinstance(name, str) or not name:
        raise RecipeParseError("Recipe is missing a 'name'")

    components = doc.get("components")
    if not isinstance(components, list) or not components:
        raise RecipeParseError(f"Recipe '{name}' must have a non-empty 'components' list")

    return RecipeInput(
        name,
        tuple(_parse_component(comp, i) for i, comp in enumerate(components)),
    )


def load_recipe(path: str | Path) -> RecipeInput:
    """Read and parse a recipe file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RecipeParseError(f"{path}: Error reading file - {exc}") from exc
    try:
        return parse_recipe(text)
    except RecipeParseError as exc:
        raise RecipeParseError(f"{path}: {exc}") from exc
