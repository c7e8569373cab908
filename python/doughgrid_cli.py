"""
Command-line entry point: convert a YAML recipe into a spreadsheet CSV.

    doughgrid recipe.yaml                 # CSV to stdout
    doughgrid recipe.yaml -o loaf.csv     # CSV to a file
    doughgrid recipe.yaml --preview       # also show the grid as a table
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import simple_chalk as chalk  # type: ignore[import-untyped]
from rich.console import Console

from csv_grid import preview_table
from doughgrid import SheetRules, convert
from recipe_parser import RecipeParseError, load_recipe
from sheet_types import Failure


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doughgrid",
        description="Convert a dough recipe into a spreadsheet with live baker's percentage formulas.",
    )
    parser.add_argument("recipe", type=Path, help="YAML recipe file")
    parser.add_argument("-o", "--output", type=Path, help="write CSV here instead of stdout")
    parser.add_argument("--preview", action="store_true", help="print the grid as a table")
    parser.add_argument("--root", default="mix", help="name of the final-dough component")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        recipe = load_recipe(args.recipe)
    except RecipeParseError as exc:
        print(chalk.red(f"✗ {exc}"), file=sys.stderr)
        return 1

    result = convert(recipe, SheetRules(root_name=args.root))
    if isinstance(result, Failure):
        print(chalk.red(f"✗ {recipe.name}: {result}"), file=sys.stderr)
        return 1

    if args.output is not None:
        args.output.write_text(result, encoding="utf-8")
        print(chalk.green(f"✓ Wrote {args.output}"), file=sys.stderr)
    else:
        sys.stdout.write(result)

    if args.preview:
        Console(stderr=args.output is None).print(preview_table(result, title=recipe.name))

    return 0


if __name__ == "__main__":
    sys.exit(main())
