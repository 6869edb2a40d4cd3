"""
Normalize raw spreadsheet cells into a tagged union.

Cells arrive as whatever the spreadsheet reader produced: ints, floats, numpy
scalars, strings, ``None`` or NaN. Every analyzer works on the normalized
form so that parsing pattern-matches over exactly three cases.
"""

# Normalization rules: None, NaN and blank strings are empty; bools are text
# (a True in a data column is not a concentration); numpy scalars are numbers.

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

_LEADING_FLOAT = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


@dataclass(frozen=True)
class NumberCell:
    value: float


@dataclass(frozen=True)
class TextCell:
    text: str


@dataclass(frozen=True)
class EmptyCell:
    pass


Cell = Union[NumberCell, TextCell, EmptyCell]
CellGrid = Tuple[Tuple[Cell, ...], ...]

EMPTY = EmptyCell()


def to_cell(value: Any) -> Cell:
    """Classify one raw value as a number, text or empty cell."""
    if isinstance(value, (NumberCell, TextCell, EmptyCell)):
        return value
    if value is None:
        return EMPTY
    if isinstance(value, (bool, np.bool_)):
        return TextCell(str(bool(value)))
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
        if math.isnan(number):
            return EMPTY
        return NumberCell(number)
    if isinstance(value, str):
        text = value.strip()
        return TextCell(text) if text else EMPTY
    text = str(value).strip()
    return TextCell(text) if text else EMPTY


def leading_float(text: str) -> Optional[float]:
    """Return the number a string starts with, or ``None``.

    ``"10 nM"`` gives ``10.0``; ``"Response 1"`` gives ``None``.
    """
    match = _LEADING_FLOAT.match(text)
    if match is None:
        return None
    return float(match.group(1))


def numeric_value(cell: Cell) -> Optional[float]:
    """Return the numeric reading of a cell, or ``None`` for non-numeric cells."""
    if isinstance(cell, NumberCell):
        return cell.value
    if isinstance(cell, TextCell):
        return leading_float(cell.text)
    return None


def is_numeric(cell: Cell) -> bool:
    return numeric_value(cell) is not None


def is_text(cell: Cell) -> bool:
    """True for text cells that do not start with a number."""
    return isinstance(cell, TextCell) and leading_float(cell.text) is None


def is_empty(cell: Cell) -> bool:
    return isinstance(cell, EmptyCell)


def normalize_grid(raw: Sequence[Sequence[Any]]) -> CellGrid:
    """Convert a raw grid to a tuple-of-tuples of cells without touching the input."""
    return tuple(tuple(to_cell(value) for value in row) for row in raw)


def grid_problem(raw: Any) -> Optional[str]:
    """Describe why a raw grid cannot be analyzed, or return ``None`` if it can.

    A usable grid is a non-empty sequence of equally long, non-empty rows.
    """
    if raw is None or isinstance(raw, (str, bytes)):
        return "grid is not a sequence of rows"
    try:
        rows = list(raw)
    except TypeError:
        return "grid is not a sequence of rows"
    if not rows:
        return "grid is empty"
    widths = set()
    for row in rows:
        if row is None or isinstance(row, (str, bytes)):
            return "grid rows must be sequences of cells"
        try:
            widths.add(len(row))
        except TypeError:
            return "grid rows must be sequences of cells"
    if widths == {0}:
        return "grid has no columns"
    if len(widths) > 1:
        return f"grid is ragged (row widths {sorted(widths)})"
    return None


def column(grid: CellGrid, index: int, start: int = 0, end: Optional[int] = None) -> Tuple[Cell, ...]:
    """Return cells of one column between ``start`` and ``end`` (inclusive)."""
    stop = len(grid) if end is None else end + 1
    return tuple(row[index] for row in grid[start:stop] if index < len(row))
