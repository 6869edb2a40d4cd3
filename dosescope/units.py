"""Unit-aware concentration parsing and normalization to nanomolar.

A concentration cell is either a bare number (interpreted in a default unit,
usually the unit declared in the column header) or a string of the form
``<number> <unit>`` such as ``"100 nM"``, ``"0.1uM"`` or ``"2.5 µg/mL"``.

Parsing and normalization never raise on bad data. Each returns either a
success record or a :class:`ParseFailure` carrying the reason, so callers can
drop and count failures.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .grid import Cell, EmptyCell, NumberCell, TextCell, to_cell

CANONICAL_UNIT = "nM"

MOLAR_TO_NM: Dict[str, float] = {
    "M": 1e9,
    "mM": 1e6,
    "μM": 1e3,
    "nM": 1.0,
    "pM": 1e-3,
    "fM": 1e-6,
}

# Mass concentrations expressed in g/L; converting to molar needs a molecular weight.
MASS_TO_G_PER_L: Dict[str, float] = {
    "g/L": 1.0,
    "mg/mL": 1.0,
    "μg/mL": 1e-3,
    "ng/mL": 1e-6,
}

_ALIASES: Dict[str, str] = {
    "m": "M",
    "mol/l": "M",
    "mm": "mM",
    "mmol/l": "mM",
    "um": "μM",
    "μm": "μM",
    "µm": "μM",
    "umol/l": "μM",
    "μmol/l": "μM",
    "µmol/l": "μM",
    "nm": "nM",
    "nmol/l": "nM",
    "pm": "pM",
    "pmol/l": "pM",
    "fm": "fM",
    "g/l": "g/L",
    "mg/ml": "mg/mL",
    "ug/ml": "μg/mL",
    "μg/ml": "μg/mL",
    "µg/ml": "μg/mL",
    "ng/ml": "ng/mL",
}

_VALUE_WITH_UNIT = re.compile(
    r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([A-Za-zμµ/]*)\s*$"
)
_BRACKETED = re.compile(r"[\[(]\s*([^\])]+?)\s*[\])]")
_UNIT_TOKEN = re.compile(r"[A-Za-zμµ/]+")


@dataclass(frozen=True)
class ParsedConcentration:
    value: float
    unit: str
    original: str = ""


@dataclass(frozen=True)
class NormalizedConcentration:
    value: float
    source_unit: str
    unit: str = CANONICAL_UNIT


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    original: str = ""


ConcentrationParse = Union[ParsedConcentration, ParseFailure]
NormalizationResult = Union[NormalizedConcentration, ParseFailure]


def canonical_unit(token: str) -> Optional[str]:
    """Map a unit spelling to its canonical form, or ``None`` if unknown."""
    token = token.strip()
    if token in MOLAR_TO_NM or token in MASS_TO_G_PER_L:
        return token
    return _ALIASES.get(token.lower())


def is_known_unit(token: str) -> bool:
    return canonical_unit(token) is not None


def parse_concentration(cell: Any, default_unit: str = CANONICAL_UNIT) -> ConcentrationParse:
    """Parse one cell into a ``(value, unit)`` pair.

    Args:
        cell: A grid :data:`~dosescope.grid.Cell` or a raw value.
        default_unit: Unit assumed for bare numbers and unitless strings.

    Returns:
        ParsedConcentration on success; ParseFailure for empty cells,
        non-numeric text, unknown units, negative or non-finite values.
    """
    if not isinstance(cell, (NumberCell, TextCell, EmptyCell)):
        cell = to_cell(cell)

    if isinstance(cell, EmptyCell):
        return ParseFailure("empty cell")

    if isinstance(cell, NumberCell):
        value = cell.value
        original = repr(value)
        unit = canonical_unit(default_unit)
        if unit is None:
            return ParseFailure(f"unknown default unit '{default_unit}'", original)
    else:
        original = cell.text
        match = _VALUE_WITH_UNIT.match(cell.text)
        if match is None:
            return ParseFailure("not a concentration", original)
        value = float(match.group(1))
        token = match.group(2) or default_unit
        unit = canonical_unit(token)
        if unit is None:
            return ParseFailure(f"unknown unit '{token}'", original)

    if not math.isfinite(value):
        return ParseFailure("non-finite value", original)
    if value < 0:
        return ParseFailure("negative concentration", original)
    return ParsedConcentration(value, unit, original)


def normalize_concentration(
    parsed: ParsedConcentration, molecular_weight: Optional[float] = None
) -> NormalizationResult:
    """Convert a parsed concentration to nanomolar.

    Args:
        parsed: Output of :func:`parse_concentration`.
        molecular_weight: Molar mass in g/mol, required for mass units.

    Returns:
        NormalizedConcentration in nM, or ParseFailure when the unit is a mass
        unit and no positive molecular weight is available.
    """
    unit = canonical_unit(parsed.unit)
    if unit in MOLAR_TO_NM:
        return NormalizedConcentration(parsed.value * MOLAR_TO_NM[unit], unit)
    if unit in MASS_TO_G_PER_L:
        if molecular_weight is None or not molecular_weight > 0:
            return ParseFailure(
                f"mass unit '{unit}' needs a molecular weight", parsed.original
            )
        molar = parsed.value * MASS_TO_G_PER_L[unit] / float(molecular_weight)
        return NormalizedConcentration(molar * MOLAR_TO_NM["M"], unit)
    return ParseFailure(f"unknown unit '{parsed.unit}'", parsed.original)


def to_nanomolar(
    cell: Cell,
    default_unit: str = CANONICAL_UNIT,
    molecular_weight: Optional[float] = None,
) -> Optional[float]:
    """Parse and normalize in one step; ``None`` on any failure."""
    parsed = parse_concentration(cell, default_unit)
    if isinstance(parsed, ParseFailure):
        return None
    normalized = normalize_concentration(parsed, molecular_weight)
    if isinstance(normalized, ParseFailure):
        return None
    return normalized.value


def detect_unit(text: str) -> Optional[str]:
    """Find a concentration unit mentioned in a header such as ``"Conc [µM]"``.

    Bracketed units are preferred. Free-standing single-letter tokens are
    ignored since ``M`` or ``m`` alone is too ambiguous outside brackets.
    """
    for inner in _BRACKETED.findall(text):
        unit = canonical_unit(inner)
        if unit is not None:
            return unit
    for token in _UNIT_TOKEN.findall(text):
        if len(token) < 2:
            continue
        unit = canonical_unit(token)
        if unit is not None:
            return unit
    return None
