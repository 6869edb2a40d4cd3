import math

import numpy as np
import pytest

from dosescope.grid import EMPTY, NumberCell, TextCell, to_cell
from dosescope.units import (
    NormalizedConcentration,
    ParsedConcentration,
    ParseFailure,
    canonical_unit,
    detect_unit,
    normalize_concentration,
    parse_concentration,
    to_nanomolar,
)


def test_string_and_bare_number_normalize_identically():
    from_text = normalize_concentration(parse_concentration("100 nM"))
    from_number = normalize_concentration(parse_concentration(100.0, default_unit="nM"))
    assert isinstance(from_text, NormalizedConcentration)
    assert isinstance(from_number, NormalizedConcentration)
    assert math.isclose(from_text.value, from_number.value)
    assert math.isclose(from_text.value, 100.0)


@pytest.mark.parametrize(
    "text, expected_nm",
    [
        ("1 M", 1e9),
        ("2.5 mM", 2.5e6),
        ("0.1uM", 100.0),
        ("0.1 µM", 100.0),
        ("0.1 μM", 100.0),
        ("1e3 pM", 1.0),
        ("500 fM", 5e-4),
        ("3 nmol/L", 3.0),
    ],
)
def test_molar_units(text, expected_nm):
    assert math.isclose(to_nanomolar(TextCell(text)), expected_nm)


def test_default_unit_applies_to_bare_numbers_and_unitless_text():
    assert math.isclose(to_nanomolar(NumberCell(10.0), default_unit="μM"), 1e4)
    assert math.isclose(to_nanomolar(TextCell("10"), default_unit="mM"), 1e7)


def test_mass_units_need_molecular_weight():
    parsed = parse_concentration("2.5 µg/mL")
    assert isinstance(parsed, ParsedConcentration)
    assert parsed.unit == "μg/mL"
    assert isinstance(normalize_concentration(parsed), ParseFailure)
    # 2.5 mg/L at 500 g/mol is 5 µM
    converted = normalize_concentration(parsed, molecular_weight=500.0)
    assert math.isclose(converted.value, 5000.0)
    assert converted.source_unit == "μg/mL"


@pytest.mark.parametrize(
    "raw, reason",
    [
        (None, "empty cell"),
        ("", "empty cell"),
        ("Vehicle", "not a concentration"),
        ("5 furlongs", "unknown unit 'furlongs'"),
        ("-5 nM", "negative concentration"),
        (float("inf"), "non-finite value"),
    ],
)
def test_parse_failures(raw, reason):
    result = parse_concentration(raw)
    assert isinstance(result, ParseFailure)
    assert result.reason == reason


def test_zero_parses():
    result = parse_concentration(0)
    assert isinstance(result, ParsedConcentration)
    assert result.value == 0.0


def test_unit_spellings():
    assert canonical_unit("uM") == "μM"
    assert canonical_unit("MM") == "mM"
    assert canonical_unit("ng/ml") == "ng/mL"
    assert canonical_unit("parsecs") is None


@pytest.mark.parametrize(
    "header, unit",
    [
        ("Concentration (µM)", "μM"),
        ("Conc [mM]", "mM"),
        ("Dose nM", "nM"),
        ("Dose (ug/ml)", "μg/mL"),
        ("Response", None),
        ("Sample M", None),
    ],
)
def test_detect_unit(header, unit):
    assert detect_unit(header) == unit


def test_cell_normalization():
    assert to_cell(None) is EMPTY
    assert to_cell(float("nan")) is EMPTY
    assert to_cell("   ") is EMPTY
    assert to_cell(np.int64(4)) == NumberCell(4.0)
    assert to_cell(True) == TextCell("True")
    assert to_cell(" 10 nM ") == TextCell("10 nM")
