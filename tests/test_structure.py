import math

import pytest

from dosescope.config import DEFAULT_CONFIG
from dosescope.grid import NumberCell, TextCell, normalize_grid
from dosescope.structure import (
    analyze_structure,
    detect_header,
    extract_concentration_cells,
    extract_dose_response,
    find_keyword_matches,
    quick_pattern_score,
    score_header_row,
)

STANDARD_GRID = [
    ["Compound", "Concentration (nM)", "Response 1", "Response 2"],
    ["A", 729, 98.0, 96.0],
    ["A", 243, 92.0, 90.0],
    ["A", 81, 75.0, 78.0],
    ["A", 27, 45.0, 48.0],
    ["A", 9, 18.0, 20.0],
    ["A", 3, 6.0, 5.0],
]


class TestHeaderDetection:
    def test_text_row_with_vocabulary_is_header(self):
        header = detect_header(normalize_grid(STANDARD_GRID))
        assert header.row == 0
        assert header.found
        assert header.confidence == 1.0

    def test_numeric_rows_are_penalized(self):
        row = normalize_grid(STANDARD_GRID)[1]
        candidate = score_header_row(row, 1)
        assert candidate.numeric_penalty == -5.0
        assert candidate.score < 0

    def test_empty_row_scores_zero(self):
        candidate = score_header_row((), 0)
        assert candidate.score == 0.0
        assert candidate.confidence == 0.0

    def test_short_keywords_match_whole_tokens_only(self):
        row = (TextCell("Compound"), TextCell("Dose (nM)"))
        keywords = {m.keyword for m in find_keyword_matches(row, 0)}
        assert "dose" in keywords
        assert "nm" in keywords
        # "m" inside "Compound" is not a unit token
        assert "m" not in keywords
        assert all(m.column == 1 for m in find_keyword_matches(row, 0))


def test_quick_pattern_score_rewards_canonical_series():
    cells = [NumberCell(v) for v in (243, 81, 27, 9, 3, 1)]
    assert math.isclose(quick_pattern_score(cells), 15.0)


def test_quick_pattern_score_collapses_replicate_rows():
    cells = [NumberCell(v) for v in (100, 100, 10, 10, 1, 1)]
    assert math.isclose(quick_pattern_score(cells), 15.0)


def test_quick_pattern_score_needs_three_distinct_values():
    assert quick_pattern_score([NumberCell(5.0), NumberCell(5.0), TextCell("x")]) == 0.0


def test_standard_grid_structure():
    result = analyze_structure(STANDARD_GRID)
    assert result.valid
    assert result.header.row == 0
    assert result.column_mapping.concentration_column == 1
    assert result.column_mapping.response_columns == (2, 3)
    assert result.column_mapping.metadata_columns == (0,)
    assert math.isclose(result.column_mapping.confidence, 0.7)
    assert result.data_region.start_row == 1
    assert result.data_region.end_row == 6
    assert result.data_region.data_points == 6
    assert math.isclose(result.data_region.completeness, 1.0)
    assert result.layout.type == "standard"
    assert result.concentration_unit == "nM"
    assert math.isclose(result.confidence, (1.0 + 0.7 + 0.8) / 3)


def test_structure_does_not_modify_input():
    grid = [list(row) for row in STANDARD_GRID]
    analyze_structure(grid)
    assert grid == STANDARD_GRID


def test_headerless_numeric_grid():
    grid = [row[1:] for row in STANDARD_GRID[1:]]
    result = analyze_structure(grid)
    assert result.header.row == -1
    assert result.data_region.start_row == 0
    assert result.column_mapping.concentration_column == 0
    assert result.column_mapping.response_columns == (1, 2)
    assert any("headerless" in d for d in result.diagnostics)


def test_unit_read_from_header():
    grid = [list(row) for row in STANDARD_GRID]
    grid[0][1] = "Dose [µM]"
    assert analyze_structure(grid).concentration_unit == "μM"


def test_unit_read_from_cell_text_when_header_is_silent():
    grid = [
        ["Dose", "Signal", "Signal"],
        ["10 uM", 95.0, 94.0],
        ["1 uM", 60.0, 62.0],
        ["0.1 uM", 20.0, 22.0],
        ["0.01 uM", 5.0, 4.0],
    ]
    result = analyze_structure(grid)
    assert result.column_mapping.concentration_column == 0
    assert result.concentration_unit == "μM"


def test_blank_separator_gives_multi_block_layout():
    grid = [
        ["Concentration (nM)", "Response"],
        [1000, 90.0],
        [100, 50.0],
        [10, 10.0],
        [None, None],
        [1000, 88.0],
        [100, 52.0],
        [10, 12.0],
    ]
    result = analyze_structure(grid)
    assert result.layout.type == "multi-block"
    assert "blank-separator-rows" in result.layout.characteristics


def test_horizontal_series_gives_transposed_layout():
    grid = [
        ["Concentration", 1000, 100, 10, 1],
        ["Response", 95.0, 70.0, 30.0, 5.0],
    ]
    result = analyze_structure(grid)
    assert result.layout.type == "transposed"


@pytest.mark.parametrize(
    "grid, reason",
    [
        ([], "grid is empty"),
        ([[1, 2], [3]], "ragged"),
        ([[], []], "no columns"),
        ("not a grid", "not a sequence"),
    ],
)
def test_invalid_grids(grid, reason):
    result = analyze_structure(grid)
    assert not result.valid
    assert result.confidence == 0.0
    assert result.header.row == -1
    assert result.column_mapping.concentration_column == -1
    assert result.concentration_unit == DEFAULT_CONFIG.default_unit
    assert reason in result.diagnostics[0]


def test_extract_dose_response_aligns_rows():
    grid = [list(row) for row in STANDARD_GRID]
    grid[3][2] = None
    grid[4][3] = "n/a"
    structural = analyze_structure(grid)
    cells = extract_concentration_cells(grid, structural)
    concentrations, responses = extract_dose_response(grid, structural)
    assert len(cells) == 6
    assert len(concentrations) == len(responses) == 6
    assert responses[0] == (98.0, 96.0)
    assert math.isnan(responses[2][0])
    assert math.isnan(responses[3][1])


def test_extraction_from_invalid_structure_is_empty():
    structural = analyze_structure([])
    assert extract_concentration_cells([], structural) == ()
    assert extract_dose_response([], structural) == ((), ())
