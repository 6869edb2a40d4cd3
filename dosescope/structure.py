"""
Locate the header row, the concentration column and the response columns.
"""

# Algorithm summary: score the first rows as header candidates (text share,
# concentration vocabulary, position, numeric-row penalty), pick the
# concentration column by combining header keyword evidence with a quick
# dilution-likeness score of each column's data, classify remaining columns
# from a sample of data rows, then derive the data region, a coarse layout
# tag and the concentration unit.

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import CANONICAL_FACTORS, DEFAULT_CONFIG, DetectionConfig
from .grid import (
    Cell,
    CellGrid,
    TextCell,
    column,
    grid_problem,
    is_empty,
    is_numeric,
    is_text,
    normalize_grid,
    numeric_value,
)
from .schema import (
    ColumnMapping,
    DataRegion,
    HeaderCandidate,
    HeaderDetection,
    KeywordMatch,
    LayoutPattern,
    StructuralAnalysis,
)
from .stats.robust import coefficient_of_variation
from .units import ParsedConcentration, detect_unit, parse_concentration

logger = logging.getLogger(__name__)

RESPONSE_NUMERIC_SHARE = 0.7
METADATA_TEXT_SHARE = 0.5

LAYOUT_CONFIDENCE: Dict[str, float] = {
    "standard": 0.8,
    "transposed": 0.6,
    "multi-block": 0.6,
    "complex": 0.3,
}


def _keyword_patterns(keywords: Sequence[str]) -> List[Tuple[str, float, Any]]:
    """Compile the vocabulary; short alphabetic keywords match whole tokens only."""
    seen = set()
    patterns = []
    for keyword in keywords:
        kw = keyword.lower()
        if kw in seen:
            continue
        seen.add(kw)
        score = 8.0 if len(kw) >= 4 else 5.0
        if kw.isalpha() and len(kw) < 4:
            regex = re.compile(rf"(?<![a-zμµ]){re.escape(kw)}(?![a-zμµ])")
        else:
            regex = None
        patterns.append((kw, score, regex))
    return patterns


def find_keyword_matches(
    row: Sequence[Cell], row_index: int, config: DetectionConfig = DEFAULT_CONFIG
) -> Tuple[KeywordMatch, ...]:
    """Return every concentration-vocabulary hit among the text cells of a row."""
    matches = []
    patterns = _keyword_patterns(config.keywords)
    for col, cell in enumerate(row):
        if not isinstance(cell, TextCell):
            continue
        text = cell.text.lower()
        for kw, score, regex in patterns:
            hit = regex.search(text) is not None if regex is not None else kw in text
            if hit:
                matches.append(KeywordMatch(row_index, col, kw, score / 10.0))
    return tuple(matches)


def score_header_row(
    row: Sequence[Cell], row_index: int, config: DetectionConfig = DEFAULT_CONFIG
) -> HeaderCandidate:
    """Score one row as a header candidate.

    Args:
        row: Normalized cells of the row.
        row_index: Zero-based index, used for the position bonus.
        config: Detection configuration.

    Returns:
        HeaderCandidate: Aggregate score and its parts. Rows with no
        non-empty cells score ``0``.
    """
    filled = [cell for cell in row if not is_empty(cell)]
    if not filled:
        return HeaderCandidate(row_index, 0.0, 0.0, (), 0.0, 0.0, 0.0)

    text_cells = sum(1 for cell in filled if isinstance(cell, TextCell))
    number_cells = sum(1 for cell in filled if is_numeric(cell))
    text_ratio = text_cells / len(filled)

    score = 0.0
    if text_ratio > 0.5:
        score += 10.0 * text_ratio

    matches = find_keyword_matches(row, row_index, config)
    score += sum(m.confidence * 10.0 for m in matches)

    position_bonus = max(0.0, 5.0 - row_index * 0.5)
    score += position_bonus

    penalty = -5.0 if number_cells > text_cells and number_cells > 2 else 0.0
    score += penalty

    confidence = min(max(score, 0.0) / 20.0, 1.0)
    return HeaderCandidate(row_index, score, text_ratio, matches, position_bonus, penalty, confidence)


def detect_header(grid: CellGrid, config: DetectionConfig = DEFAULT_CONFIG) -> HeaderDetection:
    """Pick the best-scoring row among the first ``config.header_scan_rows``.

    The earliest row wins ties. A best score of zero or less means the grid is
    headerless (row ``-1``, confidence ``0``).
    """
    candidates = tuple(
        score_header_row(row, r, config)
        for r, row in enumerate(grid[: config.header_scan_rows])
    )
    best: Optional[HeaderCandidate] = None
    for candidate in candidates:
        if candidate.score > (best.score if best is not None else 0.0):
            best = candidate
    if best is None:
        logger.debug("No header row found in the first %d rows", len(candidates))
        return HeaderDetection(-1, 0.0, candidates)
    logger.debug("Header row %d selected (score %.2f)", best.row, best.score)
    return HeaderDetection(best.row, best.confidence, candidates)


def _positive_values(cells: Sequence[Cell]) -> List[float]:
    values = []
    for cell in cells:
        value = numeric_value(cell)
        if value is not None and math.isfinite(value) and value > 0:
            values.append(value)
    return values


def _series_profile(cells: Sequence[Cell], config: DetectionConfig) -> Tuple[float, float]:
    """Return ``(quick pattern score, median step ratio)`` of a run of cells."""
    values = np.unique(_positive_values(cells))[::-1]
    if values.size < 3:
        return 0.0, math.nan
    ratios = values[:-1] / values[1:]
    ratios = ratios[np.isfinite(ratios) & (ratios > 0)]
    if ratios.size == 0:
        return 0.0, math.nan

    cv = coefficient_of_variation(ratios)
    score = max(0.0, 1.0 - cv) * 10.0 if math.isfinite(cv) else 0.0
    mean_ratio = float(np.mean(ratios))
    if any(
        abs(mean_ratio - factor) / factor <= config.quick_pattern_tolerance
        for factor in CANONICAL_FACTORS
    ):
        score += 5.0
    return score, float(np.median(ratios))


def quick_pattern_score(cells: Sequence[Cell], config: DetectionConfig = DEFAULT_CONFIG) -> float:
    """Score how much a column of cells looks like a dilution series.

    Distinct positive values are sorted descending and the coefficient of
    variation of consecutive ratios gives ``max(0, 1 - CV) * 10``. A mean
    ratio within ``config.quick_pattern_tolerance`` of a canonical factor adds
    ``5``. Fewer than three distinct values score ``0``.
    """
    return _series_profile(cells, config)[0]


def _data_start(header: HeaderDetection) -> int:
    return header.row + 1 if header.found else 0


def map_columns(
    grid: CellGrid, header: HeaderDetection, config: DetectionConfig = DEFAULT_CONFIG
) -> ColumnMapping:
    """Choose the concentration column and classify the others.

    Args:
        grid: Normalized, rectangular grid.
        header: Result of :func:`detect_header`.
        config: Detection configuration.

    Returns:
        ColumnMapping: Concentration column (``-1`` if nothing scores above
        zero), response and metadata columns, mapping confidence and the
        combined score of each column.
    """
    width = len(grid[0]) if grid else 0
    start = _data_start(header)

    keyword_evidence = [0.0] * width
    if header.found:
        for match in find_keyword_matches(grid[header.row], header.row, config):
            keyword_evidence[match.column] = max(keyword_evidence[match.column], match.confidence * 20.0)

    scores: Dict[int, float] = {}
    best_col = -1
    best_key = (0.0, 0.0)
    for col in range(width):
        pattern = quick_pattern_score(column(grid, col, start), config)
        combined = keyword_evidence[col] + pattern
        scores[col] = combined
        key = (combined, keyword_evidence[col])
        if combined > 0 and key > best_key:
            best_col, best_key = col, key

    sample = grid[start : start + config.response_sample_rows]
    responses = []
    metadata = []
    for col in range(width):
        if col == best_col:
            continue
        cells = [row[col] for row in sample if not is_empty(row[col])]
        if not cells:
            continue
        numeric_share = sum(1 for cell in cells if is_numeric(cell)) / len(cells)
        text_share = sum(1 for cell in cells if is_text(cell)) / len(cells)
        if numeric_share > RESPONSE_NUMERIC_SHARE:
            responses.append(col)
        elif text_share > METADATA_TEXT_SHARE:
            metadata.append(col)

    if best_col < 0:
        confidence = 0.0
    elif not responses:
        confidence = 0.3
    else:
        confidence = min(0.9, 0.5 + 0.1 * len(responses))

    logger.debug(
        "Concentration column %d, %d response columns, %d metadata columns",
        best_col,
        len(responses),
        len(metadata),
    )
    return ColumnMapping(best_col, tuple(responses), tuple(metadata), confidence, scores)


def identify_data_region(grid: CellGrid, header: HeaderDetection, mapping: ColumnMapping) -> DataRegion:
    """Bound the data below the header and measure its completeness."""
    width = len(grid[0]) if grid else 0
    start = _data_start(header)
    end = len(grid) - 1
    rows = grid[start : end + 1]

    if mapping.concentration_column >= 0:
        cols = (mapping.concentration_column,) + mapping.response_columns
    else:
        cols = tuple(range(width))

    total = len(rows) * len(cols)
    filled = sum(1 for row in rows for col in cols if not is_empty(row[col]))
    completeness = filled / total if total else 0.0
    return DataRegion(start, end, 0, width - 1, len(rows), completeness)


def _has_blank_separator(grid: CellGrid, region: DataRegion) -> bool:
    rows = grid[region.start_row : region.end_row + 1]
    blank = [all(is_empty(cell) for cell in row) for row in rows]
    seen_data = False
    pending_gap = False
    for is_blank in blank:
        if is_blank:
            pending_gap = seen_data
        else:
            if pending_gap:
                return True
            seen_data = True
    return False


def classify_layout(
    grid: CellGrid,
    header: HeaderDetection,
    mapping: ColumnMapping,
    region: DataRegion,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> LayoutPattern:
    """Tag the grid topology as standard, transposed, multi-block or complex."""
    characteristics = [f"header-row-{header.row}" if header.found else "headerless"]
    if mapping.concentration_column == 0:
        characteristics.append("concentration-first")
    if mapping.response_columns:
        characteristics.append(f"{len(mapping.response_columns)}-response-columns")
    if mapping.metadata_columns:
        characteristics.append("metadata-columns")

    if _has_blank_separator(grid, region):
        characteristics.append("blank-separator-rows")
        return LayoutPattern("multi-block", LAYOUT_CONFIDENCE["multi-block"], tuple(characteristics))

    start = _data_start(header)
    best_column = max(
        (quick_pattern_score(column(grid, col, start), config) for col in range(len(grid[0]))),
        default=0.0,
    )
    for row in grid[: config.header_scan_rows]:
        if not row or not is_text(row[0]):
            continue
        score, step = _series_profile(row[1:], config)
        if (
            math.isfinite(step)
            and step >= config.concentration.minimum_step_ratio
            and score > best_column
        ):
            characteristics.append("horizontal-series")
            return LayoutPattern("transposed", LAYOUT_CONFIDENCE["transposed"], tuple(characteristics))

    if mapping.concentration_column < 0 or not mapping.response_columns:
        return LayoutPattern("complex", LAYOUT_CONFIDENCE["complex"], tuple(characteristics))
    return LayoutPattern("standard", LAYOUT_CONFIDENCE["standard"], tuple(characteristics))


def detect_concentration_unit(
    grid: CellGrid,
    header: HeaderDetection,
    mapping: ColumnMapping,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> str:
    """Return the concentration unit from the header cell, the column text, or the default."""
    col = mapping.concentration_column
    if col < 0:
        return config.default_unit
    if header.found:
        cell = grid[header.row][col]
        if isinstance(cell, TextCell):
            unit = detect_unit(cell.text)
            if unit is not None:
                return unit

    units = Counter()
    for cell in column(grid, col, _data_start(header)):
        if isinstance(cell, TextCell):
            parsed = parse_concentration(cell, config.default_unit)
            if isinstance(parsed, ParsedConcentration):
                units[parsed.unit] += 1
    if units:
        return units.most_common(1)[0][0]
    return config.default_unit


def analyze_structure(grid: Sequence[Sequence[Any]], config: DetectionConfig = DEFAULT_CONFIG) -> StructuralAnalysis:
    """Run header detection, column mapping, region and layout classification.

    Args:
        grid: Raw rows of heterogeneous cells. The input is not modified.
        config: Detection configuration.

    Returns:
        StructuralAnalysis: Combined structural result. Empty, ragged or
        unreadable grids give :meth:`StructuralAnalysis.invalid` instead of
        raising.
    """
    problem = grid_problem(grid)
    if problem is not None:
        logger.warning("Structural analysis skipped: %s", problem)
        return StructuralAnalysis.invalid(problem, config.default_unit)

    try:
        cells = normalize_grid(grid)
        header = detect_header(cells, config)
        mapping = map_columns(cells, header, config)
        region = identify_data_region(cells, header, mapping)
        layout = classify_layout(cells, header, mapping, region, config)
        unit = detect_concentration_unit(cells, header, mapping, config)
    except Exception as exc:
        logger.exception("Structural analysis failed")
        return StructuralAnalysis.invalid(f"{type(exc).__name__}: {exc}", config.default_unit)

    diagnostics = []
    if not header.found:
        diagnostics.append("no header row detected; data treated as headerless")
    if mapping.concentration_column < 0:
        diagnostics.append("no concentration column detected")
    elif not mapping.response_columns:
        diagnostics.append("no response columns detected")

    confidence = float(np.mean([header.confidence, mapping.confidence, layout.confidence]))
    logger.info(
        "Structure: header=%d concentration=%d responses=%s layout=%s (confidence %.2f)",
        header.row,
        mapping.concentration_column,
        list(mapping.response_columns),
        layout.type,
        confidence,
    )
    return StructuralAnalysis(
        header=header,
        column_mapping=mapping,
        data_region=region,
        layout=layout,
        concentration_unit=unit,
        confidence=confidence,
        valid=True,
        diagnostics=tuple(diagnostics),
    )


def extract_concentration_cells(grid: Sequence[Sequence[Any]], structural: StructuralAnalysis) -> Tuple[Cell, ...]:
    """Return the concentration column's cells inside the data region, empties included."""
    col = structural.column_mapping.concentration_column
    if not structural.valid or col < 0:
        return ()
    region = structural.data_region
    return column(normalize_grid(grid), col, region.start_row, region.end_row)


def extract_dose_response(
    grid: Sequence[Sequence[Any]], structural: StructuralAnalysis
) -> Tuple[Tuple[Cell, ...], Tuple[Tuple[float, ...], ...]]:
    """Return aligned concentration cells and response rows.

    Rows whose concentration cell is empty are skipped. Missing or non-numeric
    responses become ``nan`` so every response row has the same width.
    """
    mapping = structural.column_mapping
    if not structural.valid or mapping.concentration_column < 0:
        return (), ()
    region = structural.data_region
    cells = normalize_grid(grid)[region.start_row : region.end_row + 1]

    concentrations = []
    responses = []
    for row in cells:
        conc = row[mapping.concentration_column]
        if is_empty(conc):
            continue
        values = []
        for col in mapping.response_columns:
            value = numeric_value(row[col])
            values.append(value if value is not None and math.isfinite(value) else math.nan)
        concentrations.append(conc)
        responses.append(tuple(values))
    return tuple(concentrations), tuple(responses)
