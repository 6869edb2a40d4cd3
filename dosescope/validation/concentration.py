"""Validate the concentration series of a dose-response experiment.

This module supports:
- unit consistency across concentration cells,
- range appropriateness against assay-specific expected windows,
- assay-type inference and biological plausibility,
- dilution pattern quality and spacing, and
- a sample-size based statistical power estimate.

The five assessments feed one weighted :class:`ValidationScore`.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..config import DEFAULT_CONFIG, SQRT10, DetectionConfig
from ..dilution import consecutive_ratios
from ..schema import (
    BiologicalRelevance,
    ConcentrationValidation,
    PatternValidation,
    PowerAnalysis,
    RangeAssessment,
    SpacingAnalysis,
    UnitConsistency,
    ValidationOptions,
)
from ..stats.robust import coefficient_of_variation
from ..units import ParseFailure, normalize_concentration, parse_concentration
from .scoring import clamp, combine, factor

ASSAY_TYPES: Tuple[str, ...] = ("binding", "functional", "cytotoxicity", "enzymatic", "reporter")

WEIGHTS: Dict[str, float] = {
    "Unit Consistency": 0.15,
    "Range Appropriateness": 0.25,
    "Biological Relevance": 0.20,
    "Pattern Quality": 0.25,
    "Statistical Power": 0.15,
}


def check_unit_consistency(
    cells: Sequence[object], unit: str, config: DetectionConfig = DEFAULT_CONFIG
) -> UnitConsistency:
    """Count the units used across the cells and the cells that failed to convert.

    Confidence is the share of all cells expressed in the dominant unit.
    """
    units: Counter = Counter()
    failures = 0
    for cell in cells:
        parsed = parse_concentration(cell, unit)
        if isinstance(parsed, ParseFailure):
            failures += 1
            continue
        if isinstance(normalize_concentration(parsed, config.molecular_weight), ParseFailure):
            failures += 1
            continue
        units[parsed.unit] += 1

    if not units:
        return UnitConsistency(parse_failures=failures)
    dominant, count = units.most_common(1)[0]
    return UnitConsistency(
        is_consistent=len(units) == 1,
        dominant_unit=dominant,
        units_found=tuple(sorted(units)),
        parse_failures=failures,
        confidence=count / len(cells),
    )


def assess_range(
    values_nm: Sequence[float], assay_type: Optional[str], config: DetectionConfig = DEFAULT_CONFIG
) -> RangeAssessment:
    """Classify the concentration span as too-narrow, too-wide, unrealistic or appropriate.

    Coverage is the overlap between the observed and expected windows in
    log10 space, divided by the expected log span.
    """
    standards = config.concentration
    lo = float(min(values_nm))
    hi = float(max(values_nm))
    order = math.log10(hi / lo)
    expected = config.expected_range(assay_type)

    if order < standards.minimum_range:
        category, appropriate = "too-narrow", False
    elif order > standards.max_reasonable_range:
        category, appropriate = "too-wide", order <= standards.max_acceptable_range
    elif lo < expected[0] / 1000.0 or hi > expected[1] * 1000.0:
        category, appropriate = "unrealistic", False
    else:
        category, appropriate = "appropriate", True

    exp_lo, exp_hi = math.log10(expected[0]), math.log10(expected[1])
    overlap = min(math.log10(hi), exp_hi) - max(math.log10(lo), exp_lo)
    coverage = max(0.0, overlap) / (exp_hi - exp_lo)
    return RangeAssessment(lo, hi, order, category, appropriate, expected, coverage)


def infer_assay_type(
    values_nm: Sequence[float], hint: Optional[str] = None
) -> Tuple[str, float, Dict[str, float]]:
    """Score each assay type against the concentration distribution.

    Returns:
        tuple: ``(assay_type, confidence, scores)``; ``unknown`` with zero
        confidence when nothing scores.
    """
    ordered = sorted(values_nm)
    center = ordered[len(ordered) // 2]
    lo, hi = ordered[0], ordered[-1]

    scores = {name: 0.0 for name in ASSAY_TYPES}
    if center < 1e4:
        scores["binding"] += 0.3
    if lo < 1:
        scores["binding"] += 0.2
    if 10 < center < 1e5:
        scores["functional"] += 0.3
    if center > 1000:
        scores["cytotoxicity"] += 0.3
    if hi > 1e5:
        scores["cytotoxicity"] += 0.2
    if hint and hint.lower() in scores:
        scores[hint.lower()] += 0.4

    best = max(ASSAY_TYPES, key=lambda name: scores[name])
    if scores[best] <= 0:
        return "unknown", 0.0, scores
    return best, min(1.0, scores[best]), scores


def assess_biological_relevance(
    values_nm: Sequence[float],
    options: ValidationOptions,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> BiologicalRelevance:
    assay_type, assay_confidence, scores = infer_assay_type(values_nm, options.assay_type)
    lo, hi = min(values_nm), max(values_nm)
    order = math.log10(hi / lo)
    window = config.plausible_window

    plausibility = 0.5
    if 2 <= order <= 6:
        plausibility += 0.2
    elif order < 1 or order > 8:
        plausibility -= 0.3
    if window[0] <= lo and hi <= window[1]:
        plausibility += 0.2
    else:
        plausibility -= 0.2
    if assay_type == "binding" and hi < 1e5:
        plausibility += 0.1
    if assay_type == "cytotoxicity" and hi > 1000:
        plausibility += 0.1
    plausibility = clamp(plausibility)

    cellular_context = hi > 1000 or assay_type == "cytotoxicity"
    relevant = (plausibility > 0.6 and cellular_context) or assay_confidence > 0.7
    return BiologicalRelevance(assay_type, assay_confidence, plausibility, relevant, scores)


def _one_minus_cv(values: Sequence[float]) -> float:
    cv = coefficient_of_variation(values)
    return max(0.0, 1.0 - cv) if math.isfinite(cv) else 0.0


def analyze_spacing(sorted_desc: np.ndarray, order: float) -> SpacingAnalysis:
    """Spacing uniformity on linear and log scales plus gaps in the log ladder.

    A gap is a log step larger than twice the mean step; more than three
    times the mean is a major gap.
    """
    if sorted_desc.size < 2:
        return SpacingAnalysis()
    linear_steps = -np.diff(sorted_desc)
    log_steps = -np.diff(np.log10(sorted_desc))
    mean_step = float(np.mean(log_steps))

    gaps = []
    if mean_step > 0:
        for i, step in enumerate(log_steps):
            if step > 3 * mean_step:
                gaps.append((i, "major"))
            elif step > 2 * mean_step:
                gaps.append((i, "minor"))

    coverage = min(1.0, sorted_desc.size / (order * 2)) if order > 0 else 0.0
    return SpacingAnalysis(
        uniformity=_one_minus_cv(linear_steps),
        log_uniformity=_one_minus_cv(log_steps),
        coverage=coverage,
        gaps=tuple(gaps),
    )


def validate_pattern(values_nm: Sequence[float], config: DetectionConfig = DEFAULT_CONFIG) -> PatternValidation:
    """Check the distinct concentrations for a regular dilution step."""
    sorted_desc = np.unique(np.asarray(values_nm, dtype=float))[::-1]
    ratios = consecutive_ratios(sorted_desc)
    if ratios.size == 0:
        return PatternValidation()

    mean_ratio = float(np.mean(ratios))
    cv = coefficient_of_variation(ratios)
    cv = cv if math.isfinite(cv) else 1.0
    consistency = max(0.0, 1.0 - cv)

    if cv < 0.2:
        if abs(mean_ratio - 10) < 1:
            pattern_type = "log-scale"
        elif abs(mean_ratio - SQRT10) < min(0.5, abs(mean_ratio - 3.0)):
            pattern_type = "half-log"
        elif 2 <= mean_ratio <= 5:
            pattern_type = "serial"
        else:
            pattern_type = "custom"
    else:
        pattern_type = "irregular"

    hi, lo = float(sorted_desc[0]), float(sorted_desc[-1])
    order = math.log10(hi / lo)
    if mean_ratio > 1:
        expected_points = math.log(hi / lo) / math.log(mean_ratio)
        completeness = min(1.0, sorted_desc.size / expected_points) if expected_points > 0 else 0.0
    else:
        completeness = 0.0

    step = config.concentration.minimum_step_ratio
    recognizability = clamp((mean_ratio - 1.0) / (step - 1.0))
    return PatternValidation(
        type=pattern_type,
        mean_ratio=mean_ratio,
        consistency=consistency,
        completeness=completeness,
        recognizability=recognizability,
        spacing=analyze_spacing(sorted_desc, order),
    )


def analyze_power(n: int, order: float, config: DetectionConfig = DEFAULT_CONFIG) -> PowerAnalysis:
    """Estimate power for curve fitting from the number of concentrations.

    Power rises piecewise: below the minimum point count, between minimum and
    recommended, then slowly beyond. Ranges under two decades scale it by 0.7
    and ranges over four decades by 1.1.
    """
    standards = config.concentration
    if n < standards.minimum_points:
        power = 0.3 + (n / standards.minimum_points) * 0.3
    elif n < standards.recommended_points:
        span = standards.recommended_points - standards.minimum_points
        power = 0.6 + ((n - standards.minimum_points) / span) * 0.2
    else:
        power = 0.8 + min(0.15, (n - standards.recommended_points) * 0.02)

    if order < 2:
        power *= 0.7
    elif order > 4:
        power *= 1.1
    power = clamp(power)

    precision = config.statistical.baseline_cv / math.sqrt(n) if n > 0 else math.inf
    return PowerAnalysis(n, power, precision, power >= config.statistical.minimum_power)


def _range_score(assessment: RangeAssessment, config: DetectionConfig) -> float:
    if assessment.category == "appropriate":
        return 0.9
    if assessment.category == "too-wide":
        return 0.7 if assessment.is_appropriate else 0.3
    if assessment.category == "too-narrow":
        return 0.3 * clamp(assessment.order_of_magnitude / config.concentration.minimum_range)
    if assessment.category == "unrealistic":
        return 0.2
    return 0.3


def validate_concentrations(
    cells: Sequence[object],
    values_nm: Sequence[float],
    unit: str,
    options: Optional[ValidationOptions] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> ConcentrationValidation:
    """Score the concentration series.

    Args:
        cells: Raw concentration cells (for unit consistency).
        values_nm: Usable concentrations in nM (at least one distinct value).
        unit: Unit for bare numbers.
        options: Caller hints.
        config: Detection configuration.

    Returns:
        ConcentrationValidation: The five assessments and their weighted score.
    """
    options = options or ValidationOptions()
    units = check_unit_consistency(cells, unit, config)
    relevance = assess_biological_relevance(values_nm, options, config)
    range_assessment = assess_range(values_nm, relevance.assay_type, config)
    pattern = validate_pattern(values_nm, config)
    distinct = int(np.unique(np.asarray(values_nm, dtype=float)).size)
    power = analyze_power(distinct, range_assessment.order_of_magnitude, config)

    factors = (
        factor(
            "Unit Consistency",
            WEIGHTS["Unit Consistency"],
            units.confidence,
            f"dominant unit {units.dominant_unit or 'n/a'}, {units.parse_failures} unparsed cells",
        ),
        factor(
            "Range Appropriateness",
            WEIGHTS["Range Appropriateness"],
            _range_score(range_assessment, config),
            f"{range_assessment.order_of_magnitude:.1f} orders of magnitude ({range_assessment.category})",
        ),
        factor(
            "Biological Relevance",
            WEIGHTS["Biological Relevance"],
            relevance.plausibility,
            f"inferred {relevance.assay_type} assay",
        ),
        factor(
            "Pattern Quality",
            WEIGHTS["Pattern Quality"],
            pattern.consistency * pattern.recognizability,
            f"{pattern.type} pattern, mean step {pattern.mean_ratio:.2f}",
        ),
        factor(
            "Statistical Power",
            WEIGHTS["Statistical Power"],
            power.estimated_power,
            f"{power.sample_size} concentrations, estimated power {power.estimated_power:.2f}",
        ),
    )
    return ConcentrationValidation(
        score=combine(factors, config.level_thresholds),
        unit_consistency=units,
        range=range_assessment,
        biological_relevance=relevance,
        pattern_quality=pattern,
        power=power,
    )
