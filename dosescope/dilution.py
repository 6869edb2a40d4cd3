"""Characterize a concentration series as a dilution pattern.

This module supports:
- parsing a concentration column into positive nanomolar values,
- robust ratio statistics with tiered outlier detection,
- Bayesian evidence over canonical laboratory dilution factors, and
- deterministic pattern classification with quality and robustness metrics.

Values are sorted from highest to lowest concentration before ratios are
taken, matching how serial dilutions are prepared at the bench.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_CONFIG, SQRT10, DetectionConfig
from .grid import is_empty, to_cell
from .schema import (
    BayesianInference,
    ConcentrationRange,
    DilutionPattern,
    PatternParameters,
    PatternQuality,
    RatioStatistics,
    RobustnessMetrics,
)
from .stats.robust import detect_outliers, median, robust_cv, robust_std
from .units import to_nanomolar

logger = logging.getLogger(__name__)

MIN_POINTS = 3
MAX_JACKKNIFE_DELETIONS = 200

# Canonical factors in classification order.
FACTOR_TYPES: Tuple[Tuple[float, str], ...] = (
    (10.0, "log-scale"),
    (SQRT10, "half-log"),
    (2.0, "serial"),
    (3.0, "serial"),
    (5.0, "serial"),
)


def parse_concentration_values(
    values: Sequence[object],
    config: DetectionConfig = DEFAULT_CONFIG,
    unit: Optional[str] = None,
) -> Tuple[List[float], int, float]:
    """Coerce raw cells to positive finite nM concentrations.

    Args:
        values: Raw cells of the concentration column.
        config: Detection configuration (default unit, molecular weight).
        unit: Unit for bare numbers; defaults to ``config.default_unit``.

    Returns:
        tuple: ``(values_nm, parse_failures, completeness)`` where
        ``completeness`` is the share of non-empty source cells.
    """
    unit = unit or config.default_unit
    parsed = []
    failures = 0
    filled = 0
    for raw in values:
        cell = to_cell(raw)
        if is_empty(cell):
            continue
        filled += 1
        value = to_nanomolar(cell, unit, config.molecular_weight)
        if value is None or not math.isfinite(value) or value <= 0:
            failures += 1
            continue
        parsed.append(value)
    completeness = filled / len(values) if len(values) else 0.0
    return parsed, failures, completeness


def consecutive_ratios(sorted_desc: Sequence[float]) -> np.ndarray:
    """Return ``v[i] / v[i + 1]`` keeping finite, positive ratios only."""
    arr = np.asarray(sorted_desc, dtype=float)
    if arr.size < 2:
        return np.array([], dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratios = arr[:-1] / arr[1:]
    return ratios[np.isfinite(ratios) & (ratios > 0)]


def consistency_score(ratios: Sequence[float]) -> float:
    """Return ``max(0, 1 - robust CV)`` of the ratios, or ``0`` with fewer than two."""
    if len(ratios) < 2:
        return 0.0
    cv = robust_cv(ratios)
    if not math.isfinite(cv):
        return 0.0
    return max(0.0, 1.0 - cv)


def bayesian_inference(
    observed_ratio: float, consistency: float, config: DetectionConfig = DEFAULT_CONFIG
) -> BayesianInference:
    """Weigh canonical dilution factors against the observed median ratio.

    The likelihood under factor ``f`` is
    ``exp(-0.5 * ((|observed - f| / f) / variance) ** 2)`` with
    ``variance = max(0.01, 1 - consistency)``; the posterior is
    ``likelihood × prior``.

    Returns:
        BayesianInference: Best factor with its unnormalized posterior and its
        likelihood as evidence strength, plus the renormalized posteriors.
    """
    prior_influence = config.prior_influence
    if not math.isfinite(observed_ratio):
        return BayesianInference(prior_influence=prior_influence)

    variance = max(0.01, 1.0 - consistency)
    posteriors: Dict[float, float] = {}
    best_factor = None
    best_posterior = 0.0
    best_likelihood = 0.0
    for factor, prior in config.priors.items():
        distance = abs(observed_ratio - factor) / factor
        likelihood = math.exp(-0.5 * (distance / variance) ** 2)
        posterior = likelihood * prior
        posteriors[factor] = posterior
        if posterior > best_posterior:
            best_factor, best_posterior, best_likelihood = factor, posterior, likelihood

    total = sum(posteriors.values())
    normalized = {f: p / total for f, p in posteriors.items()} if total > 0 else {}
    return BayesianInference(
        posterior_probability=best_posterior,
        evidence_strength=best_likelihood,
        prior_influence=prior_influence,
        most_probable_factor=best_factor,
        posteriors=normalized,
    )


def _relative_distance(value: float, target: float) -> float:
    return abs(value - target) / target


def classify_pattern(median_ratio: float, consistency: float, config: DetectionConfig = DEFAULT_CONFIG) -> str:
    """Return the pattern type for a median ratio and consistency score.

    Rules are evaluated in order: irregular below 0.3 consistency, then
    log-scale (10), half-log (√10), serial (2, 3, 5) within the
    classification tolerance, custom above 0.7 consistency, else unknown.

    Note:
        3 and √10 are only 5% apart, so both can be within tolerance. The
        nearest canonical factor decides, with ties going to the earlier rule.
    """
    tol = config.classification_tolerance
    if consistency < 0.3:
        return "irregular"
    if not math.isfinite(median_ratio):
        return "unknown"
    matches = [
        (_relative_distance(median_ratio, factor), rank, pattern_type)
        for rank, (factor, pattern_type) in enumerate(FACTOR_TYPES)
        if _relative_distance(median_ratio, factor) <= tol
    ]
    if matches:
        return min(matches)[2]
    if consistency > 0.7:
        return "custom"
    return "unknown"


def _parameters_for(pattern_type: str, median_ratio: float, ratios: np.ndarray) -> PatternParameters:
    if pattern_type in ("serial", "custom"):
        return PatternParameters(dilution_factor=median_ratio)
    if pattern_type == "log-scale":
        return PatternParameters(dilution_factor=10.0, log_base=10.0)
    if pattern_type == "half-log":
        return PatternParameters(dilution_factor=SQRT10, log_base=10.0)
    return PatternParameters(custom_ratios=tuple(float(r) for r in ratios))


def _monotonicity(sorted_desc: np.ndarray) -> float:
    if sorted_desc.size < 2:
        return 0.0
    decreasing = np.sum(sorted_desc[:-1] > sorted_desc[1:])
    return float(decreasing / (sorted_desc.size - 1))


def _robustness(ratios: np.ndarray, clean: np.ndarray) -> RobustnessMetrics:
    """Leave-one-ratio-out stability of the median and its sensitivity to outliers."""
    full = median(ratios)
    if ratios.size < 3 or not math.isfinite(full) or full == 0:
        return RobustnessMetrics()

    deletions = np.unique(
        np.linspace(0, ratios.size - 1, min(ratios.size, MAX_JACKKNIFE_DELETIONS)).astype(int)
    )
    medians = np.array([np.median(np.delete(ratios, i)) for i in deletions])
    spread = float(np.std(medians) / abs(np.mean(medians)))
    stability = max(0.0, 1.0 - spread)

    clean_median = median(clean)
    sensitivity = abs(full - clean_median) / full if math.isfinite(clean_median) else 1.0
    return RobustnessMetrics(sensitivity=float(sensitivity), stability=float(stability))


def analyze_pattern(
    values: Sequence[object],
    config: DetectionConfig = DEFAULT_CONFIG,
    unit: Optional[str] = None,
) -> DilutionPattern:
    """Analyze a concentration column as a dilution series.

    Args:
        values: Raw concentration cells (numbers, strings with units, empties).
        config: Detection configuration (priors, tolerances, outlier tiers).
        unit: Unit for bare numbers, usually the unit found in the header.

    Returns:
        DilutionPattern: Classified pattern with statistics. Fewer than three
        usable concentrations give :meth:`DilutionPattern.empty`.

    Note:
        The consistency score is computed from ratios with outliers removed;
        the spacing score uses every ratio.
    """
    parsed, failures, completeness = parse_concentration_values(values, config, unit)
    if len(parsed) < MIN_POINTS:
        logger.debug("Only %d usable concentrations; returning empty pattern", len(parsed))
        return DilutionPattern.empty(completeness=completeness, parse_failures=failures)

    sorted_desc = np.sort(np.asarray(parsed, dtype=float))[::-1]
    ratios = consecutive_ratios(sorted_desc)
    if ratios.size == 0:
        return DilutionPattern.empty(completeness=completeness, parse_failures=failures)

    median_ratio = median(ratios)
    outliers = detect_outliers(ratios, config.outlier_thresholds)
    keep = np.ones(ratios.size, dtype=bool)
    keep[list(outliers.indices)] = False
    clean = ratios[keep]
    consistency = consistency_score(clean)

    statistics = RatioStatistics(
        median_ratio=median_ratio,
        robust_std_dev=robust_std(ratios),
        outlier_count=outliers.count,
        consistency_score=consistency,
        outliers=outliers,
    )
    bayesian = bayesian_inference(median_ratio, consistency, config)
    pattern_type = classify_pattern(median_ratio, consistency, config)

    lo = float(sorted_desc[-1])
    hi = float(sorted_desc[0])
    log_range = math.log10(hi / lo)
    spacing_cv = robust_cv(ratios)
    spacing = max(0.0, 1.0 - spacing_cv) if math.isfinite(spacing_cv) else 0.0

    logger.debug(
        "Pattern %s: median ratio %.3f, consistency %.3f, %d outliers",
        pattern_type,
        median_ratio,
        consistency,
        outliers.count,
    )
    return DilutionPattern(
        type=pattern_type,
        parameters=_parameters_for(pattern_type, median_ratio, ratios),
        statistics=statistics,
        bayesian=bayesian,
        concentration_range=ConcentrationRange(lo, hi, log_range, log_range),
        quality=PatternQuality(
            completeness=completeness,
            monotonicity=_monotonicity(sorted_desc),
            spacing=spacing,
        ),
        robustness=_robustness(ratios, clean),
        values=tuple(float(v) for v in sorted_desc),
        ratios=tuple(float(r) for r in ratios),
        parse_failures=failures,
    )
