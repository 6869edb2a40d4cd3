"""Assess the dose-response relationship and the prospects of fitting it.

No model is fitted here. The checks describe how well a downstream sigmoid
fit is likely to behave: relationship strength, monotonicity, dynamic range
and plateau coverage.
"""

from __future__ import annotations

import math
from typing import Dict, Sequence

import numpy as np
from scipy import stats

from ..config import DEFAULT_CONFIG, DetectionConfig
from ..schema import (
    DoseResponseValidation,
    DynamicRangeAssessment,
    FittingProspects,
    MonotonicityCheck,
    MonotonicityViolation,
    RelationshipStrength,
)
from .scoring import clamp, combine, factor

WEIGHTS: Dict[str, float] = {
    "Relationship Strength": 0.25,
    "Monotonicity": 0.15,
    "Dynamic Range": 0.25,
    "Fitting Prospects": 0.35,
}

RELATIONSHIP_THRESHOLD = 0.6
LINEAR_R2 = 0.95
CENTRAL_CHANGE_SHARE = 0.6
PLATEAU_TOLERANCE = 0.1
ADEQUATE_WINDOW = 0.3


def _central_change_share(log_levels: np.ndarray, means: np.ndarray) -> float:
    """Share of the total response change that happens in the middle half of the log range."""
    total = abs(means[-1] - means[0])
    if total == 0:
        return 0.0
    lo, hi = log_levels[0], log_levels[-1]
    quarter = (hi - lo) / 4.0
    inner = np.interp([lo + quarter, hi - quarter], log_levels, means)
    return float(abs(inner[1] - inner[0]) / total)


def assess_relationship(levels: np.ndarray, means: np.ndarray) -> RelationshipStrength:
    """Spearman correlation between concentration and mean response.

    The relationship is ``linear`` when mean response is close to linear in
    log concentration, ``sigmoid`` when most of the change happens in the
    middle half of the log range, ``complex`` otherwise, and ``none`` below a
    weak correlation.
    """
    if levels.size < 3 or np.ptp(means) == 0:
        return RelationshipStrength()

    rho, p_value = stats.spearmanr(levels, means)
    rho = float(rho) if np.isfinite(rho) else 0.0
    strength = abs(rho)

    log_levels = np.log10(levels)
    if strength < 0.3:
        kind = "none"
    else:
        r, _ = stats.pearsonr(log_levels, means)
        if np.isfinite(r) and r**2 >= LINEAR_R2:
            kind = "linear"
        elif _central_change_share(log_levels, means) >= CENTRAL_CHANGE_SHARE:
            kind = "sigmoid"
        else:
            kind = "complex"
    return RelationshipStrength(rho, strength, float(p_value), kind, strength >= RELATIONSHIP_THRESHOLD)


def check_monotonicity(means: np.ndarray, correlation: float, tolerance: float = 0.0) -> MonotonicityCheck:
    """List steps that move against the overall trend by more than ``tolerance``.

    Args:
        means: Mean responses, lowest concentration first.
        correlation: Sign gives the expected direction.
        tolerance: Step size treated as noise.
    """
    if means.size < 2 or correlation == 0:
        return MonotonicityCheck()
    sign = 1.0 if correlation > 0 else -1.0
    expected, opposite = ("up", "down") if sign > 0 else ("down", "up")

    steps = np.diff(means)
    violations = tuple(
        MonotonicityViolation(i + 1, expected, opposite, float(abs(step)))
        for i, step in enumerate(steps)
        if sign * step < -tolerance
    )
    return MonotonicityCheck(
        direction="increasing" if sign > 0 else "decreasing",
        is_monotonic=not violations,
        strength=1.0 - len(violations) / steps.size,
        violations=violations,
    )


def assess_dynamic_range(
    means: np.ndarray, log_range: float, config: DetectionConfig = DEFAULT_CONFIG
) -> DynamicRangeAssessment:
    """Response window between the lowest and highest concentration, with plateau checks."""
    if means.size < 2:
        return DynamicRangeAssessment()
    baseline, top = float(means[0]), float(means[-1])
    window = abs(top - baseline)
    scale = float(np.max(np.abs(means)))
    fraction = window / scale if scale > 0 else 0.0

    tol = PLATEAU_TOLERANCE * window
    lower = bool(means.size >= 4 and window > 0 and abs(means[1] - means[0]) <= tol)
    upper = bool(means.size >= 4 and window > 0 and abs(means[-1] - means[-2]) <= tol)
    adequate = fraction >= ADEQUATE_WINDOW and log_range >= config.concentration.minimum_range
    return DynamicRangeAssessment(baseline, top, fraction, lower, upper, adequate)


def _midpoint(levels: np.ndarray, means: np.ndarray, baseline: float, top: float):
    """Interpolate, in log concentration, where the response crosses half its window."""
    half = (baseline + top) / 2.0
    shifted = means - half
    for i in range(levels.size - 1):
        a, b = shifted[i], shifted[i + 1]
        if a == 0:
            return float(levels[i]), (float(levels[i]), float(levels[i]))
        if a * b < 0:
            t = a / (a - b)
            log_mid = math.log10(levels[i]) + t * (math.log10(levels[i + 1]) - math.log10(levels[i]))
            return 10**log_mid, (float(levels[i]), float(levels[i + 1]))
    if shifted[-1] == 0:
        return float(levels[-1]), (float(levels[-1]), float(levels[-1]))
    return math.nan, (math.nan, math.nan)


def assess_fitting(
    levels: np.ndarray,
    means: np.ndarray,
    monotonicity: MonotonicityCheck,
    dynamic: DynamicRangeAssessment,
    log_range: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> FittingProspects:
    """Qualitative convergence and identifiability prospects for a sigmoid fit."""
    standards = config.concentration
    n = int(levels.size)
    if n < 3:
        return FittingProspects(challenges=("fewer than 3 concentrations with responses",))

    range_term = clamp(log_range / standards.recommended_range)
    plateaus = (float(dynamic.lower_plateau) + float(dynamic.upper_plateau)) / 2.0

    convergence = 0.2 + 0.3 * plateaus + 0.3 * monotonicity.strength + 0.2 * range_term
    if n < standards.minimum_points:
        convergence *= n / standards.minimum_points
    identifiability = min(1.0, n / standards.recommended_points) * range_term * (0.5 + 0.5 * plateaus)

    midpoint, bracket = _midpoint(levels, means, dynamic.baseline, dynamic.top)

    challenges = []
    if n < standards.minimum_points:
        challenges.append(f"only {n} concentrations (minimum {standards.minimum_points})")
    if log_range < standards.minimum_range:
        challenges.append(f"narrow concentration range ({log_range:.1f} decades)")
    if not dynamic.lower_plateau:
        challenges.append("no lower plateau")
    if not dynamic.upper_plateau:
        challenges.append("no upper plateau")
    if monotonicity.violations:
        challenges.append(f"{len(monotonicity.violations)} monotonicity violations")
    if not math.isfinite(midpoint):
        challenges.append("midpoint outside tested range")

    return FittingProspects(
        convergence_probability=clamp(convergence),
        parameter_identifiability=clamp(identifiability),
        midpoint_estimate=midpoint,
        midpoint_bracket=bracket,
        challenges=tuple(challenges),
    )


def validate_dose_response(
    levels: Sequence[float],
    means: Sequence[float],
    noise: float = math.nan,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> DoseResponseValidation:
    """Score the relationship between concentration and mean response.

    Args:
        levels: Distinct concentrations in nM, ascending.
        means: Mean response at each level.
        noise: Pooled replicate standard deviation used as the monotonicity
            tolerance; ``nan`` when there are no replicates.
        config: Detection configuration.

    Returns:
        DoseResponseValidation: Assessments and their weighted score.
    """
    levels = np.asarray(levels, dtype=float)
    means = np.asarray(means, dtype=float)
    log_range = math.log10(levels[-1] / levels[0]) if levels.size >= 2 else 0.0

    relationship = assess_relationship(levels, means)
    tolerance = noise if math.isfinite(noise) else 0.0
    monotonicity = check_monotonicity(means, relationship.correlation, tolerance)
    dynamic = assess_dynamic_range(means, log_range, config)
    fitting = assess_fitting(levels, means, monotonicity, dynamic, log_range, config)

    factors = (
        factor(
            "Relationship Strength",
            WEIGHTS["Relationship Strength"],
            relationship.strength,
            f"Spearman rho {relationship.correlation:.2f} ({relationship.type})",
        ),
        factor(
            "Monotonicity",
            WEIGHTS["Monotonicity"],
            monotonicity.strength,
            f"{len(monotonicity.violations)} violations ({monotonicity.direction})",
        ),
        factor(
            "Dynamic Range",
            WEIGHTS["Dynamic Range"],
            dynamic.window_fraction / 0.5,
            f"response window {dynamic.window_fraction:.0%} of maximum",
        ),
        factor(
            "Fitting Prospects",
            WEIGHTS["Fitting Prospects"],
            (fitting.convergence_probability + fitting.parameter_identifiability) / 2.0,
            f"convergence {fitting.convergence_probability:.2f}, identifiability {fitting.parameter_identifiability:.2f}",
        ),
    )
    return DoseResponseValidation(
        score=combine(factors, config.level_thresholds),
        relationship=relationship,
        monotonicity=monotonicity,
        dynamic_range=dynamic,
        fitting=fitting,
    )
