"""Validate replicate response data.

Responses are grouped by concentration, so both wide layouts (one column per
replicate) and long layouts (one row per replicate) are handled the same way.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from ..config import DEFAULT_CONFIG, DetectionConfig
from ..schema import (
    MissingDataPattern,
    ReplicateAnalysis,
    ResponseValidation,
    SignalToNoise,
)
from ..stats.robust import detect_outliers, robust_std
from .scoring import clamp, combine, factor

WEIGHTS: Dict[str, float] = {
    "Completeness": 0.25,
    "Replicate Consistency": 0.25,
    "Outliers": 0.20,
    "Signal-to-Noise": 0.30,
}

CATEGORY_SCORES: Dict[str, float] = {
    "excellent": 1.0,
    "good": 0.85,
    "acceptable": 0.6,
    "poor": 0.3,
}

SNR_CAP = 1000.0


@dataclass(frozen=True)
class ResponseGroups:
    """Responses pooled per distinct concentration, lowest concentration first."""

    levels: np.ndarray
    groups: Tuple[np.ndarray, ...]

    @property
    def means(self) -> np.ndarray:
        return np.array([float(np.mean(g)) for g in self.groups])

    @property
    def sizes(self) -> List[int]:
        return [int(g.size) for g in self.groups]

    @property
    def has_replicates(self) -> bool:
        return bool(self.groups) and int(np.median(self.sizes)) >= 2

    def pooled_sd(self) -> float:
        """Root mean within-group variance over groups with two or more values."""
        variances = [float(np.var(g, ddof=1)) for g in self.groups if g.size >= 2]
        if not variances:
            return math.nan
        return math.sqrt(float(np.mean(variances)))


def group_responses(concentrations: Sequence[float], matrix: np.ndarray) -> ResponseGroups:
    """Pool finite responses per distinct concentration; empty groups are dropped."""
    conc = np.asarray(concentrations, dtype=float)
    levels = []
    groups = []
    for level in np.unique(conc):
        values = matrix[conc == level].ravel()
        values = values[np.isfinite(values)]
        if values.size:
            levels.append(float(level))
            groups.append(values)
    return ResponseGroups(np.asarray(levels, dtype=float), tuple(groups))


def classify_missing_data(concentrations: Sequence[float], matrix: np.ndarray) -> MissingDataPattern:
    """Name the dominant pattern of missing response cells.

    Fully missing rows make the pattern ``systematic``; missing cells piling
    up in one replicate column make it ``replicate-dependent``; missing cells
    mostly at the lowest or highest concentrations make it
    ``concentration-dependent``; otherwise ``random``.
    """
    if matrix.size == 0:
        return MissingDataPattern("none", 0.0)
    missing = ~np.isfinite(matrix)
    total = int(missing.sum())
    if total == 0:
        return MissingDataPattern("none", 0.0)
    severity = total / matrix.size

    full_rows = missing.all(axis=1)
    if full_rows.any() and missing[full_rows].sum() >= 0.5 * total:
        return MissingDataPattern("systematic", severity)
    if total >= 2:
        if matrix.shape[1] > 1 and missing.sum(axis=0).max() > 0.5 * total:
            return MissingDataPattern("replicate-dependent", severity)
        order = np.argsort(np.asarray(concentrations, dtype=float), kind="stable")
        edge = max(1, int(round(0.2 * len(order))))
        extremes = np.concatenate([order[:edge], order[-edge:]])
        if missing[np.unique(extremes)].sum() >= 0.75 * total:
            return MissingDataPattern("concentration-dependent", severity)
    return MissingDataPattern("random", severity)


def analyze_replicates(
    groups: ResponseGroups, matrix: np.ndarray, config: DetectionConfig = DEFAULT_CONFIG
) -> ReplicateAnalysis:
    """Within-concentration and between-replicate-column variability."""
    standards = config.response
    if not groups.groups:
        return ReplicateAnalysis()
    count = int(np.median(groups.sizes))

    cvs = []
    for g in groups.groups:
        if g.size >= 2 and np.mean(g) != 0:
            cvs.append(float(np.std(g, ddof=1) / abs(np.mean(g))))
    within = float(np.median(cvs)) if cvs else math.nan

    between = math.nan
    if matrix.ndim == 2 and matrix.shape[1] >= 2:
        with np.errstate(invalid="ignore"):
            col_means = np.array(
                [np.mean(col[np.isfinite(col)]) if np.isfinite(col).any() else math.nan for col in matrix.T]
            )
        col_means = col_means[np.isfinite(col_means)]
        if col_means.size >= 2 and np.mean(col_means) != 0:
            between = float(np.std(col_means) / abs(np.mean(col_means)))

    if count < 2 or not math.isfinite(within):
        quality = "none"
    elif within <= 0.1:
        quality = "excellent"
    elif within <= standards.max_cv_within_replicates:
        quality = "good"
    elif within <= standards.max_cv_between_replicates:
        quality = "acceptable"
    else:
        quality = "poor"

    adequate = (
        count >= standards.minimum_replicates
        and math.isfinite(within)
        and within <= standards.max_cv_within_replicates
    )
    return ReplicateAnalysis(count, within, between, quality, adequate)


def _residuals(groups: ResponseGroups) -> np.ndarray:
    """Deviations from each concentration's median, or raw values without replicates."""
    if groups.has_replicates:
        parts = [g - np.median(g) for g in groups.groups if g.size >= 2]
        return np.concatenate(parts) if parts else np.array([], dtype=float)
    return np.concatenate(groups.groups) if groups.groups else np.array([], dtype=float)


def characterize_signal(groups: ResponseGroups, config: DetectionConfig = DEFAULT_CONFIG) -> SignalToNoise:
    """Dynamic range of mean responses and their signal-to-noise ratio."""
    standards = config.response
    if len(groups.groups) < 2:
        return SignalToNoise()
    means = groups.means
    top, bottom = float(np.max(means)), float(np.min(means))

    if bottom > 0:
        dynamic_range = top / bottom
    else:
        dynamic_range = math.inf if top > 0 else 0.0

    noise = groups.pooled_sd() if groups.has_replicates else math.nan
    if not math.isfinite(noise):
        noise = robust_std(np.diff(means)) / math.sqrt(2.0)
    span = top - bottom
    if math.isfinite(noise) and noise > 0:
        snr = min(SNR_CAP, span / noise)
    else:
        snr = SNR_CAP if span > 0 else 0.0

    if dynamic_range >= standards.excellent_dynamic_range:
        category = "excellent"
    elif dynamic_range >= standards.recommended_dynamic_range:
        category = "good"
    elif dynamic_range >= standards.minimum_dynamic_range:
        category = "acceptable"
    else:
        category = "poor"
    return SignalToNoise(dynamic_range, snr, clamp(snr / 10.0), category)


def validate_responses(
    concentrations: Sequence[float],
    responses: Sequence[Sequence[float]],
    config: DetectionConfig = DEFAULT_CONFIG,
) -> ResponseValidation:
    """Score response completeness, replicate agreement, outliers and signal.

    Args:
        concentrations: Concentrations in nM, one per response row.
        responses: Response rows; missing values are ``nan``.
        config: Detection configuration.

    Returns:
        ResponseValidation: Assessments and their weighted score.
    """
    standards = config.response
    matrix = np.asarray(responses, dtype=float)
    if matrix.ndim != 2:
        matrix = matrix.reshape(len(concentrations), -1)

    completeness = float(np.isfinite(matrix).sum() / matrix.size) if matrix.size else 0.0
    missing = classify_missing_data(concentrations, matrix)
    groups = group_responses(concentrations, matrix)
    replicates = analyze_replicates(groups, matrix, config)

    residuals = _residuals(groups)
    outliers = detect_outliers(residuals, config.outlier_thresholds)
    outlier_fraction = outliers.count / residuals.size if residuals.size else 0.0
    signal = characterize_signal(groups, config)

    if math.isfinite(replicates.within_cv) and replicates.replicate_count >= 2:
        replicate_score = 1.0 - replicates.within_cv / (2 * standards.max_cv_within_replicates)
        replicate_note = f"within-replicate CV {replicates.within_cv:.1%}"
    else:
        replicate_score = 0.5
        replicate_note = "no replicates to compare"

    factors = (
        factor("Completeness", WEIGHTS["Completeness"], completeness, f"{completeness:.0%} of response cells present"),
        factor("Replicate Consistency", WEIGHTS["Replicate Consistency"], replicate_score, replicate_note),
        factor(
            "Outliers",
            WEIGHTS["Outliers"],
            1.0 - outlier_fraction / (2 * standards.max_outlier_fraction),
            f"{outliers.count} outlying responses ({outlier_fraction:.0%})",
        ),
        factor(
            "Signal-to-Noise",
            WEIGHTS["Signal-to-Noise"],
            0.5 * CATEGORY_SCORES[signal.category] + 0.5 * signal.clarity,
            f"dynamic range {signal.dynamic_range:.2f} ({signal.category}), SNR {signal.signal_to_noise:.1f}",
        ),
    )
    return ResponseValidation(
        score=combine(factors, config.level_thresholds),
        completeness=completeness,
        missing_data=missing,
        replicates=replicates,
        outliers=outliers,
        outlier_fraction=outlier_fraction,
        signal=signal,
    )
