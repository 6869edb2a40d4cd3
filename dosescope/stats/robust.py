"""Provide robust location/scale estimators and tiered outlier detection.

This module supports:
- median and MAD-based standard deviation estimates,
- robust z-scores with cumulative mild/moderate/severe tiers, and
- classical and robust coefficients of variation.

All helpers are total over finite input: empty or degenerate samples give
``nan`` rather than raising, so callers decide how to score missing evidence.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

MAD_SCALE = 1.4826
EPSILON = 1e-12

DEFAULT_OUTLIER_THRESHOLDS: Tuple[float, float, float] = (1.96, 2.5, 3.5)
SEVERITY_LABELS: Tuple[str, str, str] = ("mild", "moderate", "severe")


@dataclass(frozen=True)
class OutlierAnalysis:
    """Outliers flagged by the robust z-score test.

    Attributes:
        method: Name of the detection method.
        indices: Positions of flagged values in the input sequence.
        values: The flagged values, in the same order as ``indices``.
        severity: Severity label per flagged value (``mild``, ``moderate``
            or ``severe``), the highest tier whose threshold is exceeded.
        confidence: ``1 - flagged / n``; ``0`` when the test could not run.
    """

    method: str = "robust-z-score"
    indices: Tuple[int, ...] = ()
    values: Tuple[float, ...] = ()
    severity: Tuple[str, ...] = ()
    confidence: float = 0.0

    @property
    def count(self) -> int:
        return len(self.indices)

    @classmethod
    def empty(cls) -> "OutlierAnalysis":
        return cls()


def _finite(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    return arr[np.isfinite(arr)]


def median(values: Sequence[float]) -> float:
    """Return the median of the finite values, or ``nan`` when there are none."""
    arr = _finite(values)
    if arr.size == 0:
        return math.nan
    return float(np.median(arr))


def robust_std(values: Sequence[float]) -> float:
    """Return ``1.4826 * median(|x - median(x)|)`` over the finite values.

    The scale factor makes the MAD a consistent estimator of the standard
    deviation for normally distributed data.
    """
    arr = _finite(values)
    if arr.size == 0:
        return math.nan
    center = np.median(arr)
    return float(MAD_SCALE * np.median(np.abs(arr - center)))


def robust_z_scores(values: Sequence[float]) -> np.ndarray:
    """Return ``|x - median| / robust_std`` for every value.

    Note:
        With a zero robust standard deviation, values away from the median get
        ``inf`` and values equal to the median get ``nan``. ``nan`` compares
        false against every threshold, so those values are never flagged.
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr
    center = median(arr)
    scale = robust_std(arr)
    deviation = np.abs(arr - center)
    # Floating-point noise around an exact series is not a deviation.
    deviation[deviation <= EPSILON * max(1.0, abs(center))] = 0.0
    with np.errstate(divide="ignore", invalid="ignore"):
        return deviation / scale


def detect_outliers(
    values: Sequence[float],
    thresholds: Tuple[float, float, float] = DEFAULT_OUTLIER_THRESHOLDS,
    min_points: int = 3,
) -> OutlierAnalysis:
    """Flag values whose robust z-score exceeds the mildest threshold.

    Tiers are cumulative: any value above ``thresholds[0]`` is flagged and its
    severity is the label of the highest threshold it also exceeds.

    Args:
        values: Sample to screen.
        thresholds: Ascending ``(mild, moderate, severe)`` z-score cut-offs.
        min_points: Minimum sample size for the test to run.

    Returns:
        OutlierAnalysis: Flagged indices, values and severities. An empty
        analysis with zero confidence when fewer than ``min_points`` values
        are supplied.
    """
    arr = np.asarray(values, dtype=float)
    n = int(arr.size)
    if n < min_points:
        return OutlierAnalysis.empty()

    z = robust_z_scores(arr)
    indices = []
    flagged = []
    severity = []
    for i, score in enumerate(z):
        if not score > thresholds[0]:
            continue
        level = SEVERITY_LABELS[0]
        for label, cutoff in zip(SEVERITY_LABELS[1:], thresholds[1:]):
            if score > cutoff:
                level = label
        indices.append(i)
        flagged.append(float(arr[i]))
        severity.append(level)

    return OutlierAnalysis(
        indices=tuple(indices),
        values=tuple(flagged),
        severity=tuple(severity),
        confidence=1.0 - len(indices) / n,
    )


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Return population standard deviation divided by ``|mean|``.

    Returns ``nan`` for empty samples or a zero mean.
    """
    arr = _finite(values)
    if arr.size == 0:
        return math.nan
    mean = float(np.mean(arr))
    if mean == 0:
        return math.nan
    return float(np.std(arr) / abs(mean))


def robust_cv(values: Sequence[float]) -> float:
    """Return ``robust_std / |median|``, or ``nan`` when undefined."""
    center = median(values)
    if not math.isfinite(center) or center == 0:
        return math.nan
    return robust_std(values) / abs(center)
