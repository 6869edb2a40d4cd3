"""Default adaptive pattern detector.

The integration engine treats the adaptive detector as an external
collaborator: anything with an ``async detect(values)`` method returning
ranked :class:`~dosescope.schema.PatternCandidate` records can be injected.
:class:`RatioPatternDetector` is the built-in implementation; it screens the
concentration ratios against a grid of candidate dilution factors instead of
the fixed canonical priors used by the Bayesian step.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import List, Protocol, Sequence

import numpy as np

from .config import SQRT10
from .schema import PatternCandidate
from .stats.robust import coefficient_of_variation

logger = logging.getLogger(__name__)

SCREEN_FACTORS = (2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0, 10.0, SQRT10)
DEVIATION_THRESHOLD = 0.3
SERIAL_MIN_CONFIDENCE = 0.2
CUSTOM_MIN_CONFIDENCE = 0.4
VALID_MIN_CONFIDENCE = 0.15


class PatternDetector(Protocol):
    async def detect(self, values: Sequence[float]) -> Sequence[PatternCandidate]:
        ...


def _type_for(factor: float) -> str:
    if factor == 10.0:
        return "log-scale"
    if factor == SQRT10:
        return "half-log"
    return "serial"


def _skewness(values: np.ndarray) -> float:
    std = float(np.std(values))
    if std == 0:
        return 0.0
    return float(np.mean(((values - np.mean(values)) / std) ** 3))


def _iqr_outlier_share(values: np.ndarray) -> float:
    if values.size < 3:
        return 0.0
    ordered = np.sort(values)
    q1 = ordered[int(values.size * 0.25)]
    q3 = ordered[int(values.size * 0.75)]
    iqr = q3 - q1
    outside = (values < q1 - 1.5 * iqr) | (values > q3 + 1.5 * iqr)
    return float(np.mean(outside))


def _lag1_autocorrelation(values: np.ndarray) -> float:
    if values.size < 4:
        return 0.0
    centered = values - np.mean(values)
    denominator = float(np.sum(centered**2))
    if denominator == 0:
        return 0.0
    return float(np.sum(centered[:-1] * centered[1:]) / denominator)


def confidence_multiplier(ratios: np.ndarray) -> float:
    """Bonus for symmetric ratios, penalties for IQR outliers and autocorrelation."""
    multiplier = 1.0
    if abs(_skewness(ratios)) < 1:
        multiplier *= 1.1
    if _iqr_outlier_share(ratios) > 0.2:
        multiplier *= 0.8
    if abs(_lag1_autocorrelation(ratios)) > 0.5:
        multiplier *= 0.9
    return multiplier


class RatioPatternDetector:
    """Screen concentration ratios against candidate dilution factors.

    Each factor ``f`` gets
    ``(1 - mean deviation) * 0.6 + (1 - outlier share) * 0.2 + completeness * 0.2``
    where deviations are ``|ratio - f| / f``, the outlier share counts
    deviations above 0.3, and completeness compares the observed number of
    steps with the steps ``f`` would need to span the range. A custom-ratio
    candidate scores ``1 - CV(ratios)``.
    """

    def screen(self, values: Sequence[float]) -> List[PatternCandidate]:
        arr = np.asarray([v for v in values if math.isfinite(v) and v > 0], dtype=float)
        if arr.size < 3:
            return []
        ordered = np.sort(arr)[::-1]
        ratios = ordered[:-1] / ordered[1:]
        ratios = ratios[np.isfinite(ratios) & (ratios > 0)]
        if ratios.size == 0:
            return []
        span = math.log(ordered[0] / ordered[-1])

        candidates = []
        for f in SCREEN_FACTORS:
            deviations = np.abs(ratios - f) / f
            mean_deviation = float(np.mean(deviations))
            outlier_share = min(1.0, float(np.mean(deviations > DEVIATION_THRESHOLD)))
            expected_steps = span / math.log(f)
            completeness = min(1.0, (ordered.size - 1) / expected_steps) if expected_steps > 0 else 0.0
            confidence = (1 - mean_deviation) * 0.6 + (1 - outlier_share) * 0.2 + completeness * 0.2
            if confidence > SERIAL_MIN_CONFIDENCE:
                candidates.append(
                    PatternCandidate(
                        _type_for(f),
                        confidence,
                        {"factor": f, "mean_deviation": mean_deviation, "completeness": completeness},
                    )
                )

        cv = coefficient_of_variation(ratios)
        custom = max(0.0, 1.0 - cv) if math.isfinite(cv) else 0.0
        if custom > CUSTOM_MIN_CONFIDENCE:
            candidates.append(
                PatternCandidate("custom", custom, {"factor": float(np.median(ratios)), "cv": cv})
            )

        multiplier = confidence_multiplier(ratios)
        # Rank before capping so near-misses stay below exact matches.
        scored = [(c.confidence * multiplier, c) for c in candidates]
        scored = [(s, c) for s, c in scored if s > VALID_MIN_CONFIDENCE]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [PatternCandidate(c.type, min(1.0, s), c.parameters) for s, c in scored]

    async def detect(self, values: Sequence[float]) -> List[PatternCandidate]:
        """Run :meth:`screen` in a worker thread so the event loop stays free."""
        candidates = await asyncio.to_thread(self.screen, list(values))
        logger.debug("Adaptive detector produced %d candidates", len(candidates))
        return candidates
