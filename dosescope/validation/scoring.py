"""Shared scoring helpers for the validation modules."""

from __future__ import annotations

import math
from typing import Sequence, Tuple

from ..config import LEVEL_THRESHOLDS
from ..schema import ValidationFactor, ValidationScore


def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    if not math.isfinite(x):
        return lo
    return float(min(hi, max(lo, x)))


def level_of(score: float, thresholds: Tuple[Tuple[float, str], ...] = LEVEL_THRESHOLDS) -> str:
    """Map a score in [0, 1] to a validation level.

    Thresholds are inclusive lower bounds (0.9 excellent, 0.75 good, 0.6
    acceptable, 0.4 poor); anything below the last one is unacceptable.
    """
    for cutoff, level in thresholds:
        if score >= cutoff:
            return level
    return "unacceptable"


def impact_of(score: float) -> str:
    if score >= 0.7:
        return "positive"
    if score >= 0.4:
        return "neutral"
    return "negative"


def factor(name: str, weight: float, score: float, description: str) -> ValidationFactor:
    score = clamp(score)
    return ValidationFactor(name, weight, score, impact_of(score), description)


def combine(
    factors: Sequence[ValidationFactor],
    thresholds: Tuple[Tuple[float, str], ...] = LEVEL_THRESHOLDS,
) -> ValidationScore:
    """Weighted sum of factor scores; confidence is the weakest factor score."""
    score = clamp(sum(f.weight * f.score for f in factors))
    confidence = min((f.score for f in factors), default=0.0)
    return ValidationScore(score, level_of(score, thresholds), confidence, tuple(factors))
