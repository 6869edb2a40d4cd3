"""
Confidence-interval helpers for fused confidence scores.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class ConfidenceInterval:
    mean: float
    lower: float
    upper: float
    width: float
    method: str


def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return float(min(hi, max(lo, x)))


def normal_interval(samples: Sequence[float], z: float = 1.96) -> ConfidenceInterval:
    """Return ``mean ± z·σ/√n`` over the positive finite samples, clamped to [0, 1].

    The population standard deviation is used. Non-positive samples carry no
    evidence and are dropped first; with nothing left the interval collapses
    to zero with method ``no-data``.
    """
    arr = np.asarray(samples, dtype=float)
    arr = arr[np.isfinite(arr) & (arr > 0)]
    if arr.size == 0:
        return ConfidenceInterval(0.0, 0.0, 0.0, 0.0, "no-data")

    mean = float(np.mean(arr))
    half = z * float(np.std(arr)) / math.sqrt(arr.size)
    lower = _clamp(mean - half)
    upper = _clamp(mean + half)
    return ConfidenceInterval(mean, lower, upper, upper - lower, "normal-approximation")
