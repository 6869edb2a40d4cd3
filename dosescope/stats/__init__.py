"""
Statistical utilities for dose-response data analysis.

This subpackage provides the numerical routines shared by the structural,
dilution-pattern, validation and integration stages. All functions operate on
arrays and primitive types; no assay-specific logic is included.

Modules:
    robust:
        Median, MAD-scaled standard deviation, robust z-scores with tiered
        outlier flagging, and coefficient-of-variation helpers.

    uncertainty:
        Normal-approximation confidence intervals for small samples of
        confidence components, clamped to the unit interval.

Design Principle:
    This subpackage has no dependencies on the analyzer modules. It provides
    pure numerical utilities that can be independently tested.
"""

from .robust import (
    MAD_SCALE,
    OutlierAnalysis,
    coefficient_of_variation,
    detect_outliers,
    median,
    robust_cv,
    robust_std,
    robust_z_scores,
)
from .uncertainty import ConfidenceInterval, normal_interval

__all__ = [
    "MAD_SCALE",
    "OutlierAnalysis",
    "coefficient_of_variation",
    "detect_outliers",
    "median",
    "robust_cv",
    "robust_std",
    "robust_z_scores",
    "ConfidenceInterval",
    "normal_interval",
]
