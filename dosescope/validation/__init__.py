"""
Scientific validation of dose-response datasets.

This subpackage scores whether a detected dataset is biologically plausible
and statistically usable for curve fitting.

Modules:
    concentration:
        Unit consistency, range appropriateness, assay inference and
        plausibility, dilution pattern quality, statistical power.

    response:
        Completeness, missing-data pattern, replicate variability, robust
        outlier screening and signal-to-noise of the response matrix.

    dose_response:
        Relationship strength, monotonicity, dynamic range and curve-fitting
        prospects.

    scoring:
        Fixed-threshold level mapping and weighted factor combination.

    validator:
        Entry point combining the three sub-validations with an error
        boundary, plus the graded quality report.

Design Principle:
    Every function returns a complete result record. Bad data lowers scores;
    it never raises past :func:`validate`.
"""

from .scoring import level_of
from .validator import quality_report, validate

__all__ = ["level_of", "quality_report", "validate"]
