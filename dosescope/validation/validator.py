"""Run the concentration, response and dose-response validations as one call.

This module is the validator's error boundary: whatever the input, callers
get a structurally complete :class:`ValidationResult`.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config import DEFAULT_CONFIG, DetectionConfig
from ..grid import numeric_value, to_cell
from ..schema import (
    ConcentrationValidation,
    DoseResponseValidation,
    QualityReport,
    ResponseValidation,
    ValidationOptions,
    ValidationRecommendation,
    ValidationResult,
    ValidationScore,
)
from ..units import to_nanomolar
from .concentration import validate_concentrations
from .dose_response import validate_dose_response
from .response import group_responses, validate_responses
from .scoring import clamp, level_of

logger = logging.getLogger(__name__)

OVERALL_WEIGHTS = {"concentration": 0.4, "response": 0.3, "dose_response": 0.3}
MIN_CONCENTRATIONS = 3

GRADES: Tuple[Tuple[float, str], ...] = ((0.9, "A"), (0.8, "B"), (0.7, "C"), (0.6, "D"))


def _response_value(raw: object) -> float:
    """Numeric reading of one response cell; unreadable or non-finite cells are ``nan``."""
    value = numeric_value(to_cell(raw))
    return value if value is not None and math.isfinite(value) else math.nan


def _recommendations(
    conc: ConcentrationValidation,
    resp: ResponseValidation,
    dr: DoseResponseValidation,
    config: DetectionConfig,
) -> Tuple[ValidationRecommendation, ...]:
    recs: List[ValidationRecommendation] = []
    rng = conc.range
    if not rng.is_appropriate:
        recs.append(
            ValidationRecommendation(
                type="important",
                category="concentration-range",
                message=f"Adjust the concentration range ({rng.category}, {rng.order_of_magnitude:.1f} decades).",
                technical_explanation=(
                    f"Expected window {rng.expected_range[0]:g}-{rng.expected_range[1]:g} nM; "
                    f"observed {rng.min:g}-{rng.max:g} nM."
                ),
                estimated_impact=0.3,
                implementation_complexity="moderate",
            )
        )
    if not conc.power.adequate_for_fitting:
        recs.append(
            ValidationRecommendation(
                type="critical",
                category="statistical-power",
                message=(
                    f"Add concentrations: estimated power {conc.power.estimated_power:.2f} "
                    f"is below {config.statistical.minimum_power:.2f}."
                ),
                technical_explanation=(
                    f"{conc.power.sample_size} distinct concentrations; "
                    f"{config.concentration.recommended_points} are recommended."
                ),
                estimated_impact=0.4,
                implementation_complexity="moderate",
            )
        )
    replicates = resp.replicates
    if math.isfinite(replicates.within_cv) and replicates.within_cv > config.response.max_cv_within_replicates:
        recs.append(
            ValidationRecommendation(
                type="important",
                category="replicate-consistency",
                message=f"Reduce replicate variability (within-replicate CV {replicates.within_cv:.0%}).",
                technical_explanation=(
                    f"Limit is {config.response.max_cv_within_replicates:.0%}; check pipetting and plate effects."
                ),
                estimated_impact=0.25,
                implementation_complexity="moderate",
            )
        )
    if resp.outlier_fraction > config.response.max_outlier_fraction:
        recs.append(
            ValidationRecommendation(
                type="important",
                category="outliers",
                message=f"Review outlying responses ({resp.outlier_fraction:.0%} of values).",
                technical_explanation="Robust z-scores above 1.96 relative to the per-concentration median.",
                estimated_impact=0.2,
                implementation_complexity="simple",
            )
        )
    if resp.signal.category == "poor":
        recs.append(
            ValidationRecommendation(
                type="important",
                category="dynamic-range",
                message=f"Increase the response window (dynamic range {resp.signal.dynamic_range:.2f}).",
                technical_explanation=(
                    f"At least {config.response.minimum_dynamic_range:g}-fold between mean responses is needed."
                ),
                estimated_impact=0.25,
                implementation_complexity="complex",
            )
        )
    if dr.monotonicity.violations:
        recs.append(
            ValidationRecommendation(
                type="suggestion",
                category="monotonicity",
                message=f"Check {len(dr.monotonicity.violations)} non-monotonic steps in the response.",
                technical_explanation="Steps against the overall trend exceed replicate noise.",
                estimated_impact=0.1,
                implementation_complexity="simple",
            )
        )
    return tuple(recs)


def _validate(
    concentrations: Sequence[object],
    responses: Sequence[Sequence[float]],
    options: ValidationOptions,
    config: DetectionConfig,
    unit: str,
) -> ValidationResult:
    if len(concentrations) == 0:
        return ValidationResult.error("no concentration data")
    if len(responses) != len(concentrations):
        return ValidationResult.error(
            f"mismatched lengths: {len(concentrations)} concentrations, {len(responses)} response rows"
        )
    widths = {len(row) for row in responses}
    if len(widths) != 1:
        return ValidationResult.error("response rows have different widths")
    if widths == {0}:
        return ValidationResult.error("no response columns")

    cells = []
    values = []
    rows = []
    for cell, row in zip(concentrations, responses):
        value = to_nanomolar(cell, unit, config.molecular_weight)
        cells.append(cell)
        if value is None or not math.isfinite(value) or value <= 0:
            continue
        values.append(value)
        rows.append([_response_value(v) for v in row])

    if len(np.unique(values)) < MIN_CONCENTRATIONS:
        return ValidationResult.error(
            f"fewer than {MIN_CONCENTRATIONS} usable concentrations ({len(set(values))} found)"
        )

    conc = validate_concentrations(cells, values, unit, options, config)
    matrix = np.asarray(rows, dtype=float)
    resp = validate_responses(values, matrix, config)
    groups = group_responses(values, matrix)
    noise = groups.pooled_sd() if groups.has_replicates else math.nan
    dr = validate_dose_response(groups.levels, groups.means, noise, config)

    score = clamp(
        OVERALL_WEIGHTS["concentration"] * conc.score.score
        + OVERALL_WEIGHTS["response"] * resp.score.score
        + OVERALL_WEIGHTS["dose_response"] * dr.score.score
    )
    confidence = min(conc.score.confidence, resp.score.confidence, dr.score.confidence)
    overall = ValidationScore(score, level_of(score, config.level_thresholds), confidence, ())

    logger.info(
        "Validation: concentration %.2f, response %.2f, dose-response %.2f -> %s",
        conc.score.score,
        resp.score.score,
        dr.score.score,
        overall.level,
    )
    return ValidationResult(
        overall=overall,
        concentration=conc,
        response=resp,
        dose_response=dr,
        recommendations=_recommendations(conc, resp, dr, config),
        valid=True,
    )


def validate(
    concentrations: Sequence[object],
    responses: Sequence[Sequence[float]],
    options: Optional[ValidationOptions] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
    unit: Optional[str] = None,
) -> ValidationResult:
    """Validate a dose-response dataset.

    Args:
        concentrations: Concentration cells, one per response row.
        responses: Response rows aligned with ``concentrations``; missing
            values are ``nan`` or ``None``.
        options: Assay hints.
        config: Detection configuration.
        unit: Unit for bare concentration numbers; defaults to
            ``config.default_unit``.

    Returns:
        ValidationResult: Per-dimension scores and recommendations. Empty or
        mismatched input, fewer than three usable concentrations, or any
        unexpected error give :meth:`ValidationResult.error`.
    """
    try:
        return _validate(
            concentrations,
            responses,
            options or ValidationOptions(),
            config,
            unit or config.default_unit,
        )
    except Exception as exc:
        logger.exception("Validation failed")
        return ValidationResult.error(f"{type(exc).__name__}: {exc}")


def quality_report(result: ValidationResult) -> QualityReport:
    """Summarize a validation result as a letter grade with strengths and weaknesses."""
    score = result.overall.score
    grade = next((g for cutoff, g in GRADES if score >= cutoff), "F")

    strengths = []
    weaknesses = []
    for sub in (result.concentration.score, result.response.score, result.dose_response.score):
        for f in sub.factors:
            if f.score >= 0.8:
                strengths.append(f"{f.name}: {f.description}")
            elif f.score < 0.5:
                weaknesses.append(f"{f.name}: {f.description}")

    critical = tuple(r.message for r in result.recommendations if r.type == "critical")
    ready = (
        result.valid
        and result.overall.level in ("excellent", "good", "acceptable")
        and result.concentration.power.adequate_for_fitting
        and not critical
    )
    return QualityReport(grade, score, tuple(strengths), tuple(weaknesses), critical, ready)
