"""Fuse structural, pattern, validation and adaptive results into one confidence.

This module supports:
- pairwise agreement between independent detection methods,
- cross-validation, robustness and reliability scores,
- an overall confidence with a normal-approximation uncertainty interval, and
- rule-based, priority-ranked recommendations.

Missing evidence (no adaptive candidates, failed validation) falls back to a
neutral agreement of 0.5 instead of failing the integration.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import numpy as np

from .schema import (
    ConfidenceComponents,
    DilutionPattern,
    EstimatedImpact,
    ImplementationGuide,
    IntegrationMetrics,
    MethodAgreement,
    PatternCandidate,
    Recommendation,
    RobustConfidence,
    StructuralAnalysis,
    UncertaintyInterval,
    ValidationResult,
)
from .stats.robust import coefficient_of_variation
from .stats.uncertainty import normal_interval

logger = logging.getLogger(__name__)

NEUTRAL_AGREEMENT = 0.5

LEVEL_ROBUSTNESS_BONUS = {
    "excellent": 0.3,
    "good": 0.2,
    "acceptable": 0.1,
}

CONFIDENCE_WEIGHTS = {
    "structural": 0.30,
    "pattern": 0.25,
    "validation": 0.25,
    "consensus": 0.20,
}


def _clamp(x: float) -> float:
    return float(min(1.0, max(0.0, x)))


def _best_confidence(adaptive: Sequence[PatternCandidate]) -> float:
    return adaptive[0].confidence if adaptive else 0.0


def method_agreement(
    structural: StructuralAnalysis,
    validation: ValidationResult,
    adaptive: Sequence[PatternCandidate],
) -> MethodAgreement:
    """Pairwise agreement between structural, adaptive-pattern and validation confidences."""
    structural_vs_pattern = NEUTRAL_AGREEMENT
    pattern_vs_validation = NEUTRAL_AGREEMENT
    structural_vs_validation = NEUTRAL_AGREEMENT

    if adaptive:
        best = _best_confidence(adaptive)
        structural_vs_pattern = max(0.0, 1.0 - abs(structural.confidence - best))
        if validation.valid:
            consistency = validation.concentration.pattern_quality.consistency
            pattern_vs_validation = _clamp(1.0 - abs(best - consistency))
    if validation.valid:
        structural_vs_validation = _clamp(1.0 - abs(structural.confidence - validation.overall.confidence))

    overall = (structural_vs_pattern + pattern_vs_validation + structural_vs_validation) / 3.0
    return MethodAgreement(structural_vs_pattern, pattern_vs_validation, structural_vs_validation, overall)


def cross_validation_score(pattern: DilutionPattern, adaptive: Sequence[PatternCandidate]) -> float:
    """Consistency of the top adaptive candidates and their agreement with the dilution type."""
    score = 0.7
    if len(adaptive) > 1:
        top = [c.confidence for c in adaptive[:3]]
        cv = coefficient_of_variation(top)
        cv = cv if np.isfinite(cv) else 1.0
        score += 0.2 * (1.0 - cv)
    if adaptive and pattern.type != "unknown" and pattern.type == adaptive[0].type:
        score += 0.1
    return min(1.0, score)


def robustness_score(
    pattern: DilutionPattern,
    validation: ValidationResult,
    adaptive: Sequence[PatternCandidate],
) -> float:
    score = 0.5 + 0.3 * pattern.robustness.stability
    score += LEVEL_ROBUSTNESS_BONUS.get(validation.level, -0.1)
    if len(adaptive) >= 2 and adaptive[0].type == adaptive[1].type:
        score += 0.1
    return _clamp(score)


def reliability_score(
    consensus: float, validation: ValidationResult, adaptive: Sequence[PatternCandidate]
) -> float:
    reliability = consensus
    if validation.valid:
        reliability += (validation.overall.score - 0.5) * 0.2
    if adaptive:
        reliability += (_best_confidence(adaptive) - 0.5) * 0.1
    return _clamp(reliability)


def robust_confidence(
    structural: StructuralAnalysis,
    validation: ValidationResult,
    adaptive: Sequence[PatternCandidate],
    consensus: float,
) -> RobustConfidence:
    """Weighted overall confidence and a 95% interval over its four components."""
    components = ConfidenceComponents(
        structural=structural.confidence,
        pattern=_best_confidence(adaptive),
        validation=validation.overall.confidence,
        consensus=consensus,
    )
    overall = (
        CONFIDENCE_WEIGHTS["structural"] * components.structural
        + CONFIDENCE_WEIGHTS["pattern"] * components.pattern
        + CONFIDENCE_WEIGHTS["validation"] * components.validation
        + CONFIDENCE_WEIGHTS["consensus"] * components.consensus
    )
    interval = normal_interval(
        [components.structural, components.pattern, components.validation, components.consensus]
    )
    return RobustConfidence(
        overall=_clamp(overall),
        components=components,
        uncertainty=UncertaintyInterval(interval.lower, interval.upper, interval.width, interval.method),
    )


def generate_recommendations(
    validation: ValidationResult,
    adaptive: Sequence[PatternCandidate],
    consensus: float,
) -> Tuple[Recommendation, ...]:
    """Rule-based recommendations, highest priority first."""
    recs: List[Recommendation] = []

    if validation.level == "poor":
        recs.append(
            Recommendation(
                type="critical",
                priority=9,
                category="data-quality",
                message="Data quality is poor; review experimental design and data collection.",
                technical_details=f"Validation score {validation.overall.score:.2f} ({validation.level}).",
                estimated_impact=EstimatedImpact(0.3, 0.4, 0.35),
                guide=ImplementationGuide(
                    complexity="complex",
                    time_required="1-2 weeks",
                    resources_needed=("laboratory time", "fresh reagents"),
                    steps=(
                        "Review the concentration range against the assay type",
                        "Check replicate consistency",
                        "Repeat the experiment with an improved design",
                    ),
                ),
                scientific_justification="Poor input quality limits every downstream estimate.",
            )
        )

    best = _best_confidence(adaptive)
    if not adaptive or best < 0.5:
        recs.append(
            Recommendation(
                type="important",
                priority=7,
                category="pattern-detection",
                message="No clear dilution pattern detected; verify the concentration series.",
                technical_details=f"Best adaptive pattern confidence {best:.2f}.",
                estimated_impact=EstimatedImpact(0.25, 0.2, 0.2),
                guide=ImplementationGuide(
                    complexity="moderate",
                    time_required="1-2 hours",
                    resources_needed=("plate map", "dilution protocol"),
                    steps=(
                        "Confirm the concentration column",
                        "Check the dilution factor used at the bench",
                        "Correct transcription errors in concentrations",
                    ),
                ),
                scientific_justification="A known dilution scheme anchors concentration assignments.",
            )
        )

    if consensus < 0.6:
        recs.append(
            Recommendation(
                type="suggestion",
                priority=5,
                category="analysis-optimization",
                message="Detection methods disagree; confirm column assignments manually.",
                technical_details=f"Method consensus {consensus:.2f}.",
                estimated_impact=EstimatedImpact(0.15, 0.1, 0.2),
                guide=ImplementationGuide(
                    complexity="simple",
                    time_required="15-30 minutes",
                    resources_needed=("spreadsheet",),
                    steps=(
                        "Review the detected header row",
                        "Confirm concentration and response columns",
                    ),
                ),
                scientific_justification="Independent methods that agree give more trustworthy detections.",
            )
        )

    return tuple(sorted(recs, key=lambda r: r.priority, reverse=True))


def integrate(
    structural: StructuralAnalysis,
    pattern: DilutionPattern,
    validation: ValidationResult,
    adaptive: Sequence[PatternCandidate],
) -> Tuple[IntegrationMetrics, RobustConfidence, Tuple[Recommendation, ...]]:
    """Combine the independent analyses.

    Args:
        structural: Structural analysis of the grid.
        pattern: Dilution pattern of the concentration column.
        validation: Scientific validation result.
        adaptive: Ranked adaptive-detector candidates, possibly empty.

    Returns:
        tuple: ``(metrics, confidence, recommendations)``.

    Note:
        The consensus score is ``0.4 * agreement + 0.3 * cross-validation +
        0.3 * robustness``.
    """
    adaptive = sorted(adaptive, key=lambda c: c.confidence, reverse=True)
    agreement = method_agreement(structural, validation, adaptive)
    cross = cross_validation_score(pattern, adaptive)
    robustness = robustness_score(pattern, validation, adaptive)
    consensus = _clamp(0.4 * agreement.overall_consensus + 0.3 * cross + 0.3 * robustness)
    reliability = reliability_score(consensus, validation, adaptive)

    metrics = IntegrationMetrics(consensus, cross, robustness, reliability, agreement)
    confidence = robust_confidence(structural, validation, adaptive, consensus)
    recommendations = generate_recommendations(validation, adaptive, consensus)
    logger.info(
        "Integration: consensus %.2f, reliability %.2f, overall confidence %.2f",
        consensus,
        reliability,
        confidence.overall,
    )
    return metrics, confidence, recommendations
