import math

from dosescope.integration import (
    cross_validation_score,
    generate_recommendations,
    integrate,
    method_agreement,
    robust_confidence,
    robustness_score,
)
from dosescope.schema import (
    DilutionPattern,
    PatternCandidate,
    StructuralAnalysis,
    ValidationResult,
    ValidationScore,
)


def _validation(level, score=0.5, confidence=0.5):
    return ValidationResult(overall=ValidationScore(score, level, confidence, ()), valid=True)


class TestMissingEvidence:
    """Integration of an unreadable grid with no adaptive candidates."""

    def setup_method(self):
        self.structural = StructuralAnalysis.invalid("empty grid")
        self.pattern = DilutionPattern.empty()
        self.validation = ValidationResult.error("no concentration data")

    def test_agreement_is_neutral(self):
        agreement = method_agreement(self.structural, self.validation, [])
        assert agreement.structural_vs_pattern == 0.5
        assert agreement.pattern_vs_validation == 0.5
        assert agreement.structural_vs_validation == 0.5
        assert agreement.overall_consensus == 0.5

    def test_consensus_formula(self):
        metrics, _, _ = integrate(self.structural, self.pattern, self.validation, [])
        assert math.isclose(metrics.cross_validation_score, 0.7)
        assert math.isclose(metrics.robustness_score, 0.4)
        assert math.isclose(metrics.consensus_score, 0.4 * 0.5 + 0.3 * 0.7 + 0.3 * 0.4)
        assert math.isclose(metrics.reliability_score, metrics.consensus_score)

    def test_recommendations(self):
        _, _, recs = integrate(self.structural, self.pattern, self.validation, [])
        assert [r.priority for r in recs] == [7, 5]
        assert [r.type for r in recs] == ["important", "suggestion"]

    def test_confidence_interval_uses_positive_components_only(self):
        _, confidence, _ = integrate(self.structural, self.pattern, self.validation, [])
        consensus = 0.53
        assert math.isclose(confidence.overall, 0.2 * consensus)
        assert math.isclose(confidence.uncertainty.lower, consensus)
        assert math.isclose(confidence.uncertainty.upper, consensus)
        assert confidence.uncertainty.method == "normal-approximation"


def test_poor_validation_adds_critical_recommendation():
    recs = generate_recommendations(_validation("poor"), [], 0.7)
    assert [r.priority for r in recs] == [9, 7]
    assert recs[0].type == "critical"


def test_unacceptable_validation_has_no_critical_recommendation():
    recs = generate_recommendations(_validation("unacceptable", score=0.2), [], 0.7)
    assert all(r.type != "critical" for r in recs)


def test_confident_consistent_result_has_no_recommendations():
    adaptive = [PatternCandidate("serial", 0.9, {"factor": 3.0})]
    assert generate_recommendations(_validation("good", 0.8), adaptive, 0.8) == ()


def test_cross_validation_rewards_agreeing_candidates():
    adaptive = [PatternCandidate("serial", 0.9), PatternCandidate("serial", 0.9)]
    pattern = DilutionPattern(type="serial")
    assert math.isclose(cross_validation_score(pattern, adaptive), 1.0)
    assert math.isclose(cross_validation_score(DilutionPattern(type="log-scale"), adaptive), 0.9)


def test_robustness_bonus_by_level():
    pattern = DilutionPattern.empty()
    assert math.isclose(robustness_score(pattern, _validation("excellent"), []), 0.8)
    assert math.isclose(robustness_score(pattern, _validation("poor"), []), 0.4)
    adaptive = [PatternCandidate("serial", 0.9), PatternCandidate("serial", 0.8)]
    assert math.isclose(robustness_score(pattern, _validation("good"), adaptive), 0.8)


def test_robust_confidence_interval_brackets_mean():
    structural = StructuralAnalysis.invalid("x")
    adaptive = [PatternCandidate("serial", 0.9)]
    result = robust_confidence(structural, _validation("good", 0.8, 0.6), adaptive, 0.7)
    assert math.isclose(result.components.pattern, 0.9)
    assert math.isclose(result.overall, 0.25 * 0.9 + 0.25 * 0.6 + 0.2 * 0.7)
    assert 0.0 <= result.uncertainty.lower <= 0.7 <= result.uncertainty.upper <= 1.0
    assert math.isclose(result.uncertainty.width, result.uncertainty.upper - result.uncertainty.lower)


def test_adaptive_order_is_normalized():
    structural = StructuralAnalysis.invalid("x")
    adaptive = [PatternCandidate("custom", 0.3), PatternCandidate("serial", 0.9)]
    _, confidence, _ = integrate(structural, DilutionPattern.empty(), _validation("good"), adaptive)
    assert math.isclose(confidence.components.pattern, 0.9)
