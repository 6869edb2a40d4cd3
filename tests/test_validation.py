import math

import numpy as np
import pytest

from dosescope.schema import ValidationOptions, VALIDATION_LEVELS
from dosescope.validation import level_of, quality_report, validate
from dosescope.validation.concentration import assess_range, infer_assay_type, validate_pattern
from dosescope.validation.dose_response import check_monotonicity
from dosescope.validation.response import (
    characterize_signal,
    classify_missing_data,
    group_responses,
    validate_responses,
)

NARROW_CONC = [1000, 900, 800, 700, 600]
NARROW_RESP = [[46.0], [47.0], [49.0], [50.0], [52.0]]

GOOD_CONC = [2187, 729, 243, 81, 27, 9, 3, 1]
GOOD_MEANS = [3.0, 6.0, 18.0, 45.0, 75.0, 92.0, 98.0, 100.0]
GOOD_RESP = [[m - 1.0, m, m + 1.0] for m in GOOD_MEANS]


def test_level_of_is_monotonic():
    scores = np.linspace(0.0, 1.0, 101)
    ranks = [VALIDATION_LEVELS.index(level_of(s)) for s in scores]
    assert ranks == sorted(ranks, reverse=True)
    assert level_of(0.9) == "excellent"
    assert level_of(0.75) == "good"
    assert level_of(0.6) == "acceptable"
    assert level_of(0.4) == "poor"
    assert level_of(0.39) == "unacceptable"


class TestNarrowRange:
    def test_range_is_too_narrow(self):
        result = validate(NARROW_CONC, NARROW_RESP)
        assert result.valid
        assert result.concentration.range.category == "too-narrow"
        assert not result.concentration.range.is_appropriate

    def test_level_is_at_most_poor(self):
        result = validate(NARROW_CONC, NARROW_RESP)
        assert VALIDATION_LEVELS.index(result.level) >= VALIDATION_LEVELS.index("poor")

    def test_recommendations(self):
        result = validate(NARROW_CONC, NARROW_RESP)
        categories = {r.category for r in result.recommendations}
        assert "concentration-range" in categories
        assert "statistical-power" in categories
        assert "dynamic-range" in categories


class TestWellDesignedExperiment:
    def test_scores(self):
        result = validate(GOOD_CONC, GOOD_RESP)
        assert result.valid
        assert result.concentration.range.category == "appropriate"
        assert result.concentration.power.adequate_for_fitting
        assert result.concentration.pattern_quality.type == "serial"
        assert result.response.replicates.replicate_count == 3
        assert result.response.outliers.count == 0
        assert result.dose_response.monotonicity.is_monotonic
        assert result.dose_response.monotonicity.direction == "decreasing"
        assert result.level == "excellent"
        assert result.recommendations == ()

    def test_quality_report(self):
        report = quality_report(validate(GOOD_CONC, GOOD_RESP))
        assert report.grade == "A"
        assert report.ready_for_fitting
        assert report.critical_issues == ()
        assert report.strengths

    def test_better_design_scores_higher(self):
        good = validate(GOOD_CONC, GOOD_RESP)
        narrow = validate(NARROW_CONC, NARROW_RESP)
        assert good.overall.score > narrow.overall.score

    def test_header_unit_rescales_bare_numbers(self):
        result = validate(GOOD_CONC, GOOD_RESP, unit="μM")
        assert math.isclose(result.concentration.range.max, 2187e3)

    def test_unreadable_response_cell_counts_as_missing(self):
        responses = [list(row) for row in GOOD_RESP]
        responses[2][1] = "n/a"
        result = validate(GOOD_CONC, responses)
        assert result.valid
        assert math.isclose(result.response.completeness, 23 / 24)


@pytest.mark.parametrize(
    "concentrations, responses, fragment",
    [
        ([], [], "no concentration data"),
        ([1, 2, 3], [[1.0], [2.0]], "mismatched lengths"),
        ([1, 2, 3], [[1.0], [2.0, 3.0], [4.0]], "different widths"),
        ([1, 2, 3], [[], [], []], "no response columns"),
        ([10, 10, 1], [[1.0], [2.0], [3.0]], "fewer than 3 usable concentrations"),
        (["a", "b", "c"], [[1.0], [2.0], [3.0]], "fewer than 3 usable concentrations"),
    ],
)
def test_bad_input_gives_error_result(concentrations, responses, fragment):
    result = validate(concentrations, responses)
    assert not result.valid
    assert result.level == "unacceptable"
    assert result.overall.score == 0.0
    assert len(result.recommendations) == 1
    assert result.recommendations[0].type == "critical"
    assert result.recommendations[0].message == "Validation failed due to data errors"
    assert fragment in result.diagnostics[0]


def test_error_quality_report():
    report = quality_report(validate([], []))
    assert report.grade == "F"
    assert report.critical_issues == ("Validation failed due to data errors",)
    assert not report.ready_for_fitting


class TestConcentrationChecks:
    def test_range_categories(self):
        assert assess_range([0.01, 1e5], None).category == "too-wide"
        assert assess_range([0.01, 1e5], None).is_appropriate
        assert not assess_range([1e-3, 1e9], None).is_appropriate
        assert assess_range([1e9, 1e12], None).category == "unrealistic"
        assert assess_range([1.0, 1e4], "binding").category == "appropriate"

    def test_range_coverage(self):
        # binding window is 0.1 - 1e5 nM, six decades
        assessment = assess_range([1.0, 1e4], "binding")
        assert math.isclose(assessment.coverage, 4 / 6)

    def test_assay_hint_adds_evidence(self):
        assay, confidence, scores = infer_assay_type([1e3, 1e4, 1e5, 1e6], "cytotoxicity")
        assert assay == "cytotoxicity"
        assert math.isclose(confidence, 0.9)
        assert scores["binding"] == 0.0

    def test_pattern_uses_distinct_values(self):
        pattern = validate_pattern([100, 100, 10, 10, 1, 1])
        assert pattern.type == "log-scale"
        assert math.isclose(pattern.mean_ratio, 10.0)
        assert math.isclose(pattern.consistency, 1.0)

    def test_options_hint_reaches_validator(self):
        result = validate(GOOD_CONC, GOOD_RESP, options=ValidationOptions(assay_type="functional"))
        assert result.concentration.biological_relevance.assay_type == "functional"


class TestResponseChecks:
    def test_missing_rows_are_systematic(self):
        matrix = np.array([[1.0, 2.0], [np.nan, np.nan], [3.0, 4.0]])
        missing = classify_missing_data([1, 2, 3], matrix)
        assert missing.type == "systematic"
        assert math.isclose(missing.severity, 2 / 6)

    def test_missing_cells_in_one_column(self):
        matrix = np.array([[1.0, np.nan], [2.0, np.nan], [3.0, 4.0], [5.0, 6.0]])
        assert classify_missing_data([1, 2, 3, 4], matrix).type == "replicate-dependent"

    def test_complete_matrix(self):
        matrix = np.ones((3, 2))
        assert classify_missing_data([1, 2, 3], matrix).type == "none"

    def test_dynamic_range_is_infinite_from_zero_baseline(self):
        groups = group_responses([1.0, 10.0], np.array([[0.0], [10.0]]))
        signal = characterize_signal(groups)
        assert math.isinf(signal.dynamic_range)
        assert signal.category == "excellent"

    def test_replicate_rows_are_pooled(self):
        """Long layout: one row per replicate."""
        conc = [1, 1, 10, 10, 100, 100]
        resp = [[10.0], [12.0], [50.0], [52.0], [90.0], [88.0]]
        validation = validate_responses(conc, resp)
        assert validation.replicates.replicate_count == 2
        assert validation.completeness == 1.0


class TestMonotonicity:
    def test_violation_is_reported(self):
        check = check_monotonicity(np.array([1.0, 2.0, 1.5, 3.0]), 1.0)
        assert not check.is_monotonic
        assert len(check.violations) == 1
        violation = check.violations[0]
        assert violation.index == 2
        assert violation.expected == "up"
        assert violation.actual == "down"
        assert math.isclose(violation.magnitude, 0.5)
        assert math.isclose(check.strength, 2 / 3)

    def test_noise_tolerance(self):
        check = check_monotonicity(np.array([1.0, 2.0, 1.5, 3.0]), 1.0, tolerance=0.6)
        assert check.is_monotonic
