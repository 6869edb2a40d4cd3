import asyncio
import math

import numpy as np

from dosescope.adaptive import RatioPatternDetector, confidence_multiplier

THREE_FOLD = [729.0, 243.0, 81.0, 27.0, 9.0, 3.0]


def test_too_few_values_give_no_candidates():
    detector = RatioPatternDetector()
    assert detector.screen([]) == []
    assert detector.screen([100.0, 10.0]) == []
    assert detector.screen([100.0, -1.0, math.nan, 10.0]) == []


def test_exact_three_fold_series_ranks_serial_first():
    candidates = RatioPatternDetector().screen(THREE_FOLD)
    top = candidates[0]
    assert top.type == "serial"
    assert top.parameters["factor"] == 3.0
    assert math.isclose(top.confidence, 1.0)


def test_candidates_are_ranked_and_capped():
    candidates = RatioPatternDetector().screen([1000.0, 100.0, 10.0, 1.0, 0.1])
    confidences = [c.confidence for c in candidates]
    assert confidences == sorted(confidences, reverse=True)
    assert all(0.15 < c <= 1.0 for c in confidences)
    assert candidates[0].type == "log-scale"


def test_input_order_does_not_matter():
    detector = RatioPatternDetector()
    shuffled = [27.0, 729.0, 3.0, 81.0, 9.0, 243.0]
    assert detector.screen(shuffled) == detector.screen(THREE_FOLD)


def test_constant_ratios_get_symmetry_bonus():
    assert math.isclose(confidence_multiplier(np.array([3.0, 3.0, 3.0, 3.0])), 1.1)


def test_alternating_ratios_are_penalized():
    """Strong lag-1 autocorrelation costs ten percent."""
    ratios = np.array([2.0, 5.0, 2.0, 5.0, 2.0, 5.0])
    assert math.isclose(confidence_multiplier(ratios), 1.1 * 0.9)


def test_async_detect_matches_screen():
    detector = RatioPatternDetector()
    candidates = asyncio.run(detector.detect(THREE_FOLD))
    assert candidates == detector.screen(THREE_FOLD)
