import math

import numpy as np
import pytest

from dosescope.stats import (
    MAD_SCALE,
    coefficient_of_variation,
    detect_outliers,
    median,
    normal_interval,
    robust_cv,
    robust_std,
    robust_z_scores,
)


def test_median_ignores_non_finite_values():
    assert math.isclose(median([1.0, 2.0, 3.0, float("nan")]), 2.0)
    assert math.isnan(median([]))


def test_robust_std_is_scaled_mad():
    # median 3, absolute deviations [2, 1, 0, 1, 97] -> MAD 1
    assert math.isclose(robust_std([1, 2, 3, 4, 100]), MAD_SCALE)


def test_single_gross_outlier_is_flagged_severe():
    values = [1.0, 1.1, 0.9, 1.0, 1.05, 10.0]
    out = detect_outliers(values)
    assert out.indices == (5,)
    assert out.values == (10.0,)
    assert out.severity == ("severe",)
    assert math.isclose(out.confidence, 5 / 6)


def test_outlier_count_never_exceeds_sample_size():
    rng = np.random.default_rng(3)
    for _ in range(20):
        values = rng.lognormal(size=int(rng.integers(3, 30)))
        out = detect_outliers(values)
        assert out.count <= len(values)
        assert 0.0 <= out.confidence <= 1.0
        assert len(out.severity) == out.count


def test_small_samples_are_not_screened():
    out = detect_outliers([1.0, 100.0])
    assert out.count == 0
    assert out.confidence == 0.0


def test_constant_series_has_no_outliers():
    out = detect_outliers([3.0, 3.0, 3.0, 3.0])
    assert out.count == 0
    assert out.confidence == 1.0


def test_exact_series_with_float_noise_is_not_flagged():
    # 1 / 0.1 is not exactly 10 in binary floating point
    ratios = [1000 / 100, 100 / 10, 10 / 1, 1 / 0.1]
    assert detect_outliers(ratios).count == 0


def test_zero_scale_departure_is_infinite():
    z = robust_z_scores([3.0, 3.0, 3.0, 9.0])
    assert np.isinf(z[3])
    assert detect_outliers([3.0, 3.0, 3.0, 9.0]).severity == ("severe",)


def test_coefficients_of_variation():
    assert math.isclose(coefficient_of_variation([2.0, 4.0]), 1 / 3)
    assert math.isnan(coefficient_of_variation([]))
    assert math.isnan(coefficient_of_variation([-1.0, 1.0]))
    assert math.isnan(robust_cv([]))
    assert math.isclose(robust_cv([10.0, 10.0, 10.0]), 0.0)


class TestNormalInterval:
    def test_interval_values(self):
        """Population std over four samples."""
        ci = normal_interval([0.2, 0.4, 0.6, 0.8])
        half = 1.96 * math.sqrt(0.05) / 2
        assert math.isclose(ci.mean, 0.5)
        assert math.isclose(ci.lower, 0.5 - half)
        assert math.isclose(ci.upper, 0.5 + half)
        assert ci.method == "normal-approximation"

    def test_non_positive_samples_are_dropped(self):
        ci = normal_interval([0.0, -1.0])
        assert ci.method == "no-data"
        assert ci.width == 0.0

    def test_interval_is_clamped(self):
        ci = normal_interval([0.01, 1.0])
        assert ci.lower == 0.0
        assert ci.upper == 1.0
        assert math.isclose(ci.width, 1.0)


@pytest.mark.parametrize(
    "z, severity",
    [(1.9, None), (2.2, "mild"), (3.0, "moderate"), (4.0, "severe")],
)
def test_outlier_severity_tiers(z, severity):
    # median 0 and MAD 0.5 for any last value above 1
    last = z * MAD_SCALE * 0.5
    values = [-1.0, -0.5, 0.0, 0.0, 0.5, 1.0, last]
    assert math.isclose(robust_z_scores(values)[-1], z)
    out = detect_outliers(values)
    if severity is None:
        assert out.count == 0
    else:
        assert out.indices == (6,)
        assert out.severity == (severity,)
