from __future__ import annotations

import math

import numpy as np
import pytest

from rtplot.analysis.regression import fit_polynomial, format_measurement
from rtplot.core.exceptions import DegenerateWindow, InsufficientPoints


def test_constant_fit_is_mean_with_standard_error_of_mean() -> None:
    t = np.arange(0, 50, 5)
    y = np.array([3, 5, 4, 6, 2, 4, 5, 3, 4, 4])
    result = fit_polynomial(t, y, 0)

    assert result.coefficients[0] == pytest.approx(y.mean())
    assert result.standard_errors[0] == pytest.approx(y.std(ddof=1) / math.sqrt(y.size))
    assert result.dof == y.size - 1


def test_constant_values_give_zero_errors() -> None:
    t = np.arange(20)
    y = np.full(20, 7)
    for degree in (0, 1, 2):
        result = fit_polynomial(t, y, degree)
        assert result.coefficients[0] == pytest.approx(7.0)
        np.testing.assert_allclose(result.coefficients[1:], 0.0, atol=1e-12)
        np.testing.assert_allclose(result.standard_errors, 0.0, atol=1e-12)


def test_linear_fit_recovers_slope_on_exact_line() -> None:
    t = np.arange(100, 200, 2)
    y = 5 + 3 * t
    result = fit_polynomial(t, y, 1)

    assert result.coefficients[1] == pytest.approx(3.0)
    # Intercept is reported at the mean time.
    assert result.coefficients[0] == pytest.approx(5 + 3 * t.mean())
    np.testing.assert_allclose(result.standard_errors, 0.0, atol=1e-9)


def test_three_point_line_scenario() -> None:
    result = fit_polynomial([0, 1, 2], [0, 2, 4], 1)

    assert result.t_mean == pytest.approx(1.0)
    assert result.coefficients[1] == pytest.approx(2.0)
    assert result.coefficients[0] == pytest.approx(2.0)
    assert result.rss == pytest.approx(0.0, abs=1e-24)
    np.testing.assert_allclose(result.standard_errors, 0.0, atol=1e-12)


def test_linear_fit_standard_error_matches_textbook_formula() -> None:
    rng = np.random.default_rng(7)
    t = np.arange(0, 400, 4)
    y = np.round(10 - 0.25 * t + rng.normal(0, 2.0, t.size))
    result = fit_polynomial(t, y, 1)

    slope, intercept = np.polyfit(t, y, 1)
    assert result.coefficients[1] == pytest.approx(slope)
    residuals = y - (slope * t + intercept)
    sigma2 = residuals @ residuals / (t.size - 2)
    expected_se = math.sqrt(sigma2 / np.sum((t - t.mean()) ** 2))
    assert result.standard_errors[1] == pytest.approx(expected_se)
    assert result.rss == pytest.approx(residuals @ residuals)


def test_quadratic_with_three_points_interpolates_exactly() -> None:
    result = fit_polynomial([10, 20, 40], [1, 9, 4], 2)

    assert result.dof == 0
    assert result.rss == 0.0
    np.testing.assert_array_equal(result.standard_errors, [0.0, 0.0, 0.0])
    np.testing.assert_allclose(result.evaluate(np.array([10, 20, 40])), [1, 9, 4], atol=1e-9)


def test_quadratic_fit_on_large_epoch_timestamps() -> None:
    t0 = 1_700_000_000_000_000
    t = t0 + np.arange(0, 200_000, 1000, dtype=np.int64)
    offset = (t - t0).astype(np.float64) / 1000.0
    y = np.round(50 + 0.5 * offset - 0.01 * offset**2)
    result = fit_polynomial(t, y, 2)

    # Curvature per raw unit squared.
    assert result.coefficients[2] == pytest.approx(-0.01 / 1e6, rel=1e-2)
    fitted = result.evaluate(t)
    assert np.max(np.abs(fitted - y)) < 1.0
    assert np.all(np.isfinite(result.standard_errors))


def test_insufficient_points_raise_for_every_degree() -> None:
    for degree in (0, 1, 2):
        with pytest.raises(InsufficientPoints):
            fit_polynomial(np.arange(degree), np.arange(degree), degree)


def test_identical_timestamps_are_degenerate() -> None:
    with pytest.raises(DegenerateWindow):
        fit_polynomial([5, 5, 5], [1, 2, 3], 1)
    with pytest.raises(DegenerateWindow):
        fit_polynomial([5, 5, 5, 5], [1, 2, 3, 4], 2)


def test_two_distinct_timestamps_cannot_fit_a_quadratic() -> None:
    with pytest.raises(DegenerateWindow):
        fit_polynomial([0, 0, 1, 1], [1, 2, 3, 4], 2)


def test_identical_timestamps_still_allow_a_constant_fit() -> None:
    result = fit_polynomial([5, 5, 5], [1, 2, 3], 0)
    assert result.coefficients[0] == pytest.approx(2.0)


def test_unsupported_degree_and_mismatched_inputs() -> None:
    with pytest.raises(ValueError):
        fit_polynomial([0, 1, 2, 3], [0, 1, 2, 3], 3)
    with pytest.raises(ValueError):
        fit_polynomial([0, 1, 2], [0, 1], 1)


def test_canonical_coefficients_match_numpy_polyfit() -> None:
    rng = np.random.default_rng(3)
    t = np.arange(30)
    y = 1 + 2 * t + 0.5 * t**2 + rng.normal(0, 0.5, t.size)
    result = fit_polynomial(t, y, 2)

    canonical = result.canonical()
    expected = np.polynomial.polynomial.polyfit(t, y, 2)
    np.testing.assert_allclose(canonical.coefficients, expected, rtol=1e-8, atol=1e-8)
    assert canonical.standard_errors.shape == (3,)
    assert np.all(canonical.standard_errors > 0)


def test_characteristic_parameters_of_line_and_parabola() -> None:
    t = np.arange(0, 11)
    line = fit_polynomial(t, 2 * (t - 5), 1)
    k, zero = line.characteristic_parameters()
    assert (k.name, zero.name) == ("k", "t0")
    assert k.value == pytest.approx(2.0)
    assert zero.value == pytest.approx(5.0)

    parabola = fit_polynomial(t, 3 * (t - 4) ** 2 + 7, 2)
    a, vertex, level = parabola.characteristic_parameters()
    assert a.value == pytest.approx(6.0)
    assert vertex.value == pytest.approx(4.0)
    assert level.value == pytest.approx(7.0)


def test_flat_line_has_undefined_zero_crossing() -> None:
    result = fit_polynomial([0, 1, 2, 3], [4, 4, 4, 4], 1)
    _, zero = result.characteristic_parameters()
    assert math.isnan(zero.value)
    assert "k = " in result.label()


@pytest.mark.parametrize(
    "value, error, expected",
    [
        (1.23456, 0.012, "1.235 ± 0.012"),
        (12.34, 3.2, "12.3 ± 3.2"),
        (0.000512, 0.00004, "0.00051 ± 0.00004"),
        (5.0, 0.0, "5 ± 0"),
    ],
)
def test_format_measurement_uses_error_magnitude(value: float, error: float, expected: str) -> None:
    assert format_measurement(value, error) == expected


def test_fit_result_arrays_are_read_only() -> None:
    result = fit_polynomial(np.arange(10), np.arange(10) ** 2, 2)
    with pytest.raises(ValueError):
        result.coefficients[0] = 1.0
    with pytest.raises(ValueError):
        result.standard_errors[0] = 1.0
    with pytest.raises(ValueError):
        result.covariance[0, 0] = 1.0
