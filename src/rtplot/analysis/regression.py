"""
Least-squares polynomial fits (degree 0, 1 or 2) with standard errors.

Raw timestamps are large integers with little relative variation inside a
fitting window, so the design matrix is always built in a centered time
variable::

    u = (t - t_mean) / s

with ``s = 1`` for degrees 0 and 1 and ``s`` the sample standard deviation of
``t - t_mean`` for degree 2. Degrees 0 and 1 use exact closed forms (the
centered columns are orthogonal); degree 2 is solved through a QR
factorization so the condition number is never squared.

Coefficients are reported in the centered basis::

    y = c0 + c1 * (t - t_mean) + c2 * (t - t_mean) ** 2

which is the numerically meaningful parametrization and the one the display
layer expects. :meth:`FitResult.canonical` converts to raw-``t`` coefficients
on request.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
from numpy.typing import ArrayLike
from scipy.linalg import solve_triangular

from ..core.exceptions import DegenerateWindow, InsufficientPoints

logger = logging.getLogger(__name__)

SUPPORTED_DEGREES = (0, 1, 2)


@dataclass(frozen=True)
class Measurement:
    """A named value with its one-sigma error."""

    name: str
    value: float
    error: float

    def __str__(self) -> str:
        return f"{self.name} = {format_measurement(self.value, self.error)}"


@dataclass(frozen=True)
class CanonicalFit:
    """Coefficients of ``y = b0 + b1 * t + b2 * t ** 2`` on the raw time axis."""

    coefficients: np.ndarray
    standard_errors: np.ndarray


@dataclass(frozen=True)
class FitResult:
    """
    Outcome of one polynomial fit.

    ``coefficients[k]`` multiplies ``(t - t_mean) ** k``. ``covariance`` is
    the coefficient covariance in that same basis. ``t_ref`` is the integer
    reference timestamp (the first point of the window) and ``t_offset`` the
    mean offset from it, so ``t_mean == t_ref + t_offset`` without rounding a
    large epoch into a float before subtracting.
    """

    degree: int
    coefficients: np.ndarray
    standard_errors: np.ndarray
    covariance: np.ndarray = field(repr=False)
    t_ref: int
    t_offset: float
    scale: float
    n_points: int
    rss: float
    dof: int
    t_first: int
    t_last: int

    def __post_init__(self) -> None:
        for name in ("coefficients", "standard_errors", "covariance"):
            arr = np.array(getattr(self, name), dtype=np.float64)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def t_mean(self) -> float:
        """Centering constant: the mean timestamp of the window."""
        return float(self.t_ref) + self.t_offset

    @property
    def residual_variance(self) -> float:
        return 0.0 if self.dof <= 0 else self.rss / self.dof

    def centered(self, t: ArrayLike) -> np.ndarray:
        """Return ``t - t_mean`` computed relative to the integer reference."""
        arr = np.asarray(t)
        if np.issubdtype(arr.dtype, np.integer):
            return (arr.astype(np.int64) - self.t_ref).astype(np.float64) - self.t_offset
        return (arr.astype(np.float64) - float(self.t_ref)) - self.t_offset

    def evaluate(self, t: ArrayLike) -> np.ndarray:
        """Evaluate the fitted polynomial at raw timestamps ``t``."""
        return np.polynomial.polynomial.polyval(self.centered(t), self.coefficients)

    def canonical(self) -> CanonicalFit:
        """
        Re-express the fit on the raw time axis.

        The transform is exact algebra but the raw coefficients are
        ill-conditioned for large ``t_mean``; they are provided for
        presentation only.
        """
        transform = _shift_matrix(self.degree, self.t_mean)
        coefficients = transform @ self.coefficients
        covariance = transform @ self.covariance @ transform.T
        errors = np.sqrt(np.clip(np.diag(covariance), 0.0, None))
        return CanonicalFit(coefficients=coefficients, standard_errors=errors)

    def characteristic_parameters(self) -> List[Measurement]:
        """
        Return physically named parameters with delta-method errors.

        - degree 0: ``y`` (the level)
        - degree 1: ``k`` (slope) and ``t0`` (zero crossing)
        - degree 2: ``a`` (second derivative), ``t0`` (vertex time) and
          ``y0`` (vertex value)

        Parameters that are undefined (zero slope or curvature) come back
        as NaN.
        """
        c = self.coefficients
        cov = self.covariance
        m = self.t_mean

        if self.degree == 0:
            return [Measurement("y", float(c[0]), float(self.standard_errors[0]))]

        if self.degree == 1:
            c0, c1 = float(c[0]), float(c[1])
            slope = Measurement("k", c1, float(self.standard_errors[1]))
            if c1 == 0.0:
                return [slope, Measurement("t0", math.nan, math.nan)]
            grad = np.array([-1.0 / c1, c0 / (c1 * c1)])
            return [
                slope,
                Measurement("t0", m - c0 / c1, _propagate(grad, cov)),
            ]

        c0, c1, c2 = float(c[0]), float(c[1]), float(c[2])
        accel = Measurement("a", 2.0 * c2, 2.0 * float(self.standard_errors[2]))
        if c2 == 0.0:
            return [
                accel,
                Measurement("t0", math.nan, math.nan),
                Measurement("y0", math.nan, math.nan),
            ]
        vertex_grad = np.array([0.0, -1.0 / (2.0 * c2), c1 / (2.0 * c2 * c2)])
        value_grad = np.array([1.0, -c1 / (2.0 * c2), c1 * c1 / (4.0 * c2 * c2)])
        return [
            accel,
            Measurement("t0", m - c1 / (2.0 * c2), _propagate(vertex_grad, cov)),
            Measurement("y0", c0 - c1 * c1 / (4.0 * c2), _propagate(value_grad, cov)),
        ]

    def label(self) -> str:
        """One-line summary used by the scope overlay."""
        return "   ".join(str(p) for p in self.characteristic_parameters())


# --------------------------------------------------------------------------- engine
def fit_polynomial(times: ArrayLike, values: ArrayLike, degree: int) -> FitResult:
    """
    Fit ``values`` against ``times`` with a polynomial of ``degree`` 0, 1 or 2.

    Parameters
    ----------
    times:
        1-D integer (or float) timestamps, any order.
    values:
        1-D samples, same length as ``times``.
    degree:
        0 (constant), 1 (line) or 2 (parabola).

    Raises
    ------
    InsufficientPoints
        Fewer than ``degree + 1`` points.
    DegenerateWindow
        The timestamps cannot determine the requested degree (for example
        all identical).
    ValueError
        Unsupported degree or mismatched inputs.
    """
    if degree not in SUPPORTED_DEGREES:
        raise ValueError(f"degree must be one of {SUPPORTED_DEGREES}, got {degree}")

    t = np.asarray(times).reshape(-1)
    y = np.asarray(values, dtype=np.float64).reshape(-1)
    if t.size != y.size:
        raise ValueError(f"times and values must have the same length, got {t.size} vs {y.size}")

    n = int(t.size)
    if n < degree + 1:
        raise InsufficientPoints(n, degree)
    if not np.isfinite(y).all():
        raise ValueError("values contain non-finite entries")

    t_ref, offsets = _offsets(t)
    t_offset = float(offsets.mean())
    u = offsets - t_offset
    y_mean = float(y.mean())
    yc = y - y_mean

    if degree == 0:
        coefficients, unit_cov, residuals = _solve_constant(yc, n)
        scale = 1.0
    elif degree == 1:
        coefficients, unit_cov, residuals = _solve_linear(u, yc, n)
        scale = 1.0
    else:
        scale = float(np.std(u, ddof=1))
        if scale == 0.0:
            raise DegenerateWindow("all timestamps in the window are identical")
        coefficients, unit_cov, residuals = _solve_quadratic(u / scale, yc)
        # Undo the u scaling: c_k = gamma_k / s**k.
        unscale = np.array([1.0, 1.0 / scale, 1.0 / (scale * scale)])
        coefficients = coefficients * unscale
        unit_cov = unit_cov * np.outer(unscale, unscale)

    coefficients = np.array(coefficients, dtype=np.float64)
    coefficients[0] += y_mean

    dof = n - (degree + 1)
    if dof == 0:
        # Exact interpolation: the residual is zero by construction.
        rss = 0.0
        covariance = np.zeros((degree + 1, degree + 1))
    else:
        rss = float(residuals @ residuals)
        covariance = unit_cov * (rss / dof)
    errors = np.sqrt(np.clip(np.diag(covariance), 0.0, None))

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "fit degree=%d n=%d t_mean=%.6g scale=%.6g rss=%.6g",
            degree,
            n,
            float(t_ref) + t_offset,
            scale,
            rss,
        )

    return FitResult(
        degree=degree,
        coefficients=coefficients,
        standard_errors=errors,
        covariance=covariance,
        t_ref=t_ref,
        t_offset=t_offset,
        scale=scale,
        n_points=n,
        rss=rss,
        dof=dof,
        t_first=int(np.min(t)),
        t_last=int(np.max(t)),
    )


def _offsets(t: np.ndarray) -> Tuple[int, np.ndarray]:
    """Return an integer reference and ``t - ref`` as float64."""
    if np.issubdtype(t.dtype, np.integer):
        ref = int(t[0])
        return ref, (t.astype(np.int64) - ref).astype(np.float64)
    tf = t.astype(np.float64)
    if not np.isfinite(tf).all():
        raise ValueError("times contain non-finite entries")
    ref = int(math.floor(tf[0]))
    return ref, tf - float(ref)


def _solve_constant(yc: np.ndarray, n: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    coefficients = np.array([0.0])
    unit_cov = np.array([[1.0 / n]])
    return coefficients, unit_cov, yc


def _solve_linear(u: np.ndarray, yc: np.ndarray, n: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    suu = float(u @ u)
    if suu == 0.0:
        raise DegenerateWindow("all timestamps in the window are identical")
    slope = float(u @ yc) / suu
    residuals = yc - slope * u
    unit_cov = np.diag([1.0 / n, 1.0 / suu])
    return np.array([0.0, slope]), unit_cov, residuals


def _solve_quadratic(v: np.ndarray, yc: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    design = np.column_stack((np.ones_like(v), v, v * v))
    q, r = np.linalg.qr(design)

    diag = np.abs(np.diag(r))
    tolerance = diag.max() * np.sqrt(np.finfo(np.float64).eps)
    if diag.min() <= tolerance:
        raise DegenerateWindow("timestamps do not determine a quadratic (too few distinct times)")

    gamma = solve_triangular(r, q.T @ yc, lower=False)
    residuals = yc - design @ gamma
    # (A^T A)^-1 = R^-1 R^-T, with R^-1 from back-substitution.
    r_inv = solve_triangular(r, np.eye(r.shape[0]), lower=False)
    unit_cov = r_inv @ r_inv.T
    return gamma, unit_cov, residuals


def _shift_matrix(degree: int, shift: float) -> np.ndarray:
    """Matrix ``M`` with ``b = M @ c`` for ``sum c_k (t - shift)**k == sum b_j t**j``."""
    size = degree + 1
    matrix = np.zeros((size, size))
    for k in range(size):
        for j in range(k + 1):
            matrix[j, k] = math.comb(k, j) * (-shift) ** (k - j)
    return matrix


def _propagate(gradient: np.ndarray, covariance: np.ndarray) -> float:
    variance = float(gradient @ covariance @ gradient)
    return math.sqrt(max(variance, 0.0))


# --------------------------------------------------------------------------- display
def format_measurement(value: float, error: float) -> str:
    """
    Format ``value ± error`` with the number of decimals set by the error.

    Errors of order 10^-k get ``k + 1`` decimals; errors of order one or
    larger get a single decimal. Zero or non-finite errors fall back to
    a general format.
    """
    if not math.isfinite(value) or not math.isfinite(error) or error <= 0.0:
        return f"{value:g} ± {error:g}"
    magnitude = int(round(math.log10(error)))
    decimals = -magnitude + 1 if magnitude < 0 else 1
    return f"{value:.{decimals}f} ± {error:.{decimals}f}"
