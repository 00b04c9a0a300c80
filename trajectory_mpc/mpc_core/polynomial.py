"""
Reference path polynomial for the horizon optimizer.

The local-frame waypoints are approximated by y = f(x) with a low-degree
polynomial (cubic by default). Coefficients are stored lowest order
first, so c[0] is the lateral offset at the vehicle and c[1] the slope
at the vehicle.

polyeval/polyderiv use plain arithmetic (Horner), so they accept floats,
numpy arrays and CasADi symbols alike.
"""

import numpy as np
from typing import Sequence

from .errors import FitError

# Relative threshold on the R diagonal below which the fit is treated as singular
RANK_TOLERANCE = 1e-10


def polyfit(xs: Sequence[float], ys: Sequence[float], degree: int = 3) -> np.ndarray:
    """
    Least-squares polynomial fit via Householder QR.

    Builds the Vandermonde design matrix A[j, i] = xs[j]**i and solves
    R c = Q^T y, which avoids forming the normal equations.

    Args:
        xs, ys: Sample points
        degree: Polynomial degree (>= 1)

    Returns:
        Coefficient array of length degree + 1, lowest order first

    Raises:
        FitError: too few points, mismatched lengths, or a singular design
    """
    xs = np.asarray(xs, dtype=np.float64).ravel()
    ys = np.asarray(ys, dtype=np.float64).ravel()

    if degree < 1:
        raise FitError(f"Polynomial degree must be >= 1, got {degree}")
    if xs.size != ys.size:
        raise FitError(f"x/y length mismatch ({xs.size} vs {ys.size})")
    if xs.size < degree + 1:
        raise FitError(
            f"Need at least {degree + 1} points for a degree-{degree} fit, got {xs.size}")
    if not (np.all(np.isfinite(xs)) and np.all(np.isfinite(ys))):
        raise FitError("Non-finite sample points")

    A = np.ones((xs.size, degree + 1))
    for i in range(degree):
        A[:, i + 1] = A[:, i] * xs

    Q, R = np.linalg.qr(A)
    diag = np.abs(np.diag(R))
    if diag.max() == 0.0 or diag.min() < RANK_TOLERANCE * diag.max():
        raise FitError("Design matrix is rank deficient (repeated x values?)")

    coeffs = np.linalg.solve(R, Q.T @ ys)
    if not np.all(np.isfinite(coeffs)):
        raise FitError("Fit produced non-finite coefficients")
    return coeffs


def polyeval(coeffs, x):
    """Evaluate sum(c_i * x**i)."""
    result = 0.0
    for c in reversed(list(coeffs)):
        result = result * x + float(c)
    return result


def polyderiv(coeffs, x):
    """Evaluate the first derivative sum(i * c_i * x**(i-1))."""
    coeffs = list(coeffs)
    result = 0.0
    for i in range(len(coeffs) - 1, 0, -1):
        result = result * x + i * float(coeffs[i])
    return result


class PathPolynomial:
    """Fitted reference path y = f(x) in the vehicle frame."""

    def __init__(self, coeffs: Sequence[float]):
        self.coeffs = np.array(coeffs, dtype=np.float64)
        if self.coeffs.ndim != 1 or self.coeffs.size < 2:
            raise FitError("PathPolynomial needs at least 2 coefficients")

    @classmethod
    def fit(cls, xs: Sequence[float], ys: Sequence[float],
            degree: int = 3) -> 'PathPolynomial':
        return cls(polyfit(xs, ys, degree))

    @property
    def degree(self) -> int:
        return self.coeffs.size - 1

    def __call__(self, x):
        return polyeval(self.coeffs, x)

    def slope(self, x):
        return polyderiv(self.coeffs, x)

    def sample(self, xs: Sequence[float]) -> np.ndarray:
        """Evaluate at xs, returns an array (used for the display line)."""
        return np.asarray(polyeval(self.coeffs, np.asarray(xs, dtype=np.float64)))
