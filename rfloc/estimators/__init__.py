"""
Least squares estimators.

Submodules:
    least_squares: Ordinary, weighted and homogeneous linear least squares
    nonlinear_least_squares: Levenberg-Marquardt
"""

from rfloc.estimators.least_squares import (
    homogeneous_least_squares,
    linear_least_squares,
    weighted_least_squares,
)
from rfloc.estimators.nonlinear_least_squares import (
    NonlinearLSResult,
    levenberg_marquardt,
)

__all__ = [
    "linear_least_squares",
    "weighted_least_squares",
    "homogeneous_least_squares",
    "NonlinearLSResult",
    "levenberg_marquardt",
]
