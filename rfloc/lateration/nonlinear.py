"""
Nonlinear lateration refined with Levenberg-Marquardt.

Minimizes Σ wᵢ (dᵢ - ‖x - pᵢ‖)² with wᵢ = 1/σᵢ². The position covariance is
(J'WJ)⁻¹ evaluated at the solution, where Jᵢ = (x - pᵢ)' / ‖x - pᵢ‖.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from rfloc.errors import EstimationFailedError, InvalidConfigurationError
from rfloc.estimators.nonlinear_least_squares import levenberg_marquardt

# Ranges below this are treated as this value to keep the Jacobian finite
EPSILON = 1e-7


@dataclass
class LaterationResult:
    """Result of a nonlinear lateration.

    Attributes:
        position: Estimated position (N,).
        covariance: Position covariance (N × N), or None.
        residuals: Range residuals dᵢ - ‖x̂ - pᵢ‖ (M,).
        iterations: Solver iterations.
        converged: Whether the solver converged.
    """

    position: np.ndarray
    covariance: Optional[np.ndarray]
    residuals: np.ndarray
    iterations: int
    converged: bool


def range_residuals(position: np.ndarray, positions: np.ndarray, distances: np.ndarray) -> np.ndarray:
    """Absolute range residuals |‖x - pᵢ‖ - dᵢ| of a candidate position."""
    return np.abs(np.linalg.norm(positions - position, axis=1) - distances)


def nonlinear_lateration(
    positions,
    distances,
    distance_stds=None,
    initial_position=None,
    return_covariance: bool = True,
    max_iter: int = 100,
) -> LaterationResult:
    """
    Refine a position from ranges with Levenberg-Marquardt.

    Args:
        positions: Known points, shape (M, N).
        distances: Measured distances, shape (M,).
        distance_stds: Distance standard deviations (M,). If None, all ranges
            are equally weighted and the covariance is scaled by the residual
            variance.
        initial_position: Start point (N,). Defaults to the centroid of the
            points.
        return_covariance: If True, compute the position covariance.
        max_iter: Maximum solver iterations.

    Returns:
        LaterationResult.

    Raises:
        InvalidConfigurationError: If shapes are inconsistent or fewer than
            N + 1 points are given.
        EstimationFailedError: If the normal matrix is singular at the
            solution or the solver diverges.
    """
    positions = np.asarray(positions, dtype=float)
    distances = np.asarray(distances, dtype=float)
    if positions.ndim != 2 or distances.shape != (positions.shape[0],):
        raise InvalidConfigurationError(
            f"Inconsistent shapes: positions {positions.shape}, distances {distances.shape}"
        )
    M, N = positions.shape
    if M < N + 1:
        raise InvalidConfigurationError(f"At least {N + 1} points are required, got {M}")

    weights = None
    if distance_stds is not None:
        stds = np.asarray(distance_stds, dtype=float)
        if stds.shape != (M,) or np.any(stds <= 0):
            raise InvalidConfigurationError("distance_stds must be positive with shape (M,)")
        weights = 1.0 / stds**2

    x0 = positions.mean(axis=0) if initial_position is None else np.asarray(initial_position, dtype=float)
    if x0.shape != (N,):
        raise InvalidConfigurationError(f"initial_position must have shape ({N},), got {x0.shape}")

    def h(x):
        return np.maximum(np.linalg.norm(positions - x, axis=1), EPSILON)

    def jacobian(x):
        diff = x - positions
        return diff / h(x)[:, np.newaxis]

    try:
        result = levenberg_marquardt(
            h,
            jacobian,
            distances,
            x0,
            weights=weights,
            max_iter=max_iter,
            return_covariance=return_covariance,
            absolute_sigma=weights is not None,
        )
    except (ValueError, np.linalg.LinAlgError) as e:
        raise EstimationFailedError(f"Nonlinear lateration failed: {e}") from e

    if not np.all(np.isfinite(result.x)):
        raise EstimationFailedError("Nonlinear lateration diverged")

    return LaterationResult(
        position=result.x,
        covariance=result.covariance,
        residuals=result.residuals,
        iterations=result.iterations,
        converged=result.converged,
    )
