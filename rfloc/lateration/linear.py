"""
Closed-form linear lateration.

Solves ‖x - pᵢ‖ = dᵢ, i = 1..M, for x ∈ R^N (N = 2 or 3) with two
linearizations of the squared range equations

    ‖x‖² - 2 pᵢ'x + ‖pᵢ‖² = dᵢ²

Inhomogeneous form:
    Subtracting the first equation from the others removes ‖x‖²:
        2 (pᵢ - p₀)' x = ‖pᵢ‖² - ‖p₀‖² - dᵢ² + d₀²,   i = 1..M-1
    and the resulting (M-1) × N system is solved by least squares. When
    distance standard deviations σᵢ are known, row i is weighted by the
    first-order deviation of its right-hand side, 2 sqrt(dᵢ²σᵢ² + d₀²σ₀²).

Homogeneous form:
    With the homogeneous unknown v = w·[x, 1, ‖x‖²] every equation becomes
        [-2 pᵢ', ‖pᵢ‖² - dᵢ², 1] v = 0
    and v is the right singular vector of the smallest singular value,
    de-homogenized as x = v[:N] / v[N].

Both forms need at least N + 1 points. Points are centred on their centroid
before solving to keep the system well conditioned.
"""

from typing import Tuple

import numpy as np

from rfloc.errors import EstimationFailedError, InvalidConfigurationError
from rfloc.estimators.least_squares import (
    homogeneous_least_squares,
    linear_least_squares,
    weighted_least_squares,
)

# Lower bound on row deviations so zero-range rows keep a finite weight
MIN_ROW_STD = 1e-12


def min_required_points(dimensions: int) -> int:
    """Minimum number of points for a unique lateration solution (N + 1)."""
    return dimensions + 1


def _prepare(positions, distances) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    positions = np.asarray(positions, dtype=float)
    distances = np.asarray(distances, dtype=float)

    if positions.ndim != 2 or positions.shape[1] not in (2, 3):
        raise InvalidConfigurationError(
            f"positions must have shape (M, 2) or (M, 3), got {positions.shape}"
        )
    if distances.shape != (positions.shape[0],):
        raise InvalidConfigurationError(
            f"distances must have shape ({positions.shape[0]},), got {distances.shape}"
        )
    needed = min_required_points(positions.shape[1])
    if positions.shape[0] < needed:
        raise InvalidConfigurationError(
            f"At least {needed} points are required, got {positions.shape[0]}"
        )

    centroid = positions.mean(axis=0)
    return positions - centroid, distances, centroid


def _check_stds(distance_stds, m: int) -> np.ndarray:
    stds = np.asarray(distance_stds, dtype=float)
    if stds.shape != (m,):
        raise InvalidConfigurationError(f"distance_stds must have shape ({m},), got {stds.shape}")
    if np.any(stds <= 0):
        raise InvalidConfigurationError("distance_stds must be positive")
    return stds


def solve_inhomogeneous_lateration(positions, distances, distance_stds=None) -> np.ndarray:
    """
    Lateration by differencing against the first equation.

    Args:
        positions: Known points, shape (M, N), M ≥ N + 1.
        distances: Distances to each point, shape (M,).
        distance_stds: Optional distance standard deviations, shape (M,).
            When given the differenced system is solved by weighted least
            squares.

    Returns:
        Estimated position, shape (N,).

    Raises:
        InvalidConfigurationError: If shapes are invalid or too few points.
        EstimationFailedError: If the points are degenerate (e.g. collinear
            in 2D) and the system is singular.

    Example:
        >>> anchors = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])
        >>> d = np.linalg.norm(anchors - np.array([3.0, 4.0]), axis=1)
        >>> solve_inhomogeneous_lateration(anchors, d)
        array([3., 4.])
    """
    p, d, centroid = _prepare(positions, distances)
    s = None if distance_stds is None else _check_stds(distance_stds, len(d))
    sq_norms = np.sum(p**2, axis=1)

    A = 2.0 * (p[1:] - p[0])
    b = sq_norms[1:] - sq_norms[0] - d[1:] ** 2 + d[0] ** 2

    try:
        if s is None:
            x, _ = linear_least_squares(A, b, return_covariance=False)
        else:
            row_std = 2.0 * np.sqrt((d[1:] * s[1:]) ** 2 + (d[0] * s[0]) ** 2)
            x, _ = weighted_least_squares(
                A, b, np.maximum(row_std, MIN_ROW_STD), return_covariance=False
            )
    except ValueError as e:
        raise EstimationFailedError(f"Linear lateration failed: {e}") from e

    return x + centroid


def solve_homogeneous_lateration(positions, distances) -> np.ndarray:
    """
    Lateration in homogeneous coordinates (SVD null vector).

    Args:
        positions: Known points, shape (M, N), M ≥ N + 1.
        distances: Distances to each point, shape (M,).

    Returns:
        Estimated position, shape (N,).

    Raises:
        InvalidConfigurationError: If shapes are invalid or too few points.
        EstimationFailedError: If the system has no unique solution or the
            solution lies at infinity.
    """
    p, d, centroid = _prepare(positions, distances)
    M, N = p.shape

    A = np.empty((M, N + 2))
    A[:, :N] = -2.0 * p
    A[:, N] = np.sum(p**2, axis=1) - d**2
    A[:, N + 1] = 1.0

    # Column scaling improves conditioning; undone on the solution
    scale = np.linalg.norm(A, axis=0)
    scale[scale == 0.0] = 1.0

    try:
        v = homogeneous_least_squares(A / scale)
    except ValueError as e:
        raise EstimationFailedError(f"Homogeneous lateration failed: {e}") from e
    v = v / scale

    if abs(v[N]) <= np.finfo(float).eps * np.linalg.norm(v):
        raise EstimationFailedError("Homogeneous lateration solution is at infinity")

    return v[:N] / v[N] + centroid


def solve_linear_lateration(
    positions, distances, homogeneous: bool = False, distance_stds=None
) -> np.ndarray:
    """Solve lateration with the homogeneous or inhomogeneous formulation.

    Distance standard deviations only weight the inhomogeneous form.
    """
    if homogeneous:
        return solve_homogeneous_lateration(positions, distances)
    return solve_inhomogeneous_lateration(positions, distances, distance_stds)
