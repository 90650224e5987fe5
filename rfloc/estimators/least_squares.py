"""
Linear least squares primitives used by the lateration solvers.

Functions:
    - linear_least_squares: Ordinary LS x̂ = argmin ‖Ax - b‖²
    - weighted_least_squares: Weighted LS with per-row standard deviations
    - homogeneous_least_squares: Unit-norm null vector x̂ = argmin ‖Ax‖², ‖x‖ = 1

All functions raise ``ValueError`` when the system has no unique solution.
"""

from typing import Optional, Tuple

import numpy as np


def _check_system(A: np.ndarray, b: np.ndarray) -> Tuple[int, int]:
    if A.ndim != 2 or b.ndim != 1:
        raise ValueError(f"A must be 2D and b must be 1D. Got A: {A.shape}, b: {b.shape}")
    m, n = A.shape
    if m < n:
        raise ValueError(f"Underdetermined system: m={m} < n={n}. Need m ≥ n.")
    if len(b) != m:
        raise ValueError(f"Dimension mismatch: A has {m} rows, b has {len(b)} elements")
    return m, n


def linear_least_squares(
    A: np.ndarray, b: np.ndarray, return_covariance: bool = True
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Ordinary linear least squares.

    Solves x̂ = argmin ‖Ax - b‖² with an SVD based solver, and optionally
    returns P = σ̂² (A'A)⁻¹ with σ̂² = ‖b - Ax̂‖² / (m - n).

    Args:
        A: Design matrix (m × n), m ≥ n.
        b: Observation vector (m,).
        return_covariance: If True, compute the covariance matrix.

    Returns:
        Tuple of:
            - x_hat: Estimate (n,).
            - P: Covariance (n × n), or None.

    Raises:
        ValueError: If dimensions don't match or A is rank deficient.
    """
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float)
    m, n = _check_system(A, b)

    x_hat, _, rank, _ = np.linalg.lstsq(A, b, rcond=None)
    if rank < n:
        raise ValueError(f"A is rank deficient: rank={rank} < n={n}. System has no unique solution.")

    P = None
    if return_covariance:
        residuals = b - A @ x_hat
        sigma2 = np.sum(residuals**2) / (m - n) if m > n else 1.0
        P = sigma2 * np.linalg.inv(A.T @ A)

    return x_hat, P


def weighted_least_squares(
    A: np.ndarray,
    b: np.ndarray,
    sigma: np.ndarray,
    return_covariance: bool = True,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Weighted least squares with independent row uncertainties.

    Solves x̂ = argmin Σ (aᵢ'x - bᵢ)² / σᵢ², P = (A'WA)⁻¹ with W = diag(1/σᵢ²).

    Args:
        A: Design matrix (m × n).
        b: Observation vector (m,).
        sigma: Row standard deviations (m,), all positive.
        return_covariance: If True, compute the covariance matrix.

    Returns:
        Tuple of (x_hat, P).
    """
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float)
    sigma = np.asarray(sigma, dtype=float)
    m, n = _check_system(A, b)
    if sigma.shape != (m,):
        raise ValueError(f"sigma length mismatch: expected {m}, got {sigma.shape}")
    if np.any(sigma <= 0):
        raise ValueError("Sigma values must be positive")

    # Whitening turns the weighted problem into an ordinary one
    scale = 1.0 / sigma
    x_hat, _ = linear_least_squares(A * scale[:, np.newaxis], b * scale, return_covariance=False)

    P = None
    if return_covariance:
        ATWA = A.T @ np.diag(scale**2) @ A
        P = np.linalg.inv(ATWA)

    return x_hat, P


def homogeneous_least_squares(A: np.ndarray, null_space_tol: float = 1e-12) -> np.ndarray:
    """
    Solve A x = 0 for a unit-norm x in the least squares sense.

    The solution is the right singular vector associated with the smallest
    singular value of A.

    Args:
        A: Design matrix (m × n), m ≥ n - 1.
        null_space_tol: Relative tolerance used to detect a null space of
            dimension greater than one.

    Returns:
        Unit-norm vector x (n,).

    Raises:
        ValueError: If the solution is not unique (two or more vanishing
            singular values).
    """
    A = np.asarray(A, dtype=float)
    if A.ndim != 2:
        raise ValueError(f"A must be 2D, got shape {A.shape}")
    m, n = A.shape
    if m < n - 1:
        raise ValueError(f"Underdetermined homogeneous system: m={m} < n-1={n - 1}")

    _, s, vt = np.linalg.svd(A, full_matrices=True)
    singular = np.zeros(n)
    singular[: len(s)] = s

    # A unique solution needs the second smallest singular value to be non-zero
    if singular[n - 2] <= null_space_tol * max(singular[0], 1.0):
        raise ValueError("Homogeneous system has no unique solution (null space dimension > 1)")

    return vt[-1]
