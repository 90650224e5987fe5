"""
Nonlinear least squares using Levenberg-Marquardt.

Mathematical Formulation:
    Given observations y and measurement model h(x), we seek:
        x̂ = argmin ½‖r(x)‖²_W
    where r(x) = y - h(x) is the residual vector and W = diag(wᵢ).

    Levenberg-Marquardt update:
        (J'WJ + μI) Δx = J'W r
    where μ is adapted from the gain ratio of each step.

Covariance at the solution:
    P = (J'WJ)⁻¹                   if absolute_sigma (weights are 1/σᵢ²)
    P = σ̂² (J'WJ)⁻¹                otherwise, σ̂² = r'Wr / (m - n)
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class NonlinearLSResult:
    """Result container for nonlinear least squares optimization.

    Attributes:
        x: Estimated state vector.
        covariance: Covariance matrix (n × n), or None.
        iterations: Number of iterations performed.
        residuals: Final residuals r = y - h(x̂).
        cost: Final cost value ½‖r‖²_W.
        converged: Whether the step norm fell below tolerance.
    """

    x: np.ndarray
    covariance: Optional[np.ndarray]
    iterations: int
    residuals: np.ndarray
    cost: float
    converged: bool


def levenberg_marquardt(
    h: Callable[[np.ndarray], np.ndarray],
    jacobian: Callable[[np.ndarray], np.ndarray],
    y: np.ndarray,
    x0: np.ndarray,
    weights: Optional[np.ndarray] = None,
    max_iter: int = 100,
    tol: float = 1e-10,
    mu0: float = 1e-3,
    return_covariance: bool = True,
    absolute_sigma: bool = False,
) -> NonlinearLSResult:
    """
    Levenberg-Marquardt solver for x̂ = argmin ½‖y - h(x)‖²_W.

    LM blends Gauss-Newton (small μ, fast near the solution) with gradient
    descent (large μ, robust far from it). μ decreases after accepted steps
    and grows geometrically after rejected ones.

    Args:
        h: Measurement model h: R^n → R^m.
        jacobian: Jacobian J = ∂h/∂x (m × n).
        y: Observations (m,).
        x0: Initial estimate (n,).
        weights: Optional per-observation weights (m,).
        max_iter: Maximum number of iterations.
        tol: Convergence tolerance on ‖Δx‖.
        mu0: Initial damping parameter.
        return_covariance: If True, compute covariance at the solution.
        absolute_sigma: If True, weights are taken as 1/σᵢ² and the
            covariance is not rescaled by the residual variance.

    Returns:
        NonlinearLSResult.

    Example:
        >>> anchors = np.array([[0, 0], [10, 0], [0, 10], [10, 10]])
        >>> h = lambda x: np.linalg.norm(anchors - x, axis=1)
        >>> jac = lambda x: (x - anchors) / h(x)[:, None]
        >>> y = h(np.array([3.0, 4.0]))
        >>> result = levenberg_marquardt(h, jac, y, x0=np.array([5.0, 5.0]))
    """
    return _solve(h, jacobian, y, x0, weights, max_iter, tol, mu0,
                  return_covariance, absolute_sigma)


def _solve_normal(N: np.ndarray, g: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.solve(N, g)
    except np.linalg.LinAlgError:
        return np.linalg.lstsq(N, g, rcond=None)[0]


def _solve(
    h, jacobian, y, x0, weights, max_iter, tol, mu0,
    return_covariance, absolute_sigma,
) -> NonlinearLSResult:
    y = np.asarray(y, dtype=float)
    x = np.asarray(x0, dtype=float).copy()

    if y.ndim != 1:
        raise ValueError(f"y must be 1D array, got shape {y.shape}")
    if x.ndim != 1:
        raise ValueError(f"x0 must be 1D array, got shape {x.shape}")

    m, n = len(y), len(x)
    if weights is None:
        w = np.ones(m)
    else:
        w = np.asarray(weights, dtype=float)
        if w.shape != (m,):
            raise ValueError(f"weights must be 1D array of length {m}")
        if np.any(w < 0):
            raise ValueError("weights must be non-negative")

    mu = mu0
    nu = 2.0
    converged = False
    iteration = 0

    r = y - h(x)
    cost = 0.5 * np.sum(w * r**2)

    for iteration in range(max_iter):
        J = jacobian(x)
        if J.shape != (m, n):
            raise ValueError(f"Jacobian shape {J.shape}, expected ({m}, {n})")

        JtW = J.T * w
        JtWJ = JtW @ J
        JtWr = JtW @ r

        while True:
            delta = _solve_normal(JtWJ + mu * np.eye(n), JtWr)
            x_new = x + delta
            r_new = y - h(x_new)
            cost_new = 0.5 * np.sum(w * r_new**2)

            predicted = 0.5 * delta @ (mu * delta + JtWr)
            gain = (cost - cost_new) / predicted if predicted > 1e-300 else 0.0

            if gain > 0:
                x, r, cost = x_new, r_new, cost_new
                mu *= max(1.0 / 3.0, 1.0 - (2.0 * gain - 1.0) ** 3)
                nu = 2.0
                break

            mu *= nu
            nu *= 2.0
            if mu > 1e12:
                # No descent direction left: already at a minimum
                delta = np.zeros(n)
                break

        if np.linalg.norm(delta) < tol * (1.0 + np.linalg.norm(x)):
            converged = True
            break

    P = None
    if return_covariance:
        J = jacobian(x)
        JtWJ = (J.T * w) @ J
        if np.linalg.matrix_rank(JtWJ) < n:
            raise ValueError("Normal matrix is singular at the solution; covariance undefined")
        P = np.linalg.inv(JtWJ)
        if not absolute_sigma:
            P *= 2.0 * cost / (m - n) if m > n else 1.0

    logger.debug("LM finished after %d iterations (cost=%.3e, converged=%s)",
                 iteration + 1, cost, converged)

    return NonlinearLSResult(
        x=x,
        covariance=P,
        iterations=iteration + 1,
        residuals=r,
        cost=float(cost),
        converged=converged,
    )
