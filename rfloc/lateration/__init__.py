"""
Lateration solvers.

Submodules:
    linear: Closed-form homogeneous and inhomogeneous lateration
    nonlinear: Levenberg-Marquardt range refinement with covariance
    consensus: Sample consensus search (RANSAC, LMedS, MSAC, PROSAC, PROMedS)
"""

from rfloc.lateration.consensus import (
    ConsensusResult,
    InliersData,
    RobustMethod,
    iteration_bound,
    run_consensus,
)
from rfloc.lateration.linear import (
    min_required_points,
    solve_homogeneous_lateration,
    solve_inhomogeneous_lateration,
    solve_linear_lateration,
)
from rfloc.lateration.nonlinear import LaterationResult, nonlinear_lateration, range_residuals

__all__ = [
    "min_required_points",
    "solve_inhomogeneous_lateration",
    "solve_homogeneous_lateration",
    "solve_linear_lateration",
    "LaterationResult",
    "nonlinear_lateration",
    "range_residuals",
    "RobustMethod",
    "InliersData",
    "ConsensusResult",
    "iteration_bound",
    "run_consensus",
]
