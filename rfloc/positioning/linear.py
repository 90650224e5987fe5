"""
Linear (closed-form) position estimator.

Converts the fingerprint readings into distances to the located sources and
solves the lateration system with the homogeneous or inhomogeneous linear
formulation. The inhomogeneous system is weighted by the distance
standard deviations. No outlier rejection is performed; see
rfloc.positioning.robust for that.

Example:
    >>> estimator = LinearPositionEstimator(sources, fingerprint)
    >>> position = estimator.estimate()
"""

from typing import Optional, Tuple

import numpy as np

from rfloc.lateration.linear import solve_linear_lateration
from rfloc.positioning.base import BasePositionEstimator
from rfloc.positioning.helper import LaterationInputs


class LinearPositionEstimator(BasePositionEstimator):
    """
    Position estimator based on linear lateration.

    Args:
        sources: Located radio sources.
        fingerprint: Readings to position.
        listener: Optional callable receiving START and END events.
        homogeneous_linear_solver_used: Use the homogeneous formulation
            instead of the inhomogeneous one.
        **kwargs: Forwarded to BasePositionEstimator.
    """

    def __init__(
        self,
        sources=None,
        fingerprint=None,
        listener=None,
        homogeneous_linear_solver_used: bool = False,
        **kwargs,
    ):
        self._homogeneous_linear_solver_used = False
        super().__init__(sources, fingerprint, listener, **kwargs)
        self.homogeneous_linear_solver_used = homogeneous_linear_solver_used

    @property
    def homogeneous_linear_solver_used(self) -> bool:
        return self._homogeneous_linear_solver_used

    @homogeneous_linear_solver_used.setter
    def homogeneous_linear_solver_used(self, value: bool) -> None:
        self._configure("_homogeneous_linear_solver_used", bool(value))

    def _estimate(self, inputs: LaterationInputs) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        position = solve_linear_lateration(
            inputs.positions,
            inputs.distances,
            homogeneous=self._homogeneous_linear_solver_used,
            distance_stds=inputs.distance_stds,
        )
        return position, None
