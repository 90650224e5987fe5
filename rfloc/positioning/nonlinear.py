"""
Nonlinear position estimator.

Refines the position with Levenberg-Marquardt on the range residuals, each
weighted by the inverse variance of its distance estimate. The start point is
the configured initial position or, when none is set, the linear lateration
solution. The position covariance is always computed.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from rfloc.errors import InvalidConfigurationError
from rfloc.lateration.linear import solve_linear_lateration
from rfloc.lateration.nonlinear import nonlinear_lateration
from rfloc.positioning.base import BasePositionEstimator
from rfloc.positioning.helper import LaterationInputs

logger = logging.getLogger(__name__)


class NonLinearPositionEstimator(BasePositionEstimator):
    """
    Position estimator based on nonlinear weighted least squares.

    Args:
        sources: Located radio sources.
        fingerprint: Readings to position.
        listener: Optional callable receiving START and END events.
        initial_position: Optional start point for the solver.
        **kwargs: Forwarded to BasePositionEstimator.
    """

    def __init__(self, sources=None, fingerprint=None, listener=None, initial_position=None, **kwargs):
        self._initial_position: Optional[np.ndarray] = None
        super().__init__(sources, fingerprint, listener, **kwargs)
        if initial_position is not None:
            self.initial_position = initial_position

    @property
    def initial_position(self) -> Optional[np.ndarray]:
        return self._initial_position

    @initial_position.setter
    def initial_position(self, value) -> None:
        self._check_unlocked()
        if value is not None:
            value = np.asarray(value, dtype=float)
            if value.ndim != 1 or value.shape[0] not in (2, 3):
                raise InvalidConfigurationError(
                    f"initial_position must have shape (2,) or (3,), got {value.shape}"
                )
        self._configure("_initial_position", value)

    def _check_configuration(self) -> None:
        self._check_initial_position(self._initial_position)

    def _estimate(self, inputs: LaterationInputs) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        x0 = self._initial_position
        if x0 is None:
            x0 = solve_linear_lateration(
                inputs.positions, inputs.distances, distance_stds=inputs.distance_stds
            )
            logger.debug("Linear start point %s", x0)

        result = nonlinear_lateration(
            inputs.positions,
            inputs.distances,
            distance_stds=inputs.distance_stds,
            initial_position=x0,
        )
        return result.position, result.covariance
