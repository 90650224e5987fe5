"""
Robust (outlier tolerant) position estimator.

Wraps the linear lateration solver in a sample consensus search:

    1. Draw a minimal sample of lateration entries (uniformly, or by quality
       score for PROSAC/PROMedS).
    2. Solve the sample with the linear solver (homogeneous or
       inhomogeneous) and optionally refine it with nonlinear least squares.
    3. Score the hypothesis on all entries with |‖x - pᵢ‖ - dᵢ|.
    4. Keep the best hypothesis and update the adaptive iteration budget.

After the search the best position is refined over its inliers with
Levenberg-Marquardt, which also yields the position covariance.

Example:
    >>> estimator = RobustPositionEstimator(
    ...     sources, fingerprint, method=RobustMethod.RANSAC, stop_threshold=0.5
    ... )
    >>> position = estimator.estimate()
    >>> estimator.inliers_data.num_inliers
    >>> estimator.accuracy(0.95).average_accuracy
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from rfloc.errors import EstimationFailedError, InvalidConfigurationError
from rfloc.lateration.consensus import (
    InliersData,
    RobustMethod,
    create_sampler,
    create_scorer,
    run_consensus,
)
from rfloc.lateration.linear import solve_linear_lateration
from rfloc.lateration.nonlinear import nonlinear_lateration, range_residuals
from rfloc.positioning.base import BasePositionEstimator, EstimatorEvent
from rfloc.positioning.helper import LaterationInputs, build_lateration_inputs

logger = logging.getLogger(__name__)

DEFAULT_METHOD = RobustMethod.LMEDS
DEFAULT_CONFIDENCE = 0.99
DEFAULT_MAX_ITERATIONS = 5000
DEFAULT_PROGRESS_DELTA = 0.05

# Stop threshold on the median squared residual (LMedS, PROMedS), m²
DEFAULT_MEDIAN_STOP_THRESHOLD = 1e-5
# Inlier residual threshold (RANSAC, MSAC, PROSAC), m
DEFAULT_THRESHOLD = 1e-2


def default_stop_threshold(method: RobustMethod) -> float:
    """Default stop threshold of a robust method."""
    return DEFAULT_MEDIAN_STOP_THRESHOLD if method.uses_median else DEFAULT_THRESHOLD


def _optional_scores(name: str, value) -> Optional[np.ndarray]:
    if value is None:
        return None
    scores = np.asarray(value, dtype=float)
    if scores.ndim != 1 or len(scores) == 0:
        raise InvalidConfigurationError(f"{name} must be a non-empty 1D sequence")
    return scores


class RobustPositionEstimator(BasePositionEstimator):
    """
    Robust position estimator with pluggable consensus method.

    Args:
        sources: Located radio sources.
        fingerprint: Readings to position.
        listener: Optional callable receiving START, NEXT_ITERATION,
            PROGRESS_CHANGE and END events.
        method: Consensus method. Defaults to LMedS.
        stop_threshold: Inlier threshold (RANSAC/MSAC/PROSAC, meters) or
            median stop threshold (LMedS/PROMedS, m²). Defaults depend on
            the method.
        confidence: Probability of drawing an all-inlier sample, in (0, 1).
        max_iterations: Maximum consensus iterations.
        progress_delta: Minimum progress change between PROGRESS_CHANGE
            events, in [0, 1].
        result_refined: Refine the best hypothesis over its inliers.
        covariance_kept: Keep the covariance of the refined result.
        linear_solver_used: Build hypotheses with the linear solver. When
            False they are built by nonlinear refinement from the initial
            position (or the sample centroid).
        homogeneous_linear_solver_used: Use the homogeneous formulation.
        preliminary_solution_refined: Refine each hypothesis on its sample.
        preliminary_subset_size: Sample size; defaults to dimensions + 1.
        initial_position: Start point for nonlinear hypotheses.
        source_quality_scores: One score per source (progressive methods).
        fingerprint_reading_quality_scores: One score per reading
            (progressive methods).
        evenly_distribute_readings: Interleave readings of different sources
            in the progressive sampling order.
        seed: Seed of the random sample generator.
        **kwargs: Forwarded to BasePositionEstimator.
    """

    def __init__(
        self,
        sources=None,
        fingerprint=None,
        listener=None,
        method: RobustMethod = DEFAULT_METHOD,
        stop_threshold: Optional[float] = None,
        confidence: float = DEFAULT_CONFIDENCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        progress_delta: float = DEFAULT_PROGRESS_DELTA,
        result_refined: bool = True,
        covariance_kept: bool = True,
        linear_solver_used: bool = True,
        homogeneous_linear_solver_used: bool = False,
        preliminary_solution_refined: bool = True,
        preliminary_subset_size: Optional[int] = None,
        initial_position=None,
        source_quality_scores: Optional[Sequence[float]] = None,
        fingerprint_reading_quality_scores: Optional[Sequence[float]] = None,
        evenly_distribute_readings: bool = False,
        seed: Optional[int] = None,
        **kwargs,
    ):
        if not isinstance(method, RobustMethod):
            raise InvalidConfigurationError(f"method must be a RobustMethod, got {method!r}")
        self._method = method
        self._stop_threshold = default_stop_threshold(method)
        self._confidence = DEFAULT_CONFIDENCE
        self._max_iterations = DEFAULT_MAX_ITERATIONS
        self._progress_delta = DEFAULT_PROGRESS_DELTA
        self._result_refined = True
        self._covariance_kept = True
        self._linear_solver_used = True
        self._homogeneous_linear_solver_used = False
        self._preliminary_solution_refined = True
        self._preliminary_subset_size: Optional[int] = None
        self._initial_position: Optional[np.ndarray] = None
        self._source_quality_scores: Optional[np.ndarray] = None
        self._fingerprint_reading_quality_scores: Optional[np.ndarray] = None
        self._evenly_distribute_readings = False
        self._seed: Optional[int] = None

        self._inliers_data: Optional[InliersData] = None
        self._iterations: Optional[int] = None

        super().__init__(sources, fingerprint, listener, **kwargs)

        if stop_threshold is not None:
            self.stop_threshold = stop_threshold
        self.confidence = confidence
        self.max_iterations = max_iterations
        self.progress_delta = progress_delta
        self.result_refined = result_refined
        self.covariance_kept = covariance_kept
        self.linear_solver_used = linear_solver_used
        self.homogeneous_linear_solver_used = homogeneous_linear_solver_used
        self.preliminary_solution_refined = preliminary_solution_refined
        self.preliminary_subset_size = preliminary_subset_size
        self.initial_position = initial_position
        self.source_quality_scores = source_quality_scores
        self.fingerprint_reading_quality_scores = fingerprint_reading_quality_scores
        self.evenly_distribute_readings = evenly_distribute_readings
        self.seed = seed

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def method(self) -> RobustMethod:
        return self._method

    @property
    def stop_threshold(self) -> float:
        return self._stop_threshold

    @stop_threshold.setter
    def stop_threshold(self, value: float) -> None:
        self._check_unlocked()
        if not value > 0:
            raise InvalidConfigurationError(f"stop_threshold must be positive, got {value}")
        self._configure("_stop_threshold", float(value))

    @property
    def confidence(self) -> float:
        return self._confidence

    @confidence.setter
    def confidence(self, value: float) -> None:
        self._check_unlocked()
        if not 0 < value < 1:
            raise InvalidConfigurationError(f"confidence must be in (0, 1), got {value}")
        self._configure("_confidence", float(value))

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        self._check_unlocked()
        if int(value) != value or value < 1:
            raise InvalidConfigurationError(f"max_iterations must be a positive integer, got {value}")
        self._configure("_max_iterations", int(value))

    @property
    def progress_delta(self) -> float:
        return self._progress_delta

    @progress_delta.setter
    def progress_delta(self, value: float) -> None:
        self._check_unlocked()
        if not 0 <= value <= 1:
            raise InvalidConfigurationError(f"progress_delta must be in [0, 1], got {value}")
        self._configure("_progress_delta", float(value))

    @property
    def result_refined(self) -> bool:
        return self._result_refined

    @result_refined.setter
    def result_refined(self, value: bool) -> None:
        self._configure("_result_refined", bool(value))

    @property
    def covariance_kept(self) -> bool:
        return self._covariance_kept

    @covariance_kept.setter
    def covariance_kept(self, value: bool) -> None:
        self._configure("_covariance_kept", bool(value))

    @property
    def linear_solver_used(self) -> bool:
        return self._linear_solver_used

    @linear_solver_used.setter
    def linear_solver_used(self, value: bool) -> None:
        self._configure("_linear_solver_used", bool(value))

    @property
    def homogeneous_linear_solver_used(self) -> bool:
        return self._homogeneous_linear_solver_used

    @homogeneous_linear_solver_used.setter
    def homogeneous_linear_solver_used(self, value: bool) -> None:
        self._configure("_homogeneous_linear_solver_used", bool(value))

    @property
    def preliminary_solution_refined(self) -> bool:
        return self._preliminary_solution_refined

    @preliminary_solution_refined.setter
    def preliminary_solution_refined(self, value: bool) -> None:
        self._configure("_preliminary_solution_refined", bool(value))

    @property
    def preliminary_subset_size(self) -> Optional[int]:
        """Configured sample size, or None for dimensions + 1."""
        return self._preliminary_subset_size

    @preliminary_subset_size.setter
    def preliminary_subset_size(self, value: Optional[int]) -> None:
        self._check_unlocked()
        if value is not None and (int(value) != value or value < 3):
            raise InvalidConfigurationError(
                f"preliminary_subset_size must be an integer >= 3, got {value}"
            )
        self._configure("_preliminary_subset_size", None if value is None else int(value))

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

    @property
    def source_quality_scores(self) -> Optional[np.ndarray]:
        """Quality score per source; higher is better."""
        return self._source_quality_scores

    @source_quality_scores.setter
    def source_quality_scores(self, value) -> None:
        self._check_unlocked()
        self._configure("_source_quality_scores", _optional_scores("source_quality_scores", value))

    @property
    def fingerprint_reading_quality_scores(self) -> Optional[np.ndarray]:
        """Quality score per fingerprint reading; higher is better."""
        return self._fingerprint_reading_quality_scores

    @fingerprint_reading_quality_scores.setter
    def fingerprint_reading_quality_scores(self, value) -> None:
        self._check_unlocked()
        self._configure(
            "_fingerprint_reading_quality_scores",
            _optional_scores("fingerprint_reading_quality_scores", value),
        )

    @property
    def evenly_distribute_readings(self) -> bool:
        return self._evenly_distribute_readings

    @evenly_distribute_readings.setter
    def evenly_distribute_readings(self, value: bool) -> None:
        self._configure("_evenly_distribute_readings", bool(value))

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    @seed.setter
    def seed(self, value: Optional[int]) -> None:
        self._configure("_seed", value)

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    @property
    def subset_size(self) -> Optional[int]:
        """Effective sample size: max(dimensions + 1, preliminary_subset_size)."""
        minimum = self.min_required_sources
        if minimum is None:
            return None
        if self._preliminary_subset_size is None:
            return minimum
        return max(minimum, self._preliminary_subset_size)

    def _quality_scores_ready(self) -> bool:
        if not self._method.requires_quality_scores:
            return True
        return (
            self._source_quality_scores is not None
            and self._fingerprint_reading_quality_scores is not None
            and len(self._source_quality_scores) == len(self._sources)
            and len(self._fingerprint_reading_quality_scores) == len(self._fingerprint)
        )

    def _build_inputs(self) -> LaterationInputs:
        progressive = self._method.requires_quality_scores
        return build_lateration_inputs(
            self._sources,
            self._fingerprint,
            fallback_distance_std=self._fallback_distance_std,
            use_radio_source_position_covariance=self._use_radio_source_position_covariance,
            source_quality_scores=self._source_quality_scores if progressive else None,
            fingerprint_reading_quality_scores=(
                self._fingerprint_reading_quality_scores if progressive else None
            ),
            evenly_distribute_readings=self._evenly_distribute_readings,
        )

    @property
    def is_ready(self) -> bool:
        if self._sources is None or self._fingerprint is None:
            return False
        if not self._quality_scores_ready():
            return False
        inputs = self._build_inputs()
        return len(inputs) >= self.subset_size and self._has_enough_sources(inputs)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def inliers_data(self) -> Optional[InliersData]:
        """Inliers of the last successful estimate."""
        return self._inliers_data

    @property
    def iterations(self) -> Optional[int]:
        """Consensus iterations used by the last successful estimate."""
        return self._iterations

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def _refine(self, positions, distances, stds, start, return_covariance: bool):
        return nonlinear_lateration(
            positions,
            distances,
            distance_stds=stds,
            initial_position=start,
            return_covariance=return_covariance,
        )

    def _hypothesis(self, sample: np.ndarray, inputs: LaterationInputs) -> np.ndarray:
        p = inputs.positions[sample]
        d = inputs.distances[sample]
        s = inputs.distance_stds[sample]

        if not self._linear_solver_used:
            start = self._initial_position if self._initial_position is not None else p.mean(axis=0)
            return self._refine(p, d, s, start, return_covariance=False).position

        x = solve_linear_lateration(
            p, d, homogeneous=self._homogeneous_linear_solver_used, distance_stds=s
        )
        if self._preliminary_solution_refined:
            try:
                x = self._refine(p, d, s, x, return_covariance=False).position
            except EstimationFailedError as e:
                logger.debug("Preliminary refinement failed, keeping linear solution: %s", e)
        return x

    def _check_configuration(self) -> None:
        self._check_initial_position(self._initial_position)

    def _estimate(self, inputs: LaterationInputs) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        n = len(inputs)
        subset_size = self.subset_size
        rng = np.random.default_rng(self._seed)

        scorer = create_scorer(self._method, self._stop_threshold, subset_size)
        sampler = create_sampler(
            self._method, n, subset_size, self._max_iterations, rng, inputs.quality_scores
        )

        logger.debug(
            "%s consensus over %d entries (subset size %d, max %d iterations)",
            self._method.name, n, subset_size, self._max_iterations,
        )

        consensus = run_consensus(
            n,
            subset_size,
            make_hypothesis=lambda sample: self._hypothesis(sample, inputs),
            compute_residuals=lambda x: range_residuals(x, inputs.positions, inputs.distances),
            scorer=scorer,
            sampler=sampler,
            confidence=self._confidence,
            max_iterations=self._max_iterations,
            progress_delta=self._progress_delta,
            on_iteration=lambda i: self._notify(EstimatorEvent.NEXT_ITERATION, i),
            on_progress=lambda p: self._notify(EstimatorEvent.PROGRESS_CHANGE, p),
        )

        position = consensus.model
        covariance = None
        if self._result_refined:
            mask = consensus.inliers_data.inliers
            result = self._refine(
                inputs.positions[mask],
                inputs.distances[mask],
                inputs.distance_stds[mask],
                position,
                return_covariance=self._covariance_kept,
            )
            position = result.position
            if self._covariance_kept:
                covariance = result.covariance

        logger.debug(
            "%s finished after %d iterations with %d/%d inliers",
            self._method.name, consensus.iterations, consensus.inliers_data.num_inliers, n,
        )

        self._inliers_data = consensus.inliers_data
        self._iterations = consensus.iterations
        return position, covariance
