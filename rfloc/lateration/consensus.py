"""
Sample consensus search shared by all robust lateration methods.

The loop draws minimal samples, builds a hypothesis from each one, scores the
hypothesis on every entry and keeps the best. Methods differ only in two
strategy objects:

    Scorer  - score(residuals) -> (inlier_mask, cost); lower cost is better
    Sampler - draw(iteration) -> indices of a minimal sample

    | Method  | Scorer          | Sampler     |
    |---------|-----------------|-------------|
    | RANSAC  | inlier count    | uniform     |
    | MSAC    | truncated r²    | uniform     |
    | LMedS   | median r²       | uniform     |
    | PROSAC  | inlier count    | progressive |
    | PROMedS | median r²       | progressive |

Adaptive iteration bound (recomputed only when the best hypothesis improves):
    K = log(1 - confidence) / log(1 - w^s)
where w is the inlier ratio of the best hypothesis and s the sample size.

References:
    Fischler & Bolles (1981) RANSAC; Rousseeuw (1984) LMedS;
    Torr & Zisserman (2000) MLESAC/MSAC; Chum & Matas (2005) PROSAC.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Tuple

import numpy as np

from rfloc.errors import EstimationFailedError, InvalidConfigurationError

logger = logging.getLogger(__name__)

# LMedS robust standard deviation constant (consistency for Gaussian noise)
MAD_CONSTANT = 1.4826

# Inliers are residuals below this many robust standard deviations (LMedS)
LMEDS_INLIER_FACTOR = 1.5


class RobustMethod(Enum):
    """Robust consensus method."""

    RANSAC = "ransac"
    LMEDS = "lmeds"
    MSAC = "msac"
    PROSAC = "prosac"
    PROMEDS = "promeds"

    @property
    def requires_quality_scores(self) -> bool:
        """True for progressive methods, which sample by quality score."""
        return self in (RobustMethod.PROSAC, RobustMethod.PROMEDS)

    @property
    def uses_median(self) -> bool:
        return self in (RobustMethod.LMEDS, RobustMethod.PROMEDS)


@dataclass
class InliersData:
    """Inliers of the best consensus hypothesis.

    Attributes:
        inliers: Boolean mask over all entries.
        residuals: Absolute residuals of all entries for the best hypothesis.
        num_inliers: Number of True entries in the mask.
        threshold: Residual threshold that separated inliers from outliers.
    """

    inliers: np.ndarray
    residuals: np.ndarray
    num_inliers: int
    threshold: float


@dataclass
class ConsensusResult:
    model: Any
    inliers_data: InliersData
    iterations: int
    cost: float


# =============================================================================
# Scorers
# =============================================================================


class InlierCountScorer:
    """RANSAC scoring: cost is the negated number of residuals within threshold."""

    def __init__(self, threshold: float):
        self.threshold = threshold

    def score(self, residuals: np.ndarray) -> Tuple[np.ndarray, float]:
        inliers = residuals <= self.threshold
        return inliers, -float(np.count_nonzero(inliers))

    def should_stop(self, cost: float) -> bool:
        return False


class TruncatedQuadraticScorer:
    """MSAC scoring: Σ min(r², t²)."""

    def __init__(self, threshold: float):
        self.threshold = threshold

    def score(self, residuals: np.ndarray) -> Tuple[np.ndarray, float]:
        inliers = residuals <= self.threshold
        cost = np.sum(np.minimum(residuals**2, self.threshold**2))
        return inliers, float(cost)

    def should_stop(self, cost: float) -> bool:
        return False


class MedianScorer:
    """
    LMedS scoring: median of squared residuals.

    The inlier threshold is derived from the robust standard deviation
        σ = 1.4826 · (1 + 5 / (n - s)) · sqrt(median r²)
    as max(1.5·σ, sqrt(stop_threshold)), so that an exact fit keeps every
    residual within the stop threshold as an inlier.
    """

    def __init__(self, stop_threshold: float, subset_size: int):
        self.stop_threshold = stop_threshold
        self.subset_size = subset_size
        self.threshold = math.sqrt(stop_threshold)

    def score(self, residuals: np.ndarray) -> Tuple[np.ndarray, float]:
        n = len(residuals)
        median = float(np.median(residuals**2))
        correction = 1.0 + 5.0 / max(n - self.subset_size, 1)
        sigma = MAD_CONSTANT * correction * math.sqrt(median)
        threshold = max(LMEDS_INLIER_FACTOR * sigma, math.sqrt(self.stop_threshold))
        self.threshold = threshold
        return residuals <= threshold, median

    def should_stop(self, cost: float) -> bool:
        return cost <= self.stop_threshold


# =============================================================================
# Samplers
# =============================================================================


class UniformSampler:
    """Draws minimal samples uniformly at random without replacement."""

    def __init__(self, n: int, subset_size: int, rng: np.random.Generator):
        self.n = n
        self.subset_size = subset_size
        self.rng = rng

    def draw(self, iteration: int) -> np.ndarray:
        return self.rng.choice(self.n, size=self.subset_size, replace=False)


class ProgressiveSampler:
    """
    PROSAC sampler: draws from a growing prefix of entries sorted by quality.

    The prefix size n grows following the T_n recurrence of Chum & Matas:
        T_{n+1} = T_n · (n + 1) / (n + 1 - s)
    and each sample contains the n-th best entry plus s - 1 entries drawn
    from the n - 1 better ones, until the prefix covers all entries.
    """

    def __init__(
        self,
        quality_scores: Sequence[float],
        subset_size: int,
        max_iterations: int,
        rng: np.random.Generator,
    ):
        scores = np.asarray(quality_scores, dtype=float)
        self.order = np.argsort(-scores, kind="stable")
        self.N = len(scores)
        self.subset_size = subset_size
        self.rng = rng

        s = subset_size
        tn = float(max_iterations)
        for i in range(s):
            tn *= (s - i) / (self.N - i)
        self._tn = tn
        self._tn_prime = 1
        self._n = s
        self._t = 0

    def draw(self, iteration: int) -> np.ndarray:
        s = self.subset_size
        self._t += 1
        if self._t > self._tn_prime and self._n < self.N:
            tn_next = self._tn * (self._n + 1) / (self._n + 1 - s)
            self._tn_prime += int(math.ceil(tn_next - self._tn))
            self._tn = tn_next
            self._n += 1

        if self._tn_prime < self._t:
            picks = self.rng.choice(self._n, size=s, replace=False)
        else:
            picks = np.append(
                self.rng.choice(self._n - 1, size=s - 1, replace=False), self._n - 1
            )
        return self.order[picks]


# =============================================================================
# Consensus loop
# =============================================================================


def iteration_bound(inlier_ratio: float, subset_size: int, confidence: float, max_iterations: int) -> int:
    """
    Number of iterations needed to draw one all-inlier sample with the given
    confidence, capped at max_iterations.
    """
    if inlier_ratio >= 1.0:
        return 1
    if inlier_ratio <= 0.0:
        return max_iterations
    denominator = math.log1p(-(inlier_ratio**subset_size))
    if denominator >= 0.0:
        return max_iterations
    needed = math.ceil(math.log(1.0 - confidence) / denominator)
    return int(min(max(needed, 1), max_iterations))


def create_scorer(method: RobustMethod, threshold: float, subset_size: int):
    if method.uses_median:
        return MedianScorer(threshold, subset_size)
    if method is RobustMethod.MSAC:
        return TruncatedQuadraticScorer(threshold)
    return InlierCountScorer(threshold)


def create_sampler(
    method: RobustMethod,
    n: int,
    subset_size: int,
    max_iterations: int,
    rng: np.random.Generator,
    quality_scores: Optional[Sequence[float]] = None,
):
    if method.requires_quality_scores:
        if quality_scores is None or len(quality_scores) != n:
            raise InvalidConfigurationError(
                f"{method.name} requires {n} quality scores"
            )
        return ProgressiveSampler(quality_scores, subset_size, max_iterations, rng)
    return UniformSampler(n, subset_size, rng)


def run_consensus(
    n: int,
    subset_size: int,
    make_hypothesis: Callable[[np.ndarray], Any],
    compute_residuals: Callable[[Any], np.ndarray],
    scorer,
    sampler,
    confidence: float,
    max_iterations: int,
    progress_delta: float = 0.05,
    on_iteration: Optional[Callable[[int], None]] = None,
    on_progress: Optional[Callable[[float], None]] = None,
) -> ConsensusResult:
    """
    Run the consensus search.

    Args:
        n: Number of entries.
        subset_size: Minimal sample size s.
        make_hypothesis: Builds a model from sample indices. May raise
            EstimationFailedError for degenerate samples, which are skipped.
        compute_residuals: Absolute residuals (n,) of a model on all entries.
        scorer: Scoring strategy.
        sampler: Sampling strategy.
        confidence: Probability of drawing at least one all-inlier sample.
        max_iterations: Hard iteration cap.
        progress_delta: Minimum progress change between progress callbacks.
        on_iteration: Called with the iteration index once per iteration.
        on_progress: Called with progress in [0, 1].

    Returns:
        ConsensusResult of the best valid hypothesis.

    Raises:
        EstimationFailedError: If no hypothesis with at least subset_size
            inliers was found.
    """
    if n < subset_size:
        raise InvalidConfigurationError(f"Need at least {subset_size} entries, got {n}")

    best_model = None
    best_cost = math.inf
    best_inliers = None
    best_residuals = None
    best_threshold = None

    budget = max_iterations
    last_progress = 0.0
    iteration = 0

    while iteration < budget:
        if on_iteration is not None:
            on_iteration(iteration)

        sample = sampler.draw(iteration)
        iteration += 1

        try:
            model = make_hypothesis(sample)
        except EstimationFailedError as e:
            logger.debug("Skipping degenerate sample %s: %s", sample.tolist(), e)
            model = None

        if model is not None:
            residuals = compute_residuals(model)
            inliers, cost = scorer.score(residuals)
            num_inliers = int(np.count_nonzero(inliers))

            if num_inliers >= subset_size and cost < best_cost:
                best_model, best_cost = model, cost
                best_inliers, best_residuals = inliers, residuals
                best_threshold = scorer.threshold
                budget = iteration_bound(num_inliers / n, subset_size, confidence, max_iterations)
                logger.debug(
                    "Iteration %d: new best cost %.6g with %d/%d inliers, budget %d",
                    iteration, cost, num_inliers, n, budget,
                )
                if scorer.should_stop(cost):
                    break

        if on_progress is not None:
            progress = min(iteration / budget, 1.0)
            if progress - last_progress >= progress_delta:
                last_progress = progress
                on_progress(progress)

    if on_progress is not None and last_progress < 1.0:
        on_progress(1.0)

    if best_model is None:
        raise EstimationFailedError(
            f"No valid consensus hypothesis found after {iteration} iterations"
        )

    return ConsensusResult(
        model=best_model,
        inliers_data=InliersData(
            inliers=best_inliers,
            residuals=best_residuals,
            num_inliers=int(np.count_nonzero(best_inliers)),
            threshold=best_threshold,
        ),
        iterations=iteration,
        cost=best_cost,
    )
