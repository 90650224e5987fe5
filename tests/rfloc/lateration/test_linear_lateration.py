"""
Unit tests for closed-form and nonlinear lateration.

Tests cover:
    - Exact recovery in 2D and 3D with both linear formulations
    - Weighting of the inhomogeneous system by distance deviations
    - Accuracy under small range noise
    - Degenerate geometry and invalid inputs
    - Levenberg-Marquardt refinement and its covariance
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from rfloc.errors import EstimationFailedError, InvalidConfigurationError
from rfloc.lateration import (
    min_required_points,
    nonlinear_lateration,
    range_residuals,
    solve_homogeneous_lateration,
    solve_inhomogeneous_lateration,
    solve_linear_lateration,
)


def _ranges(positions, truth):
    return np.linalg.norm(positions - truth, axis=1)


class TestLinearLateration:
    """Test homogeneous and inhomogeneous linear solvers."""

    def test_min_required_points(self):
        assert min_required_points(2) == 3
        assert min_required_points(3) == 4

    @pytest.mark.parametrize("homogeneous", [False, True])
    @pytest.mark.parametrize("dims", [2, 3])
    def test_exact_recovery(self, homogeneous, dims):
        """Noiseless ranges give the true position within 1e-6 m."""
        rng = np.random.default_rng(10 + dims)
        for _ in range(20):
            n_points = rng.integers(dims + 2, 10)
            positions = rng.uniform(-50.0, 50.0, size=(n_points, dims))
            truth = rng.uniform(-50.0, 50.0, size=dims)

            x = solve_linear_lateration(positions, _ranges(positions, truth), homogeneous=homogeneous)

            assert_allclose(x, truth, atol=1e-6)

    def test_minimal_2d_example(self):
        anchors = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])
        truth = np.array([3.0, 4.0])
        assert_allclose(solve_inhomogeneous_lateration(anchors, _ranges(anchors, truth)), truth)
        assert_allclose(solve_homogeneous_lateration(anchors, _ranges(anchors, truth)), truth)

    @pytest.mark.parametrize("homogeneous", [False, True])
    def test_small_noise(self, homogeneous):
        """1 mm range noise keeps the error well below 0.5 m."""
        rng = np.random.default_rng(5)
        positions = rng.uniform(-10.0, 10.0, size=(8, 2))
        truth = np.array([1.5, -2.0])
        distances = _ranges(positions, truth) + rng.normal(0.0, 1e-3, size=8)

        x = solve_linear_lateration(positions, distances, homogeneous=homogeneous)

        assert np.linalg.norm(x - truth) < 0.5

    def test_collinear_points_fail(self):
        positions = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [3.0, 0.0]])
        distances = _ranges(positions, np.array([1.0, 1.0]))
        with pytest.raises(EstimationFailedError):
            solve_inhomogeneous_lateration(positions, distances)

    def test_too_few_points(self):
        with pytest.raises(InvalidConfigurationError, match="At least 3"):
            solve_linear_lateration(np.zeros((2, 2)), np.ones(2))

    def test_invalid_shapes(self):
        with pytest.raises(InvalidConfigurationError):
            solve_linear_lateration(np.zeros((4, 4)), np.ones(4))
        with pytest.raises(InvalidConfigurationError):
            solve_linear_lateration(np.zeros((4, 2)), np.ones(3))


class TestWeightedLinearLateration:
    """Test the inhomogeneous solver weighted by distance deviations."""

    ANCHORS = np.array([[0, 0], [10, 0], [0, 10], [10, 10], [5, 12], [12, 5]], dtype=float)
    TRUTH = np.array([3.0, 4.0])

    def test_exact_with_stds(self):
        distances = _ranges(self.ANCHORS, self.TRUTH)
        x = solve_linear_lateration(self.ANCHORS, distances, distance_stds=np.full(6, 0.5))
        assert_allclose(x, self.TRUTH, atol=1e-6)

    def test_uncertain_range_is_downweighted(self):
        """A 2 m error on a range with a large std barely moves the solution."""
        distances = _ranges(self.ANCHORS, self.TRUTH)
        distances[5] += 2.0
        stds = np.full(6, 0.01)
        stds[5] = 100.0

        unweighted = solve_inhomogeneous_lateration(self.ANCHORS, distances)
        weighted = solve_inhomogeneous_lateration(self.ANCHORS, distances, distance_stds=stds)

        weighted_error = np.linalg.norm(weighted - self.TRUTH)
        assert weighted_error < 1e-3
        assert np.linalg.norm(unweighted - self.TRUTH) > 10 * weighted_error

    def test_homogeneous_ignores_stds(self):
        distances = _ranges(self.ANCHORS, self.TRUTH)
        x = solve_linear_lateration(
            self.ANCHORS, distances, homogeneous=True, distance_stds=np.full(6, 0.5)
        )
        assert_allclose(x, self.TRUTH, atol=1e-6)

    def test_invalid_stds(self):
        distances = _ranges(self.ANCHORS, self.TRUTH)
        with pytest.raises(InvalidConfigurationError, match="positive"):
            solve_inhomogeneous_lateration(self.ANCHORS, distances, distance_stds=np.zeros(6))
        with pytest.raises(InvalidConfigurationError, match="shape"):
            solve_inhomogeneous_lateration(self.ANCHORS, distances, distance_stds=np.ones(5))


class TestNonlinearLateration:
    """Test Levenberg-Marquardt range refinement."""

    def test_refines_from_centroid(self):
        anchors = np.array([[0, 0], [10, 0], [0, 10], [10, 10]], dtype=float)
        truth = np.array([3.0, 4.0])

        result = nonlinear_lateration(anchors, _ranges(anchors, truth), return_covariance=False)

        assert_allclose(result.position, truth, atol=1e-6)
        assert result.covariance is None
        assert_allclose(result.residuals, 0.0, atol=1e-6)

    def test_3d_from_initial_position(self):
        rng = np.random.default_rng(2)
        anchors = rng.uniform(0.0, 20.0, size=(6, 3))
        truth = np.array([5.0, 6.0, 7.0])

        result = nonlinear_lateration(anchors, _ranges(anchors, truth), initial_position=truth + 1.0)

        assert_allclose(result.position, truth, atol=1e-6)

    def test_covariance_from_stds(self):
        """With stds the covariance is (J'WJ)⁻¹ and shrinks with σ."""
        anchors = np.array([[0, 0], [10, 0], [0, 10], [10, 10]], dtype=float)
        truth = np.array([3.0, 4.0])
        d = _ranges(anchors, truth)

        wide = nonlinear_lateration(anchors, d, distance_stds=np.full(4, 1.0), initial_position=truth)
        narrow = nonlinear_lateration(anchors, d, distance_stds=np.full(4, 0.1), initial_position=truth)

        assert_allclose(narrow.covariance, wide.covariance / 100.0, rtol=1e-6)
        assert np.all(np.linalg.eigvalsh(wide.covariance) > 0)

    def test_invalid_stds(self):
        anchors = np.array([[0, 0], [10, 0], [0, 10]], dtype=float)
        with pytest.raises(InvalidConfigurationError):
            nonlinear_lateration(anchors, np.ones(3), distance_stds=np.zeros(3))

    def test_initial_position_shape(self):
        anchors = np.array([[0, 0], [10, 0], [0, 10]], dtype=float)
        with pytest.raises(InvalidConfigurationError):
            nonlinear_lateration(anchors, np.ones(3), initial_position=np.zeros(3))

    def test_range_residuals(self):
        anchors = np.array([[0.0, 0.0], [3.0, 4.0]])
        residuals = range_residuals(np.zeros(2), anchors, np.array([1.0, 4.0]))
        assert_allclose(residuals, [1.0, 1.0])
