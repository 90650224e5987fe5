"""Unit tests for confidence-scaled position accuracy."""

import numpy as np
import pytest
from scipy import stats

from rfloc.positioning import Accuracy
from rfloc.positioning.accuracy import DEFAULT_CONFIDENCE


class TestAccuracy:
    """Test semi-axes and confidence/factor conversions."""

    def test_one_sigma_in_1d(self):
        acc = Accuracy(np.array([[4.0]]))
        assert acc.confidence == DEFAULT_CONFIDENCE
        assert acc.standard_deviation_factor == pytest.approx(1.0, abs=1e-3)
        assert acc.average_accuracy == pytest.approx(2.0, abs=1e-2)

    def test_semi_axes_2d(self):
        acc = Accuracy(np.diag([4.0, 1.0]), confidence=0.95)
        k = np.sqrt(stats.chi2.ppf(0.95, 2))
        assert acc.standard_deviation_factor == pytest.approx(k)
        assert acc.smallest_accuracy == pytest.approx(k * 1.0)
        assert acc.largest_accuracy == pytest.approx(k * 2.0)
        assert acc.average_accuracy == pytest.approx(k * 1.5)
        assert acc.dimensions == 2

    def test_rotated_covariance(self):
        """Semi-axes depend on eigenvalues only."""
        theta = 0.3
        R = np.array([[np.cos(theta), -np.sin(theta)], [np.sin(theta), np.cos(theta)]])
        cov = R @ np.diag([9.0, 1.0]) @ R.T
        acc = Accuracy(cov, confidence=0.5)
        k = acc.standard_deviation_factor
        np.testing.assert_allclose(acc.semi_axes, [k * 1.0, k * 3.0])

    def test_factor_setter_updates_confidence(self):
        acc = Accuracy(np.eye(3))
        acc.standard_deviation_factor = 2.0
        assert acc.confidence == pytest.approx(stats.chi2.cdf(4.0, 3))
        acc.confidence = acc.confidence
        assert acc.standard_deviation_factor == pytest.approx(2.0)

    def test_invalid_arguments(self):
        with pytest.raises(ValueError, match="Confidence"):
            Accuracy(np.eye(2), confidence=1.0)
        with pytest.raises(ValueError, match="square"):
            Accuracy(np.ones((2, 3)))
        with pytest.raises(ValueError, match="symmetric"):
            Accuracy(np.array([[1.0, 0.5], [0.0, 1.0]]))
        with pytest.raises(ValueError):
            Accuracy(np.eye(2)).standard_deviation_factor = 0.0
