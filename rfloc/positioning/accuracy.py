"""
Position accuracy from a covariance matrix.

For a d-dimensional Gaussian position error with covariance P, the region
containing the true position with probability c is the ellipsoid

    (x - x̂)' P⁻¹ (x - x̂) ≤ χ²_d(c)

whose semi-axes are k·sqrt(λᵢ), with λᵢ the eigenvalues of P and
k = sqrt(χ²_d(c)) the number of standard deviations for confidence c.
The average accuracy is the mean semi-axis.
"""

from typing import Optional

import numpy as np
from scipy import stats

DEFAULT_CONFIDENCE = 0.6827  # one standard deviation in 1D


class Accuracy:
    """
    Accuracy at a confidence level derived from a position covariance.

    Example:
        >>> acc = Accuracy(np.diag([4.0, 1.0]), confidence=0.95)
        >>> acc.standard_deviation_factor  # sqrt(chi2.ppf(0.95, 2))
        2.447...
        >>> acc.smallest_accuracy, acc.largest_accuracy
    """

    def __init__(self, covariance: np.ndarray, confidence: float = DEFAULT_CONFIDENCE):
        covariance = np.asarray(covariance, dtype=float)
        if covariance.ndim != 2 or covariance.shape[0] != covariance.shape[1]:
            raise ValueError(f"covariance must be square, got shape {covariance.shape}")
        if not np.allclose(covariance, covariance.T, atol=1e-12, rtol=1e-9):
            raise ValueError("covariance must be symmetric")
        self._covariance = covariance
        # Clip round-off negatives of PSD matrices
        self._eigenvalues = np.clip(np.linalg.eigvalsh(covariance), 0.0, None)
        self._confidence: Optional[float] = None
        self._factor: Optional[float] = None
        self.confidence = confidence

    @property
    def covariance(self) -> np.ndarray:
        return self._covariance

    @property
    def dimensions(self) -> int:
        return self._covariance.shape[0]

    @property
    def confidence(self) -> float:
        return self._confidence

    @confidence.setter
    def confidence(self, value: float) -> None:
        if not 0 < value < 1:
            raise ValueError(f"Confidence must be in (0, 1), got {value}")
        self._confidence = float(value)
        self._factor = float(np.sqrt(stats.chi2.ppf(value, self.dimensions)))

    @property
    def standard_deviation_factor(self) -> float:
        """Number of standard deviations k = sqrt(χ²_d(confidence))."""
        return self._factor

    @standard_deviation_factor.setter
    def standard_deviation_factor(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"Standard deviation factor must be positive, got {value}")
        self._factor = float(value)
        self._confidence = float(stats.chi2.cdf(value**2, self.dimensions))

    @property
    def semi_axes(self) -> np.ndarray:
        """Ellipsoid semi-axes k·sqrt(λᵢ), ascending."""
        return self._factor * np.sqrt(self._eigenvalues)

    @property
    def smallest_accuracy(self) -> float:
        return float(self.semi_axes[0])

    @property
    def largest_accuracy(self) -> float:
        return float(self.semi_axes[-1])

    @property
    def average_accuracy(self) -> float:
        return float(np.mean(self.semi_axes))

    def __repr__(self) -> str:
        return (
            f"Accuracy(confidence={self._confidence:.4f}, "
            f"average={self.average_accuracy:.4g}, dims={self.dimensions})"
        )
