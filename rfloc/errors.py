"""Exception hierarchy for position estimators.

Estimators raise these types from their setters and from ``estimate()``.
Low-level numeric helpers (path-loss conversions, least-squares solvers)
raise plain ``ValueError`` instead.
"""


class PositioningError(Exception):
    """Base class for all estimator errors."""


class InvalidConfigurationError(PositioningError, ValueError):
    """A constructor or setter argument is missing or out of range.

    Raised before any attribute is modified, so the estimator keeps its
    previous configuration.
    """


class LockedError(PositioningError):
    """Configuration was mutated, or estimate() re-entered, while estimating."""


class NotReadyError(PositioningError):
    """estimate() was called without enough sources or readings."""


class EstimationFailedError(PositioningError):
    """No valid position could be computed.

    Raised when the consensus search finds no valid hypothesis or when a
    linear system is singular. Result fields of the estimator are left
    untouched.
    """
