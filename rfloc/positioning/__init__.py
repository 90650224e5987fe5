"""
Position estimators.

Submodules:
    base: Estimator life cycle, listener events and locking
    helper: Reading to distance conversion and quality score handling
    accuracy: Confidence-scaled accuracy from a position covariance
    linear: Closed-form linear estimator
    nonlinear: Levenberg-Marquardt estimator with covariance
    robust: Consensus estimator (RANSAC, LMedS, MSAC, PROSAC, PROMedS)
"""

from rfloc.lateration.consensus import InliersData, RobustMethod
from rfloc.positioning.accuracy import Accuracy
from rfloc.positioning.base import BasePositionEstimator, EstimatorEvent, EstimatorState
from rfloc.positioning.helper import LaterationInputs, build_lateration_inputs
from rfloc.positioning.linear import LinearPositionEstimator
from rfloc.positioning.nonlinear import NonLinearPositionEstimator
from rfloc.positioning.robust import RobustPositionEstimator

__all__ = [
    "Accuracy",
    "BasePositionEstimator",
    "EstimatorEvent",
    "EstimatorState",
    "LaterationInputs",
    "build_lateration_inputs",
    "LinearPositionEstimator",
    "NonLinearPositionEstimator",
    "RobustPositionEstimator",
    "RobustMethod",
    "InliersData",
]
