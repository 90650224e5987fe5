"""
Common machinery of the position estimators.

Every estimator follows the same life cycle:

    CONFIGURING ──(sources + fingerprint)──▶ READY ──estimate()──▶ ESTIMATING
                                               ▲                       │
                                               └── SUCCEEDED / FAILED ◀┘

A configuration is ready once readings of at least dimensions + 1 distinct
located sources can be turned into distances. Settings that depend on each
other (e.g. initial position and source dimensions) are cross-checked before
ESTIMATING is entered. Configuration setters raise LockedError while
ESTIMATING. The lock is taken on entry to estimate() and released on every
exit path, including errors raised by listeners. A listener is any callable

    listener(estimator, event, value=None)

receiving START and END exactly once per estimate() call, plus
NEXT_ITERATION (value = iteration index) and PROGRESS_CHANGE
(value = progress in [0, 1]) events from robust estimators.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from rfloc.errors import InvalidConfigurationError, LockedError, NotReadyError
from rfloc.fingerprinting.types import Fingerprint, LocatedRadioSource, as_fingerprint
from rfloc.positioning.accuracy import DEFAULT_CONFIDENCE, Accuracy
from rfloc.positioning.helper import (
    DEFAULT_FALLBACK_DISTANCE_STD,
    LaterationInputs,
    build_lateration_inputs,
)

logger = logging.getLogger(__name__)


class EstimatorState(Enum):
    """Life-cycle state of a position estimator."""

    CONFIGURING = "configuring"
    READY = "ready"
    ESTIMATING = "estimating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class EstimatorEvent(Enum):
    """Events dispatched to the estimator listener."""

    START = "start"
    END = "end"
    NEXT_ITERATION = "next_iteration"
    PROGRESS_CHANGE = "progress_change"


Listener = Callable[..., None]


class BasePositionEstimator(ABC):
    """
    Base class handling configuration, locking, listeners and results.

    Subclasses implement ``_estimate(inputs)`` returning
    ``(position, covariance)``; the base class stores them only when the
    call succeeds.
    """

    def __init__(
        self,
        sources: Optional[Sequence[LocatedRadioSource]] = None,
        fingerprint: Optional[Fingerprint] = None,
        listener: Optional[Listener] = None,
        fallback_distance_std: float = DEFAULT_FALLBACK_DISTANCE_STD,
        use_radio_source_position_covariance: bool = False,
    ):
        self._locked = False
        self._outcome: Optional[EstimatorState] = None

        self._sources: Optional[List[LocatedRadioSource]] = None
        self._fingerprint: Optional[Fingerprint] = None
        self._listener: Optional[Listener] = None
        self._fallback_distance_std = DEFAULT_FALLBACK_DISTANCE_STD
        self._use_radio_source_position_covariance = False

        self._estimated_position: Optional[np.ndarray] = None
        self._covariance: Optional[np.ndarray] = None

        if sources is not None:
            self.sources = sources
        if fingerprint is not None:
            self.fingerprint = fingerprint
        if listener is not None:
            self.listener = listener
        self.fallback_distance_std = fallback_distance_std
        self.use_radio_source_position_covariance = use_radio_source_position_covariance

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _check_unlocked(self) -> None:
        if self._locked:
            raise LockedError(f"{type(self).__name__} is locked while estimating")

    def _configure(self, name: str, value) -> None:
        """Set a configuration attribute after the lock check."""
        self._check_unlocked()
        setattr(self, name, value)
        self._outcome = None

    @property
    def is_locked(self) -> bool:
        return self._locked

    def _check_configuration(self) -> None:
        """Cross-check settings before the lock is taken. Subclasses extend."""

    def _check_initial_position(self, initial_position: Optional[np.ndarray]) -> None:
        if initial_position is not None and len(initial_position) != self.dimensions:
            raise InvalidConfigurationError(
                f"initial_position has {len(initial_position)} dimensions, "
                f"sources have {self.dimensions}"
            )

    @contextmanager
    def _estimation(self) -> Iterator[None]:
        self._check_unlocked()
        if not self.is_ready:
            raise NotReadyError(f"{type(self).__name__} is not ready")
        self._check_configuration()

        self._locked = True
        try:
            try:
                self._notify(EstimatorEvent.START)
                yield
                self._outcome = EstimatorState.SUCCEEDED
            except BaseException:
                self._outcome = EstimatorState.FAILED
                raise
            finally:
                self._notify(EstimatorEvent.END)
        finally:
            self._locked = False

    def _notify(self, event: EstimatorEvent, value=None) -> None:
        if self._listener is None:
            return
        if value is None:
            self._listener(self, event)
        else:
            self._listener(self, event, value)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def sources(self) -> Optional[List[LocatedRadioSource]]:
        """Located radio sources (all 2D or all 3D)."""
        return self._sources

    @sources.setter
    def sources(self, value: Sequence[LocatedRadioSource]) -> None:
        self._check_unlocked()
        if value is None or len(value) == 0:
            raise InvalidConfigurationError("sources must not be None or empty")
        for source in value:
            if not isinstance(source, LocatedRadioSource):
                raise InvalidConfigurationError(
                    f"sources must be LocatedRadioSource instances, got {type(source)}"
                )
        dims = {s.dimensions for s in value}
        if len(dims) != 1:
            raise InvalidConfigurationError(f"sources mix dimensions {sorted(dims)}")
        self._configure("_sources", list(value))

    @property
    def fingerprint(self) -> Optional[Fingerprint]:
        """Readings to position."""
        return self._fingerprint

    @fingerprint.setter
    def fingerprint(self, value) -> None:
        self._check_unlocked()
        if value is None:
            raise InvalidConfigurationError("fingerprint must not be None")
        self._configure("_fingerprint", as_fingerprint(value))

    @property
    def listener(self) -> Optional[Listener]:
        return self._listener

    @listener.setter
    def listener(self, value: Optional[Listener]) -> None:
        self._check_unlocked()
        if value is not None and not callable(value):
            raise InvalidConfigurationError("listener must be callable")
        self._configure("_listener", value)

    @property
    def fallback_distance_std(self) -> float:
        """Distance standard deviation used when a reading has no uncertainty."""
        return self._fallback_distance_std

    @fallback_distance_std.setter
    def fallback_distance_std(self, value: float) -> None:
        self._check_unlocked()
        if not value > 0:
            raise InvalidConfigurationError(f"fallback_distance_std must be positive, got {value}")
        self._configure("_fallback_distance_std", float(value))

    @property
    def use_radio_source_position_covariance(self) -> bool:
        return self._use_radio_source_position_covariance

    @use_radio_source_position_covariance.setter
    def use_radio_source_position_covariance(self, value: bool) -> None:
        self._configure("_use_radio_source_position_covariance", bool(value))

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    @property
    def dimensions(self) -> Optional[int]:
        """Position dimension inferred from the sources, or None."""
        if not self._sources:
            return None
        return self._sources[0].dimensions

    @property
    def min_required_sources(self) -> Optional[int]:
        """dimensions + 1 (3 for 2D, 4 for 3D), or None without sources."""
        dims = self.dimensions
        return None if dims is None else dims + 1

    def _build_inputs(self) -> LaterationInputs:
        return build_lateration_inputs(
            self._sources,
            self._fingerprint,
            fallback_distance_std=self._fallback_distance_std,
            use_radio_source_position_covariance=self._use_radio_source_position_covariance,
        )

    def _has_enough_sources(self, inputs: LaterationInputs) -> bool:
        """At least min_required_sources distinct sources yield entries."""
        return len(np.unique(inputs.source_indices)) >= self.min_required_sources

    @property
    def is_ready(self) -> bool:
        """True when enough distinct located sources have usable readings."""
        if self._sources is None or self._fingerprint is None:
            return False
        return self._has_enough_sources(self._build_inputs())

    @property
    def state(self) -> EstimatorState:
        if self._locked:
            return EstimatorState.ESTIMATING
        if self._outcome is not None:
            return self._outcome
        return EstimatorState.READY if self.is_ready else EstimatorState.CONFIGURING

    # ------------------------------------------------------------------
    # Estimation and results
    # ------------------------------------------------------------------

    def estimate(self) -> np.ndarray:
        """
        Estimate the receiver position.

        Returns:
            Estimated position, shape (2,) or (3,).

        Raises:
            LockedError: If called re-entrantly.
            NotReadyError: If the configuration is incomplete.
            EstimationFailedError: If no position could be computed.
        """
        with self._estimation():
            inputs = self._build_inputs()
            position, covariance = self._estimate(inputs)
            self._estimated_position = position
            self._covariance = covariance
            logger.debug("%s estimated position %s", type(self).__name__, position)
        return self._estimated_position

    @abstractmethod
    def _estimate(self, inputs: LaterationInputs) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """Compute (position, covariance) from lateration entries."""

    @property
    def estimated_position(self) -> Optional[np.ndarray]:
        return self._estimated_position

    @property
    def covariance(self) -> Optional[np.ndarray]:
        """Position covariance of the last successful estimate, if computed."""
        return self._covariance

    def accuracy(self, confidence: float = DEFAULT_CONFIDENCE) -> Optional[Accuracy]:
        """Accuracy of the last estimate at a confidence level, or None."""
        if self._covariance is None:
            return None
        return Accuracy(self._covariance, confidence)
