"""
Unit tests for the linear and nonlinear position estimators.

Tests cover:
    - Exact positioning from RSSI and ranging readings in 2D and 3D
    - Estimator life cycle (CONFIGURING → READY → ESTIMATING → SUCCEEDED/FAILED)
    - Locking of setters while estimating
    - Listener events and result preservation on failure
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from rfloc.errors import (
    EstimationFailedError,
    InvalidConfigurationError,
    LockedError,
    NotReadyError,
)
from rfloc.fingerprinting import (
    Fingerprint,
    LocatedRadioSource,
    RadioSource,
    RangingAndRssiReading,
    RangingReading,
    RssiReading,
)
from rfloc.positioning import (
    EstimatorEvent,
    EstimatorState,
    LinearPositionEstimator,
    NonLinearPositionEstimator,
)
from rfloc.positioning.helper import build_lateration_inputs
from rfloc.sim import generate_access_points, generate_fingerprint


def _scenario(n_aps=6, dims=2, seed=0):
    rng = np.random.default_rng(seed)
    area = (50.0,) * dims
    aps = generate_access_points(n_aps, area, rng, min_exponent=1.6, max_exponent=2.0)
    truth = rng.uniform(0.0, 50.0, size=dims)
    return aps, Fingerprint(tuple(generate_fingerprint(truth, aps))), truth


def _ranging_scenario(positions, truth):
    sources = [LocatedRadioSource(RadioSource(f"s{i}"), p) for i, p in enumerate(positions)]
    readings = tuple(
        RangingReading(s.radio_source, float(np.linalg.norm(s.position - truth))) for s in sources
    )
    return sources, Fingerprint(readings)


def _collinear_scenario():
    positions = np.array([[0.0, 0.0], [5.0, 0.0], [10.0, 0.0]])
    return _ranging_scenario(positions, np.array([3.0, 4.0]))


def _two_source_scenario(repeat_readings=False):
    """Two located sources whose readings each yield two lateration entries."""
    aps = generate_access_points(2, (10.0, 10.0), np.random.default_rng(0))
    truth = np.array([3.0, 4.0])
    rssi_readings = generate_fingerprint(truth, aps)
    if repeat_readings:
        return aps, Fingerprint(tuple(rssi_readings) * 2)
    readings = tuple(
        RangingAndRssiReading(ap.radio_source, float(np.linalg.norm(ap.position - truth)), r.rssi)
        for ap, r in zip(aps, rssi_readings)
    )
    return aps, Fingerprint(readings)


class Recorder:
    """Listener recording events and their values."""

    def __init__(self):
        self.events = []

    def __call__(self, estimator, event, value=None):
        self.events.append((event, estimator.state))

    def count(self, event):
        return sum(1 for e, _ in self.events if e is event)


class TestLinearPositionEstimator:
    """Test closed-form positioning."""

    @pytest.mark.parametrize("homogeneous", [False, True])
    def test_exact_rssi_2d(self, homogeneous):
        for seed in range(5):
            aps, fp, truth = _scenario(seed=seed)
            estimator = LinearPositionEstimator(aps, fp, homogeneous_linear_solver_used=homogeneous)

            position = estimator.estimate()

            assert_allclose(position, truth, atol=1e-6)
            assert estimator.estimated_position is position
            assert estimator.covariance is None
            assert estimator.accuracy() is None

    def test_exact_ranging_3d(self):
        positions = np.array([[0, 0, 0], [10, 0, 0], [0, 10, 0], [0, 0, 10], [10, 10, 5]], dtype=float)
        truth = np.array([2.0, 3.0, 4.0])
        sources, fp = _ranging_scenario(positions, truth)

        estimator = LinearPositionEstimator(sources, fp)

        assert estimator.dimensions == 3
        assert estimator.min_required_sources == 4
        assert_allclose(estimator.estimate(), truth, atol=1e-6)

    def test_small_rssi_noise(self):
        """1e-3 dB shadowing keeps the error under 0.5 m."""
        rng = np.random.default_rng(4)
        aps = generate_access_points(8, (20.0, 20.0), rng, min_exponent=1.6, max_exponent=2.0)
        truth = np.array([12.0, 7.0])
        fp = Fingerprint(tuple(generate_fingerprint(truth, aps, rng, shadowing_std=1e-3)))

        position = LinearPositionEstimator(aps, fp).estimate()

        assert np.linalg.norm(position - truth) < 0.5

    def test_readings_may_reference_located_sources(self):
        aps, _, truth = _scenario()
        readings = generate_fingerprint(truth, aps)
        fp = Fingerprint(tuple(RssiReading(ap, r.rssi) for ap, r in zip(aps, readings)))
        assert_allclose(LinearPositionEstimator(aps, fp).estimate(), truth, atol=1e-6)


class TestEstimatorLifeCycle:
    """Test readiness, state and configuration checks."""

    def test_not_ready_without_configuration(self):
        estimator = LinearPositionEstimator()
        assert not estimator.is_ready
        assert estimator.state is EstimatorState.CONFIGURING
        with pytest.raises(NotReadyError):
            estimator.estimate()

    def test_not_ready_with_too_few_readings(self):
        aps, fp, _ = _scenario()
        estimator = LinearPositionEstimator(aps, Fingerprint(fp.readings[:2]))
        assert not estimator.is_ready
        with pytest.raises(NotReadyError):
            estimator.estimate()

    @pytest.mark.parametrize("repeat_readings", [False, True])
    def test_not_ready_with_two_distinct_sources(self, repeat_readings):
        """Four entries from only two sources are not enough in 2D."""
        aps, fp = _two_source_scenario(repeat_readings)
        recorder = Recorder()
        estimator = LinearPositionEstimator(aps, fp, listener=recorder)

        assert len(build_lateration_inputs(aps, fp)) == 4
        assert not estimator.is_ready
        assert estimator.state is EstimatorState.CONFIGURING
        with pytest.raises(NotReadyError):
            estimator.estimate()
        assert recorder.events == []

    def test_state_transitions(self):
        aps, fp, _ = _scenario()
        estimator = LinearPositionEstimator(aps)
        assert estimator.state is EstimatorState.CONFIGURING

        estimator.fingerprint = fp
        assert estimator.state is EstimatorState.READY

        estimator.estimate()
        assert estimator.state is EstimatorState.SUCCEEDED
        assert estimator.is_ready

        estimator.homogeneous_linear_solver_used = True
        assert estimator.state is EstimatorState.READY

    def test_failure_state_and_results_preserved(self):
        aps, fp, _ = _scenario()
        estimator = LinearPositionEstimator(aps, fp)
        first = estimator.estimate().copy()

        sources, collinear = _collinear_scenario()
        estimator.sources = sources
        estimator.fingerprint = collinear
        with pytest.raises(EstimationFailedError):
            estimator.estimate()

        assert estimator.state is EstimatorState.FAILED
        assert not estimator.is_locked
        assert_allclose(estimator.estimated_position, first)

    def test_invalid_configuration(self):
        estimator = LinearPositionEstimator()
        with pytest.raises(InvalidConfigurationError):
            estimator.sources = []
        with pytest.raises(InvalidConfigurationError):
            estimator.sources = [RadioSource("not located")]
        with pytest.raises(InvalidConfigurationError, match="mix"):
            estimator.sources = [
                LocatedRadioSource(RadioSource("a"), np.zeros(2)),
                LocatedRadioSource(RadioSource("b"), np.zeros(3)),
            ]
        with pytest.raises(InvalidConfigurationError):
            estimator.fingerprint = None
        with pytest.raises(InvalidConfigurationError):
            estimator.listener = "not callable"
        with pytest.raises(InvalidConfigurationError):
            estimator.fallback_distance_std = 0.0
        assert estimator.sources is None

    def test_fingerprint_accepts_reading_list(self):
        aps, fp, truth = _scenario()
        estimator = LinearPositionEstimator(aps, list(fp.readings))
        assert isinstance(estimator.fingerprint, Fingerprint)
        assert_allclose(estimator.estimate(), truth, atol=1e-6)


class TestListenerAndLocking:
    """Test START/END events and setter locking during estimation."""

    def test_start_and_end_once(self):
        aps, fp, _ = _scenario()
        recorder = Recorder()

        LinearPositionEstimator(aps, fp, listener=recorder).estimate()

        assert recorder.count(EstimatorEvent.START) == 1
        assert recorder.count(EstimatorEvent.END) == 1
        assert recorder.events[0] == (EstimatorEvent.START, EstimatorState.ESTIMATING)
        assert recorder.events[-1][0] is EstimatorEvent.END

    def test_start_and_end_on_failure(self):
        sources, fp = _collinear_scenario()
        recorder = Recorder()
        estimator = LinearPositionEstimator(sources, fp, listener=recorder)

        with pytest.raises(EstimationFailedError):
            estimator.estimate()

        assert recorder.count(EstimatorEvent.START) == 1
        assert recorder.count(EstimatorEvent.END) == 1

    def test_setters_locked_during_estimation(self):
        aps, fp, _ = _scenario()
        blocked = []

        def listener(estimator, event, value=None):
            for attempt in (
                lambda: setattr(estimator, "sources", aps),
                lambda: setattr(estimator, "fingerprint", fp),
                lambda: setattr(estimator, "homogeneous_linear_solver_used", True),
                lambda: setattr(estimator, "listener", None),
                estimator.estimate,
            ):
                try:
                    attempt()
                except LockedError:
                    blocked.append(event)

        estimator = LinearPositionEstimator(aps, fp, listener=listener)
        estimator.estimate()

        assert blocked == [EstimatorEvent.START] * 5 + [EstimatorEvent.END] * 5
        assert not estimator.is_locked
        assert estimator.listener is listener
        assert not estimator.homogeneous_linear_solver_used

    def test_unlocked_after_listener_error(self):
        aps, fp, _ = _scenario()

        def listener(estimator, event, value=None):
            if event is EstimatorEvent.START:
                raise RuntimeError("listener failure")

        estimator = LinearPositionEstimator(aps, fp, listener=listener)
        with pytest.raises(RuntimeError):
            estimator.estimate()

        assert not estimator.is_locked
        assert estimator.state is EstimatorState.FAILED
        assert estimator.estimated_position is None


class TestNonLinearPositionEstimator:
    """Test Levenberg-Marquardt positioning with covariance."""

    def test_exact_with_covariance(self):
        aps, fp, truth = _scenario(n_aps=8, seed=3)
        estimator = NonLinearPositionEstimator(aps, fp)

        position = estimator.estimate()

        assert_allclose(position, truth, atol=1e-6)
        assert estimator.covariance.shape == (2, 2)
        accuracy = estimator.accuracy(0.95)
        assert accuracy.confidence == 0.95
        assert accuracy.average_accuracy > 0

    def test_initial_position(self):
        aps, fp, truth = _scenario(n_aps=8, seed=4)
        estimator = NonLinearPositionEstimator(aps, fp, initial_position=truth + 2.0)
        assert_allclose(estimator.estimate(), truth, atol=1e-6)

    def test_initial_position_dimension_mismatch(self):
        """The mismatch is rejected before estimation starts."""
        aps, fp, _ = _scenario()
        recorder = Recorder()
        estimator = NonLinearPositionEstimator(
            aps, fp, initial_position=np.zeros(3), listener=recorder
        )
        with pytest.raises(InvalidConfigurationError, match="initial_position"):
            estimator.estimate()
        assert recorder.events == []
        assert estimator.state is EstimatorState.READY
        assert not estimator.is_locked

    def test_covariance_grows_with_noise_model(self):
        """Larger distance stds give a larger covariance."""
        sources, fp = _ranging_scenario(
            np.array([[0, 0], [10, 0], [0, 10], [10, 10]], dtype=float), np.array([3.0, 4.0])
        )
        tight = NonLinearPositionEstimator(sources, fp, fallback_distance_std=0.01)
        loose = NonLinearPositionEstimator(sources, fp, fallback_distance_std=1.0)
        tight.estimate()
        loose.estimate()
        assert np.trace(loose.covariance) > np.trace(tight.covariance)
