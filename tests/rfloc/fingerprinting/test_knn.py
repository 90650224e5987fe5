"""Unit tests for k-nearest fingerprint search in signal space."""

import numpy as np
import pytest

from rfloc.errors import InvalidConfigurationError
from rfloc.fingerprinting import (
    Fingerprint,
    LocatedFingerprint,
    RadioSource,
    RadioSourceKNearestFinder,
    RangingReading,
    RssiReading,
    find_k_nearest_to,
    find_k_nearest_to_with_distances,
    find_nearest_to,
    knn_localize,
    squared_signal_distance,
    weighted_knn_position,
)
from rfloc.sim import generate_access_points, generate_calibration_grid, generate_fingerprint

AP1, AP2, AP3 = RadioSource("ap1"), RadioSource("ap2"), RadioSource("ap3")


def _fp(values, position=None, sources=(AP1, AP2, AP3)):
    readings = tuple(RssiReading(s, v) for s, v in zip(sources, values))
    if position is None:
        return Fingerprint(readings)
    return LocatedFingerprint(readings, position=np.asarray(position, dtype=float))


@pytest.fixture
def calibration():
    """Four located fingerprints with distinct RSSI patterns."""
    return [
        _fp([-50, -60, -70], [0.0, 0.0]),
        _fp([-60, -50, -80], [10.0, 0.0]),
        _fp([-70, -80, -50], [10.0, 10.0]),
        _fp([-55, -65, -75], [0.0, 10.0]),
    ]


class TestSquaredSignalDistance:
    """Test the signal-space distance."""

    def test_shared_sources_only(self):
        a = Fingerprint((RssiReading(AP1, -50.0), RssiReading(AP2, -60.0)))
        b = Fingerprint((RssiReading(AP1, -53.0), RssiReading(AP3, -40.0)))
        assert squared_signal_distance(a, b) == pytest.approx(9.0)

    def test_empty_is_infinite(self):
        assert squared_signal_distance(Fingerprint(), _fp([-50, -60, -70])) == np.inf
        assert squared_signal_distance(_fp([-50, -60, -70]), Fingerprint()) == np.inf

    def test_no_shared_source_is_infinite(self):
        a = Fingerprint((RssiReading(AP1, -50.0),))
        b = Fingerprint((RssiReading(AP2, -50.0),))
        assert squared_signal_distance(a, b) == np.inf

    def test_ranging_readings_compare_distances(self):
        a = Fingerprint((RangingReading(AP1, 2.0),))
        b = Fingerprint((RangingReading(AP1, 5.0),))
        assert squared_signal_distance(a, b) == pytest.approx(9.0)

    def test_rssi_and_ranging_not_comparable(self):
        a = Fingerprint((RssiReading(AP1, -50.0),))
        b = Fingerprint((RangingReading(AP1, 5.0),))
        assert squared_signal_distance(a, b) == np.inf

    def test_first_candidate_reading_per_source(self):
        a = Fingerprint((RssiReading(AP1, -50.0),))
        b = Fingerprint((RssiReading(AP1, -52.0), RssiReading(AP1, -90.0)))
        assert squared_signal_distance(a, b) == pytest.approx(4.0)


class TestFindKNearest:
    """Test ordering and completeness of the KNN search."""

    def test_nearest_matches_exact_entry(self, calibration):
        query = _fp([-70, -80, -50])
        nearest = find_nearest_to(query, calibration)
        assert nearest is calibration[2]

    def test_sorted_ascending(self, calibration):
        query = _fp([-52, -62, -72])
        neighbours, d2 = find_k_nearest_to_with_distances(query, calibration, 4)
        assert len(neighbours) == 4
        assert np.all(np.diff(d2) >= 0)
        for n, d in zip(neighbours, d2):
            assert squared_signal_distance(query, n) == pytest.approx(d)

    def test_k_equal_m_returns_all(self, calibration):
        neighbours = find_k_nearest_to(_fp([-60, -60, -60]), calibration, len(calibration))
        assert {id(n) for n in neighbours} == {id(c) for c in calibration}

    def test_ties_keep_calibration_order(self):
        calibration = [_fp([-50, -50, -50], [float(i), 0.0]) for i in range(5)]
        neighbours = find_k_nearest_to(_fp([-50, -50, -50]), calibration, 3)
        assert neighbours == calibration[:3]

    def test_unknown_query_still_returns_k(self, calibration):
        """Incomparable candidates sit at +inf but still count toward k."""
        query = Fingerprint((RssiReading(RadioSource("other"), -40.0),))
        neighbours, d2 = find_k_nearest_to_with_distances(query, calibration, 2)
        assert len(neighbours) == 2
        assert np.all(np.isinf(d2))

    def test_invalid_arguments(self, calibration):
        query = _fp([-50, -60, -70])
        with pytest.raises(InvalidConfigurationError):
            find_k_nearest_to(query, calibration, 0)
        with pytest.raises(InvalidConfigurationError):
            find_k_nearest_to(query, calibration, 5)
        with pytest.raises(InvalidConfigurationError):
            find_k_nearest_to(query, [], 1)
        with pytest.raises(InvalidConfigurationError):
            find_k_nearest_to(None, calibration, 1)

    @pytest.mark.parametrize("k", [1.5, 2.0, "2", True])
    def test_non_integer_k(self, calibration, k):
        with pytest.raises(InvalidConfigurationError, match="integer"):
            find_k_nearest_to(_fp([-50, -60, -70]), calibration, k)

    def test_numpy_integer_k(self, calibration):
        query = _fp([-50, -60, -70])
        expected = find_k_nearest_to(query, calibration, 2)
        assert find_k_nearest_to(query, calibration, np.int64(2)) == expected


class TestRadioSourceKNearestFinder:
    """Test that the bound finder agrees with the module functions."""

    def test_instance_and_module_forms_agree(self, calibration):
        finder = RadioSourceKNearestFinder(calibration)
        query = _fp([-58, -55, -78])
        assert len(finder) == 4
        assert finder.find_nearest_to(query) is find_nearest_to(query, calibration)
        assert finder.find_k_nearest_to(query, 3) == find_k_nearest_to(query, calibration, 3)
        _, d_instance = finder.find_k_nearest_to_with_distances(query, 3)
        _, d_module = find_k_nearest_to_with_distances(query, calibration, 3)
        np.testing.assert_allclose(d_instance, d_module)

    def test_empty_calibration_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            RadioSourceKNearestFinder([])


class TestWeightedPosition:
    """Test inverse-distance weighting of neighbour positions."""

    def test_exact_match_dominates(self, calibration):
        x = weighted_knn_position(calibration[:2], np.array([0.0, 100.0]))
        np.testing.assert_allclose(x, calibration[0].position, atol=1e-4)

    def test_equal_distances_average(self, calibration):
        x = weighted_knn_position(calibration[:2], np.array([4.0, 4.0]))
        np.testing.assert_allclose(x, [5.0, 0.0])

    def test_all_infinite_falls_back_to_mean(self, calibration):
        x = weighted_knn_position(calibration, np.full(4, np.inf))
        np.testing.assert_allclose(x, [5.0, 5.0])

    def test_localize_on_simulated_grid(self):
        """Noiseless query at a grid point is located at that point."""
        rng = np.random.default_rng(3)
        aps = generate_access_points(6, (20.0, 20.0), rng)
        calibration = generate_calibration_grid(aps, (20.0, 20.0), 2.0)
        truth = np.array([8.0, 14.0])
        query = Fingerprint(tuple(generate_fingerprint(truth, aps)))
        np.testing.assert_allclose(knn_localize(query, calibration, k=3), truth, atol=1e-3)
