"""Unit tests for reading to lateration entry conversion."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from rfloc.fingerprinting import (
    Fingerprint,
    LocatedRadioSource,
    RadioSource,
    RadioSourceWithPower,
    RangingAndRssiReading,
    RangingReading,
    RssiReading,
)
from rfloc.positioning import build_lateration_inputs
from rfloc.positioning.helper import DEFAULT_FALLBACK_DISTANCE_STD, evenly_distributed_scores
from rfloc.rf import WIFI_2_4_GHZ, received_rssi


@pytest.fixture
def sources():
    """Two powered access points and one source without power model."""
    ap1 = RadioSourceWithPower(RadioSource("ap1"), transmitted_power=-50.0, path_loss_exponent=2.0)
    ap2 = RadioSourceWithPower(
        RadioSource("ap2"), transmitted_power=-50.0, transmitted_power_std=1.0,
        path_loss_exponent=1.8,
    )
    plain = RadioSource("plain")
    return [
        LocatedRadioSource(ap1, [0.0, 0.0]),
        LocatedRadioSource(ap2, [10.0, 0.0], position_covariance=np.diag([0.04, 0.04])),
        LocatedRadioSource(plain, [0.0, 10.0]),
    ]


class TestBuildLaterationInputs:
    """Test matching and conversion of readings."""

    def test_rssi_converted_with_source_power_model(self, sources):
        rssi = received_rssi(-50.0, 5.0, WIFI_2_4_GHZ, 1.8)
        fp = Fingerprint((RssiReading(sources[1].radio_source, rssi),))

        inputs = build_lateration_inputs(sources, fp)

        assert len(inputs) == 1
        assert inputs.distances[0] == pytest.approx(5.0)
        assert_allclose(inputs.positions[0], [10.0, 0.0])
        assert inputs.source_indices.tolist() == [1]
        # Transmitted power std propagates to the distance std
        assert inputs.distance_stds[0] == pytest.approx(np.log(10.0) / 18.0 * 5.0)

    def test_fallback_std(self, sources):
        fp = Fingerprint((RangingReading(sources[2].radio_source, 4.0),))
        inputs = build_lateration_inputs(sources, fp)
        assert inputs.distance_stds[0] == DEFAULT_FALLBACK_DISTANCE_STD

        inputs = build_lateration_inputs(sources, fp, fallback_distance_std=0.5)
        assert inputs.distance_stds[0] == 0.5

    def test_rssi_without_power_ignored(self, sources):
        fp = Fingerprint((RssiReading(sources[2].radio_source, -60.0),))
        assert len(build_lateration_inputs(sources, fp)) == 0

    def test_unknown_source_ignored(self, sources):
        fp = Fingerprint((RangingReading(RadioSource("unknown"), 2.0),))
        inputs = build_lateration_inputs(sources, fp)
        assert len(inputs) == 0
        assert inputs.positions.shape == (0, 2)

    def test_ranging_and_rssi_gives_two_entries(self, sources):
        rssi = received_rssi(-50.0, 3.0, WIFI_2_4_GHZ, 2.0)
        fp = Fingerprint((RangingAndRssiReading(sources[0].radio_source, 3.1, rssi, distance_std=0.2),))

        inputs = build_lateration_inputs(sources, fp)

        assert len(inputs) == 2
        assert_allclose(inputs.distances, [3.1, 3.0])
        assert inputs.distance_stds[0] == 0.2
        assert inputs.reading_indices.tolist() == [0, 0]

    def test_position_covariance_in_quadrature(self, sources):
        fp = Fingerprint((RangingReading(sources[1].radio_source, 4.0, distance_std=0.3),))
        inputs = build_lateration_inputs(sources, fp, use_radio_source_position_covariance=True)
        assert inputs.distance_stds[0] == pytest.approx(np.sqrt(0.3**2 + 0.04))

    def test_quality_scores_summed(self, sources):
        fp = Fingerprint((
            RangingReading(sources[0].radio_source, 1.0),
            RangingReading(sources[2].radio_source, 2.0),
        ))
        inputs = build_lateration_inputs(
            sources, fp,
            source_quality_scores=[10.0, 20.0, 30.0],
            fingerprint_reading_quality_scores=[1.0, 2.0],
        )
        assert_allclose(inputs.quality_scores, [11.0, 32.0])

    def test_no_scores_by_default(self, sources):
        fp = Fingerprint((RangingReading(sources[0].radio_source, 1.0),))
        assert build_lateration_inputs(sources, fp).quality_scores is None


class TestEvenlyDistributedScores:
    """Test interleaving of readings from different sources."""

    def test_one_reading_per_source_before_repeats(self):
        source_indices = np.array([0, 0, 0, 1, 2])
        scores = np.array([9.0, 8.0, 7.0, 1.0, 2.0])

        ranked = evenly_distributed_scores(source_indices, scores)
        order = np.argsort(-ranked)

        assert order.tolist() == [0, 4, 3, 1, 2]
        assert sorted(ranked.tolist()) == [1.0, 2.0, 3.0, 4.0, 5.0]
