"""Tests for monotonic point extraction."""

import math

import numpy as np
import pytest

from run_analytics.models import RawStreamSample, Stream
from run_analytics.streams.sanitizer import sanitize


def _samples(rows):
    return [
        RawStreamSample(distance_m=d, elapsed_s=t, heart_rate_bpm=hr, altitude_m=alt)
        for d, t, hr, alt in rows
    ]


@pytest.mark.unit
class TestSanitize:
    def test_drops_backward_and_duplicate_samples(self):
        clean = sanitize(
            _samples(
                [
                    (0, 0, None, None),
                    (100, 30, None, None),
                    (90, 35, None, None),  # distance jumps back
                    (100, 30, None, None),  # exact duplicate
                    (200, 60, None, None),
                ]
            )
        )
        assert clean.distance.tolist() == [0, 100, 200]
        assert clean.time.tolist() == [0, 30, 60]
        assert clean.dropped == 2

    def test_drops_non_finite(self):
        clean = sanitize(
            _samples([(0, 0, None, None), (math.nan, 10, None, None), (50, 20, None, None)])
        )
        assert len(clean) == 2
        assert clean.dropped == 1

    def test_rebases_to_zero(self):
        clean = sanitize(_samples([(500, 100, None, None), (700, 160, None, None)]))
        assert clean.distance.tolist() == [0, 200]
        assert clean.time.tolist() == [0, 60]
        assert clean.total_distance == 200
        assert clean.total_time == 60

    def test_implausible_heart_rate_becomes_missing(self):
        clean = sanitize(_samples([(0, 0, 10, None), (10, 3, 150, None), (20, 6, 400, None)]))
        assert math.isnan(clean.heart_rate[0])
        assert clean.heart_rate[1] == 150
        assert math.isnan(clean.heart_rate[2])
        assert clean.has_heart_rate

    def test_accepts_column_stream(self):
        stream = Stream(distance=[0, 10, 20], time=[0, 4, 8], heartrate=[140, 141, 142, 999])
        clean = sanitize(stream)
        assert len(clean) == 3
        assert clean.heart_rate.tolist() == [140, 141, 142]
        assert not clean.has_altitude

    def test_empty_input(self):
        clean = sanitize([])
        assert len(clean) == 0
        assert clean.total_distance == 0.0


@pytest.mark.unit
class TestCumulativeGain:
    def test_positive_rises_only(self):
        clean = sanitize(
            Stream(distance=[0, 10, 20, 30], time=[0, 5, 10, 15], altitude=[10, 12, 11, 15])
        )
        assert clean.cumulative_gain().tolist() == pytest.approx([0, 2, 2, 6])

    def test_gaps_are_forward_filled(self):
        clean = sanitize(
            Stream(
                distance=[0, 10, 20, 30],
                time=[0, 5, 10, 15],
                altitude=[None, 10, None, 13],
            )
        )
        assert clean.cumulative_gain().tolist() == pytest.approx([0, 0, 0, 3])

    def test_no_altitude_is_zero(self):
        clean = sanitize(Stream(distance=[0, 10], time=[0, 5]))
        assert np.all(clean.cumulative_gain() == 0)
