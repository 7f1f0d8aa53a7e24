"""Tests for scr_design.validity — data-validity filter and summaries."""

import numpy as np
import pytest

import scr_design.validity as validity
from scr_design.types import Verdict
from scr_design.validity import (
    capture_counts,
    classify,
    mean_min_distance_moved,
    summarize,
    traps_per_individual,
)

TRAPS = np.array([[0.0, 0.0], [3.0, 0.0], [3.0, 4.0]])


def _y(n=4, t=3, k=2):
    return np.zeros((n, t, k), dtype=np.int8)


# ── counts ────────────────────────────────────────────────────────────

class TestCounts:
    def test_capture_counts(self):
        y = _y()
        y[0, 0, 0] = y[0, 1, 1] = y[2, 2, 0] = 1
        np.testing.assert_array_equal(capture_counts(y), [2, 0, 1, 0])

    def test_traps_per_individual(self):
        y = _y()
        y[0, 0, 0] = y[0, 0, 1] = 1          # one trap, twice
        y[1, 0, 0] = y[1, 2, 1] = 1          # two traps
        np.testing.assert_array_equal(traps_per_individual(y), [1, 2, 0, 0])


# ── classify ──────────────────────────────────────────────────────────

class TestClassify:
    def test_all_zero_rejected(self):
        assert classify(_y()) == Verdict.NO_CAPTURES

    def test_all_zero_short_circuits(self, monkeypatch):
        """No captured individuals: the spatial-recapture check never runs."""
        def boom(y):
            raise AssertionError("spatial check should be skipped")
        monkeypatch.setattr(validity, 'traps_per_individual', boom)
        assert classify(_y()) == Verdict.NO_CAPTURES

    def test_single_trap_recaptures_rejected(self):
        y = _y()
        y[0, 1, 0] = y[0, 1, 1] = 1
        y[3, 2, 0] = 1
        assert classify(y) == Verdict.NO_SPATIAL_RECAPTURES

    def test_spatial_recapture_accepted(self):
        y = _y()
        y[1, 0, 0] = y[1, 1, 0] = 1   # same occasion, two traps
        assert classify(y) == Verdict.ACCEPT

    def test_spatial_recapture_across_occasions(self):
        y = _y()
        y[2, 0, 0] = y[2, 2, 1] = 1
        assert classify(y) == Verdict.ACCEPT

    def test_two_individuals_at_different_traps_not_enough(self):
        y = _y()
        y[0, 0, 0] = 1
        y[1, 1, 0] = 1
        assert classify(y) == Verdict.NO_SPATIAL_RECAPTURES


# ── summaries ─────────────────────────────────────────────────────────

class TestSummaries:
    def test_mmdm_minimum_pairwise(self):
        y = _y(n=2)
        y[0, :, 0] = 1                 # all three traps: min pair distance 3
        y[1, 1, 0] = y[1, 2, 1] = 1    # traps 1 and 2: distance 4
        assert mean_min_distance_moved(y, TRAPS) == pytest.approx(3.5)

    def test_mmdm_nan_without_spatial_recaptures(self):
        y = _y(n=2)
        y[0, 0, :] = 1
        assert np.isnan(mean_min_distance_moved(y, TRAPS))

    def test_summarize(self):
        y = _y(n=2)
        y[0, 0, 0] = y[0, 1, 1] = 1    # 2 caps, 2 traps, move 3
        y[1, 2, 0] = 1                 # 1 cap, 1 trap
        avg_caps, avg_spatial, mmdm = summarize(y, TRAPS)
        assert avg_caps == pytest.approx(1.5)
        assert avg_spatial == pytest.approx(1.5)
        assert mmdm == pytest.approx(3.0)

    def test_summarize_empty(self):
        avg_caps, avg_spatial, mmdm = summarize(_y(n=0), TRAPS)
        assert avg_caps == 0.0 and avg_spatial == 0.0
        assert np.isnan(mmdm)
