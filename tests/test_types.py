"""Tests for scr_design.types — point sets, parameters, verdicts, results."""

import numpy as np
import pytest

from scr_design.errors import ConfigurationError
from scr_design.types import (
    RESULT_COLUMNS,
    Parameters,
    Replicate,
    ResultRow,
    ResultTable,
    StateSpace,
    TrapArray,
    Verdict,
)


def _row(**kw):
    base = dict(p0=0.2, sigma=2.0, d0=-1.6, n=10, avg_caps=2.0, avg_spatial=1.5,
                mmdm=1.0, retries=0, n_hat=20.0, trial=1)
    base.update(kw)
    return ResultRow(**base)


# ── Point sets ────────────────────────────────────────────────────────

class TestStateSpace:
    def test_length_and_area(self):
        ss = StateSpace(np.zeros((12, 2)), pixel_area=4.0)
        assert len(ss) == 12
        assert ss.area == pytest.approx(48.0)

    def test_coords_are_read_only(self):
        ss = StateSpace([[0.0, 0.0], [1.0, 0.0]])
        with pytest.raises(ValueError):
            ss.coords[0, 0] = 5.0

    def test_input_is_copied(self):
        src = np.array([[0.0, 0.0], [1.0, 1.0]])
        ss = StateSpace(src)
        src[0, 0] = 99.0
        assert ss.coords[0, 0] == 0.0

    def test_bad_shape(self):
        with pytest.raises(ConfigurationError):
            StateSpace(np.zeros((5, 3)))

    def test_empty(self):
        with pytest.raises(ConfigurationError):
            StateSpace(np.zeros((0, 2)))

    def test_non_finite(self):
        with pytest.raises(ConfigurationError):
            StateSpace([[0.0, np.nan]])

    def test_bad_pixel_area(self):
        with pytest.raises(ConfigurationError):
            StateSpace([[0.0, 0.0]], pixel_area=0.0)


class TestTrapArray:
    def test_length(self):
        assert len(TrapArray([[0, 0], [1, 1], [2, 2]])) == 3

    def test_read_only(self):
        traps = TrapArray([[0.0, 0.0]])
        assert not traps.coords.flags.writeable

    def test_bad_shape(self):
        with pytest.raises(ConfigurationError):
            TrapArray([1.0, 2.0])


# ── Parameters ────────────────────────────────────────────────────────

class TestParameters:
    def test_valid(self):
        Parameters(N=20, p0=0.2, sigma=2.0, K=5, nsim=3).validate()

    def test_frozen(self):
        p = Parameters(N=20, p0=0.2, sigma=2.0, K=5, nsim=3)
        with pytest.raises(AttributeError):
            p.N = 10

    @pytest.mark.parametrize("kw", [
        {'N': 0}, {'N': 2.5}, {'p0': -0.1}, {'p0': 1.0}, {'p0': 1.5},
        {'sigma': 0.0}, {'sigma': -1.0}, {'sigma': np.inf},
        {'K': 0}, {'nsim': 0},
        {'p0': '0.2'}, {'N': 'abc'}, {'N': True}, {'sigma': None}, {'K': '5'},
    ])
    def test_invalid(self, kw):
        base = dict(N=20, p0=0.2, sigma=2.0, K=5, nsim=3)
        base.update(kw)
        with pytest.raises(ConfigurationError):
            Parameters(**base).validate()

    def test_integer_valued_float_allowed(self):
        Parameters(N=20.0, p0=0.2, sigma=2, K=np.int64(5), nsim=3).validate()

    def test_zero_p0_allowed(self):
        """Degenerate but well defined: every trial is rejected."""
        Parameters(N=20, p0=0.0, sigma=2.0, K=5, nsim=3).validate()

    def test_N_exceeds_state_space(self):
        ss = StateSpace(np.zeros((10, 2)))
        with pytest.raises(ConfigurationError, match="exceeds"):
            Parameters(N=11, p0=0.2, sigma=2.0, K=5, nsim=3).validate(ss)

    def test_N_equal_to_state_space(self):
        ss = StateSpace(np.zeros((10, 2)))
        Parameters(N=10, p0=0.2, sigma=2.0, K=5, nsim=3).validate(ss)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            Parameters(N=0, p0=0.2, sigma=2.0, K=5, nsim=3).validate()


# ── Verdict / Replicate ───────────────────────────────────────────────

class TestVerdict:
    def test_only_accept_is_valid(self):
        assert Verdict.ACCEPT.is_valid
        assert not Verdict.NO_CAPTURES.is_valid
        assert not Verdict.NO_SPATIAL_RECAPTURES.is_valid

    def test_count(self):
        assert len(Verdict) == 3


class TestReplicate:
    def test_captured_history(self):
        y = np.zeros((3, 2, 2), dtype=np.int8)
        y[1, 0, 0] = 1
        y[1, 1, 1] = 1
        counts = y.sum(axis=(1, 2))
        rep = Replicate(trial=4, centers=np.array([0, 1, 2]), y=y,
                        counts=counts, verdict=Verdict.ACCEPT)
        assert rep.n_captured == 1
        np.testing.assert_array_equal(rep.captured, [False, True, False])
        assert rep.captured_history().shape == (1, 2, 2)


# ── Results ───────────────────────────────────────────────────────────

class TestResultTable:
    def test_column_order(self):
        assert RESULT_COLUMNS == ('p0', 'sigma', 'd0', 'n', 'avg_caps', 'avg_spatial',
                                  'mmdm', 'retries', 'n_hat', 'trial')

    def test_len_iter_getitem(self):
        params = Parameters(N=20, p0=0.2, sigma=2.0, K=5, nsim=2)
        table = ResultTable(params, [_row(trial=1), _row(trial=3, retries=1)], n_trials=3)
        assert len(table) == 2
        assert [r.trial for r in table] == [1, 3]
        assert table[1].retries == 1
        assert table.total_retries == 1

    def test_column(self):
        params = Parameters(N=20, p0=0.2, sigma=2.0, K=5, nsim=2)
        table = ResultTable(params, [_row(sigma=1.0), _row(sigma=3.0)])
        np.testing.assert_array_equal(table.column('sigma'), [1.0, 3.0])

    def test_unknown_column(self):
        params = Parameters(N=20, p0=0.2, sigma=2.0, K=5, nsim=1)
        with pytest.raises(KeyError):
            ResultTable(params, [_row()]).column('bogus')
