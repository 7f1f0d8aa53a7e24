"""Tests for scr_design.results — DataFrame I/O and bias/precision summary."""

import json

import numpy as np
import pandas as pd
import pytest

from scr_design.results import (
    format_summary,
    from_dataframe,
    load_results,
    save_results,
    summarize_results,
    to_dataframe,
)
from scr_design.types import RESULT_COLUMNS, Parameters, ResultRow, ResultTable

PARAMS = Parameters(N=20, p0=0.2, sigma=2.0, K=5, nsim=2)


def _row(trial, p0, sigma, n_hat, retries=0, mmdm=2.0):
    return ResultRow(p0=p0, sigma=sigma, d0=float(np.log(n_hat / 100)), n=8,
                     avg_caps=1.5, avg_spatial=1.25, mmdm=mmdm, retries=retries,
                     n_hat=n_hat, trial=trial)


@pytest.fixture
def table():
    rows = [_row(2, 0.25, 1.8, 18.0, retries=1),
            _row(5, 0.15, 2.2, 26.0, retries=2, mmdm=float('nan'))]
    return ResultTable(params=PARAMS, rows=rows, n_trials=5)


class TestDataFrame:
    def test_columns_in_order(self, table):
        df = to_dataframe(table)
        assert list(df.columns) == list(RESULT_COLUMNS)
        assert len(df) == 2
        assert df['trial'].tolist() == [2, 5]

    def test_empty_table(self):
        df = to_dataframe(ResultTable(params=PARAMS))
        assert list(df.columns) == list(RESULT_COLUMNS)
        assert df.empty

    def test_from_dataframe(self, table):
        back = from_dataframe(to_dataframe(table), PARAMS, n_trials=5)
        assert back.rows[0] == table.rows[0]
        assert np.isnan(back.rows[1].mmdm)

    def test_from_dataframe_missing_column(self, table):
        df = to_dataframe(table).drop(columns=['n_hat'])
        with pytest.raises(ValueError, match="n_hat"):
            from_dataframe(df, PARAMS)


class TestSaveLoad:
    def test_writes_csv_and_sidecar(self, table, tmp_path):
        out = save_results(table, tmp_path / 'sub' / 'run.csv',
                           extra_metadata={'seed': 7})
        assert out.exists()
        meta = json.loads((tmp_path / 'sub' / 'run.meta.json').read_text())
        assert meta['parameters'] == {'N': 20, 'p0': 0.2, 'sigma': 2.0, 'K': 5, 'nsim': 2}
        assert meta['n_rows'] == 2
        assert meta['n_trials'] == 5
        assert meta['total_retries'] == 3
        assert meta['seed'] == 7
        assert 'scr_design_version' in meta

    def test_no_sidecar(self, table, tmp_path):
        save_results(table, tmp_path / 'run.csv', write_metadata=False)
        assert not (tmp_path / 'run.meta.json').exists()
        with pytest.raises(FileNotFoundError):
            load_results(tmp_path / 'run.csv')
        loaded = load_results(tmp_path / 'run.csv', params=PARAMS)
        assert len(loaded) == 2

    def test_load_uses_sidecar(self, table, tmp_path):
        save_results(table, tmp_path / 'run.csv')
        loaded = load_results(tmp_path / 'run.csv')
        assert loaded.params == PARAMS
        assert loaded.n_trials == 5
        pd.testing.assert_frame_equal(to_dataframe(loaded), to_dataframe(table))


class TestSummary:
    def test_bias_and_rmse(self, table):
        s = summarize_results(table)
        assert list(s.index) == ['p0', 'sigma', 'n_hat']
        assert s.loc['n_hat', 'truth'] == 20.0
        assert s.loc['n_hat', 'mean'] == pytest.approx(22.0)
        assert s.loc['n_hat', 'bias'] == pytest.approx(2.0)
        assert s.loc['n_hat', 'rel_bias'] == pytest.approx(0.1)
        assert s.loc['n_hat', 'rmse'] == pytest.approx(np.sqrt((4 + 36) / 2))
        assert s.loc['sigma', 'bias'] == pytest.approx(0.0)
        assert s.loc['p0', 'sd'] == pytest.approx(np.std([0.25, 0.15], ddof=1))

    def test_single_row_sd_nan(self):
        t = ResultTable(params=PARAMS, rows=[_row(1, 0.2, 2.0, 20.0)], n_trials=1)
        s = summarize_results(t)
        assert np.isnan(s.loc['p0', 'sd'])
        assert s.loc['p0', 'rmse'] == pytest.approx(0.0)

    def test_format_summary(self, table):
        text = format_summary(table)
        assert '2 replicates from 5 trials' in text
        assert 'n_hat' in text
        assert 'mean retries = 1.50' in text
