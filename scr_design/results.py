"""Result tables: DataFrame conversion, CSV output, bias/precision summary.

The CSV has one row per accepted replicate, columns in ResultRow order:
  p0, sigma, d0, n, avg_caps, avg_spatial, mmdm, retries, n_hat, trial

An optional JSON sidecar (<results>.meta.json) records the truth,
trial count, package version and any provenance the caller passes in
(see utils.provenance).
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import pandas as pd

from scr_design import __version__
from scr_design.types import RESULT_COLUMNS, Parameters, ResultRow, ResultTable


def to_dataframe(table: ResultTable) -> pd.DataFrame:
    """ResultTable → DataFrame with one row per accepted replicate."""
    return pd.DataFrame([asdict(r) for r in table.rows], columns=list(RESULT_COLUMNS))


def from_dataframe(df: pd.DataFrame, params: Parameters, n_trials: int = 0) -> ResultTable:
    """DataFrame (as written by save_results) → ResultTable."""
    missing = [c for c in RESULT_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"results are missing column(s) {missing}")
    rows = [
        ResultRow(
            p0=float(rec['p0']),
            sigma=float(rec['sigma']),
            d0=float(rec['d0']),
            n=int(rec['n']),
            avg_caps=float(rec['avg_caps']),
            avg_spatial=float(rec['avg_spatial']),
            mmdm=float(rec['mmdm']),
            retries=int(rec['retries']),
            n_hat=float(rec['n_hat']),
            trial=int(rec['trial']),
        )
        for rec in df.to_dict(orient='records')
    ]
    return ResultTable(params=params, rows=rows, n_trials=n_trials)


def _meta_path(path: Path) -> Path:
    return path.with_name(path.stem + '.meta.json')


def save_results(
    table: ResultTable,
    path: Union[str, Path],
    write_metadata: bool = True,
    extra_metadata: Optional[Dict] = None,
) -> Path:
    """Write the table as CSV (and optionally a JSON metadata sidecar).

    Returns:
        Path of the CSV file.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    to_dataframe(table).to_csv(p, index=False)

    if write_metadata:
        meta = {
            'parameters': asdict(table.params),
            'n_rows': len(table),
            'n_trials': table.n_trials,
            'total_retries': table.total_retries,
            'scr_design_version': __version__,
        }
        if extra_metadata:
            meta.update(extra_metadata)
        with open(_meta_path(p), 'w') as f:
            json.dump(meta, f, indent=2, default=str)
    return p


def load_results(path: Union[str, Path],
                 params: Optional[Parameters] = None) -> ResultTable:
    """Read a CSV written by save_results.

    Parameters are taken from the metadata sidecar unless given.

    Raises:
        FileNotFoundError: If params is None and no sidecar exists.
    """
    p = Path(path)
    n_trials = 0
    meta_file = _meta_path(p)
    if meta_file.exists():
        with open(meta_file) as f:
            meta = json.load(f)
        n_trials = int(meta.get('n_trials', 0))
        if params is None:
            params = Parameters(**meta['parameters'])
    if params is None:
        raise FileNotFoundError(
            f"No metadata sidecar {meta_file}; pass params explicitly"
        )
    return from_dataframe(pd.read_csv(p), params, n_trials)


# ═══════════════════════════════════════════════════════════════════════
# BIAS / PRECISION
# ═══════════════════════════════════════════════════════════════════════

def summarize_results(table: ResultTable) -> pd.DataFrame:
    """Bias and precision of p0, sigma and N̂ against the simulated truth.

    Returns one row per parameter with columns:
      truth, mean, median, sd, bias, rel_bias, rmse, cv
    """
    truth = {'p0': table.params.p0, 'sigma': table.params.sigma,
             'n_hat': float(table.params.N)}
    records = {}
    for name, true_value in truth.items():
        est = table.column(name)
        mean = float(np.mean(est))
        sd = float(np.std(est, ddof=1)) if len(est) > 1 else float('nan')
        bias = mean - true_value
        records[name] = {
            'truth': true_value,
            'mean': mean,
            'median': float(np.median(est)),
            'sd': sd,
            'bias': bias,
            'rel_bias': bias / true_value if true_value != 0 else float('nan'),
            'rmse': float(np.sqrt(np.mean((est - true_value) ** 2))),
            'cv': sd / mean if mean != 0 else float('nan'),
        }
    return pd.DataFrame.from_dict(records, orient='index')


def format_summary(table: ResultTable) -> str:
    """Human-readable run report."""
    summary = summarize_results(table)
    lines = [
        f"\n{'='*64}",
        f" Design evaluation: {len(table)} replicates from {table.n_trials} trials",
        f"{'='*64}",
        f"{'Param':<8} {'Truth':>10} {'Mean':>10} {'SD':>10} {'RelBias':>9} {'RMSE':>10}",
        f"{'-'*8} {'-'*10} {'-'*10} {'-'*10} {'-'*9} {'-'*10}",
    ]
    for name, r in summary.iterrows():
        lines.append(
            f"{name:<8} {r['truth']:>10.4g} {r['mean']:>10.4g} {r['sd']:>10.4g} "
            f"{r['rel_bias']*100:>8.1f}% {r['rmse']:>10.4g}"
        )
    lines.append(f"{'-'*8} {'-'*10} {'-'*10} {'-'*10} {'-'*9} {'-'*10}")
    lines.append(
        f"mean captured n = {table.column('n').mean():.2f}, "
        f"mean retries = {table.column('retries').mean():.2f}"
    )
    lines.append(f"{'='*64}\n")
    return '\n'.join(lines)
