"""Data-validity filter and per-replicate summary statistics.

A simulated dataset is only worth fitting if sigma is identifiable,
which needs at least one individual detected at two or more distinct
traps. classify() returns:

  ACCEPT                 captured individuals exist and ≥1 has a spatial recapture
  NO_CAPTURES            nobody captured (spatial check is skipped entirely)
  NO_SPATIAL_RECAPTURES  captures exist but every individual used a single trap

summarize() computes the descriptive columns recorded on each result row.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from scr_design.spatial import distances
from scr_design.types import Verdict


def capture_counts(y: np.ndarray) -> np.ndarray:
    """Total captures per individual (summed over traps and occasions)."""
    return y.sum(axis=(1, 2))


def traps_per_individual(y: np.ndarray) -> np.ndarray:
    """Number of distinct traps at which each individual was detected."""
    return np.count_nonzero(y.sum(axis=2), axis=1)


def classify(y: np.ndarray) -> Verdict:
    """Validity verdict for an (N, T, K) encounter array."""
    counts = capture_counts(y)
    captured = counts > 0
    if not captured.any():
        return Verdict.NO_CAPTURES
    if np.any(traps_per_individual(y[captured]) > 1):
        return Verdict.ACCEPT
    return Verdict.NO_SPATIAL_RECAPTURES


def mean_min_distance_moved(y: np.ndarray, traps: np.ndarray) -> float:
    """Mean over spatially recaptured individuals of the smallest
    distance between two distinct traps where each was detected.

    Returns NaN when nobody was detected at two or more traps.
    """
    per_trap = y.sum(axis=2) > 0
    dmat = distances(traps, traps)
    moves = []
    for row in per_trap:
        hit = np.flatnonzero(row)
        if len(hit) < 2:
            continue
        sub = dmat[np.ix_(hit, hit)]
        moves.append(sub[np.triu_indices(len(hit), k=1)].min())
    if not moves:
        return float('nan')
    return float(np.mean(moves))


def summarize(y_captured: np.ndarray, traps: np.ndarray) -> Tuple[float, float, float]:
    """(avg_caps, avg_spatial, mmdm) for a captured-only encounter array."""
    if y_captured.shape[0] == 0:
        return 0.0, 0.0, float('nan')
    avg_caps = float(capture_counts(y_captured).mean())
    avg_spatial = float(traps_per_individual(y_captured).mean())
    return avg_caps, avg_spatial, mean_min_distance_moved(y_captured, traps)
