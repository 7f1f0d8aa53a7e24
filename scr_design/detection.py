"""Observation model: activity centres, detection probabilities, encounters.

One replicate's synthetic data is generated in three steps, all drawing
from the trial-local Generator:

  1. sample_activity_centers — N distinct state-space pixels
  2. detection_probability   — half-normal p_ij = p0·exp(−d_ij² / 2σ²)
  3. simulate_encounters     — Bernoulli draw per (individual, trap, occasion)

Random draws happen in a fixed order (centres first, then one
(N, T, K) uniform block traversed individual → trap → occasion), so a
trial is bit-reproducible from its seed.
"""

from __future__ import annotations

import numpy as np

from scr_design.errors import ConfigurationError
from scr_design.spatial import squared_distances


def sample_activity_centers(
    n_pixels: int,
    N: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw N distinct pixel indices uniformly, without replacement.

    Args:
        n_pixels: State-space size M.
        N: Number of individuals.
        rng: Trial-local generator.

    Returns:
        (N,) int64 array of distinct indices in [0, M).

    Raises:
        ConfigurationError: If N > M (not retryable).
    """
    if N > n_pixels:
        raise ConfigurationError(
            f"cannot place {N} activity centres on {n_pixels} pixels without replacement"
        )
    return rng.choice(n_pixels, size=N, replace=False).astype(np.int64)


def detection_probability(
    centers: np.ndarray,
    traps: np.ndarray,
    p0: float,
    sigma: float,
) -> np.ndarray:
    """Half-normal capture probability for every (individual, trap) pair.

    Pure function. Uses squared distances directly so d = 0 gives p0
    exactly; far-away pairs underflow to 0.0, never below.

    Args:
        centers: (N, 2) activity-centre coordinates.
        traps: (T, 2) trap coordinates.
        p0: Baseline detection probability at distance 0.
        sigma: Spatial scale.

    Returns:
        (N, T) float64 matrix with entries in [0, p0].
    """
    d2 = squared_distances(centers, traps)
    return p0 * np.exp(-d2 / (2.0 * sigma * sigma))


def simulate_encounters(
    prob: np.ndarray,
    K: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Bernoulli encounter histories.

    Consumes exactly N·T·K uniforms in C order (individual-major, then
    trap, then occasion).

    Args:
        prob: (N, T) per-occasion capture probabilities.
        K: Number of occasions.
        rng: Trial-local generator.

    Returns:
        (N, T, K) int8 array of 0/1 detections.
    """
    n, t = prob.shape
    u = rng.random((n, t, K))
    return (u < prob[:, :, None]).astype(np.int8)
