"""Core data types for SCR-Design.

This module is the single source of truth for:
  - StateSpace / TrapArray: immutable ordered 2-D point sets
  - Parameters: the (N, p0, sigma, K, nsim) bundle for a run
  - Verdict: outcome of the data-validity filter
  - Replicate: one Monte Carlo trial (accepted or rejected)
  - ResultRow / ResultTable: accumulated estimates, one row per accepted trial

All modules import these types from here.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Iterator, List, Optional, Tuple

import numpy as np

from scr_design.errors import ConfigurationError


# ═══════════════════════════════════════════════════════════════════════
# POINT SETS
# ═══════════════════════════════════════════════════════════════════════

def _as_frozen_coords(coords, label: str) -> np.ndarray:
    """Copy coords into a read-only (n, 2) float64 array."""
    arr = np.array(coords, dtype=np.float64, copy=True)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ConfigurationError(
            f"{label} coordinates must have shape (n, 2), got {arr.shape}"
        )
    if arr.shape[0] == 0:
        raise ConfigurationError(f"{label} must contain at least one point")
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError(f"{label} coordinates must be finite")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class StateSpace:
    """Discretised state-space: one row per candidate activity-centre pixel.

    Row order is the pixel index used by the activity-centre sampler, so it
    must stay fixed for reproducible runs.
    """
    coords: np.ndarray
    pixel_area: float = 1.0   # area of one pixel, in squared coordinate units

    def __post_init__(self):
        object.__setattr__(self, 'coords', _as_frozen_coords(self.coords, 'StateSpace'))
        if self.pixel_area <= 0:
            raise ConfigurationError(
                f"StateSpace.pixel_area must be positive, got {self.pixel_area}"
            )

    def __len__(self) -> int:
        return int(self.coords.shape[0])

    @property
    def area(self) -> float:
        return len(self) * self.pixel_area


@dataclass(frozen=True)
class TrapArray:
    """Fixed trap (detector) locations: the design under evaluation."""
    coords: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'coords', _as_frozen_coords(self.coords, 'TrapArray'))

    def __len__(self) -> int:
        return int(self.coords.shape[0])


# ═══════════════════════════════════════════════════════════════════════
# RUN PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

def _is_integral(value) -> bool:
    """True for ints and integer-valued floats; False for bools and strings."""
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Integral):
        return True
    return isinstance(value, numbers.Real) and float(value).is_integer()


def _is_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class Parameters:
    """Simulation truth and replicate target for one evaluation run."""
    N: int          # population size
    p0: float       # baseline per-occasion detection probability
    sigma: float    # half-normal spatial scale (coordinate units)
    K: int          # sampling occasions
    nsim: int       # accepted replicates required

    def validate(self, state_space: Optional[StateSpace] = None) -> None:
        """Raise ConfigurationError if any value has the wrong type or lies
        outside its domain.

        ``p0 == 0`` is allowed: it is degenerate (every trial is rejected)
        but well defined, and the driver's trial ceiling bounds it.
        """
        for name in ('N', 'K', 'nsim'):
            value = getattr(self, name)
            if not _is_integral(value) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        for name in ('p0', 'sigma'):
            value = getattr(self, name)
            if not _is_real(value):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
        if not (0.0 <= self.p0 < 1.0):
            raise ConfigurationError(f"p0 must be in [0, 1), got {self.p0}")
        if not (self.sigma > 0 and np.isfinite(self.sigma)):
            raise ConfigurationError(f"sigma must be positive, got {self.sigma}")
        if state_space is not None and self.N > len(state_space):
            raise ConfigurationError(
                f"N ({self.N}) exceeds the number of state-space pixels "
                f"({len(state_space)}); activity centres are drawn without replacement"
            )


# ═══════════════════════════════════════════════════════════════════════
# REPLICATES
# ═══════════════════════════════════════════════════════════════════════

class Verdict(IntEnum):
    """Outcome of the data-validity filter."""
    ACCEPT                = 0
    NO_CAPTURES           = 1   # nobody detected
    NO_SPATIAL_RECAPTURES = 2   # nobody detected at two or more traps

    @property
    def is_valid(self) -> bool:
        return self is Verdict.ACCEPT


@dataclass(frozen=True)
class Replicate:
    """One Monte Carlo trial. Never mutated after creation."""
    trial: int                  # trial counter value; also the seed source
    centers: np.ndarray         # (N,) state-space pixel indices, distinct
    y: np.ndarray               # (N, T, K) int8 encounter array
    counts: np.ndarray          # (N,) total captures per individual
    verdict: Verdict

    @property
    def captured(self) -> np.ndarray:
        """Boolean mask of individuals with at least one capture."""
        return self.counts > 0

    @property
    def n_captured(self) -> int:
        return int(np.count_nonzero(self.counts))

    def captured_history(self) -> np.ndarray:
        """Encounter array restricted to captured individuals."""
        return self.y[self.captured]


# ═══════════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ResultRow:
    """Estimates and summaries for one accepted replicate."""
    p0: float           # estimated baseline detection
    sigma: float        # estimated spatial scale
    d0: float           # estimated log density intercept (per pixel)
    n: int              # individuals captured
    avg_caps: float     # mean captures per captured individual
    avg_spatial: float  # mean distinct traps per captured individual
    mmdm: float         # mean minimum distance moved (NaN if no spatial recaptures)
    retries: int        # rejected trials that preceded this one
    n_hat: float        # estimated abundance over the full state-space
    trial: int          # originating trial index


RESULT_COLUMNS: Tuple[str, ...] = tuple(f.name for f in fields(ResultRow))


@dataclass
class ResultTable:
    """Ordered accepted-replicate results for one evaluation run."""
    params: Parameters
    rows: List[ResultRow] = field(default_factory=list)
    n_trials: int = 0           # total trials consumed, accepted or rejected

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[ResultRow]:
        return iter(self.rows)

    def __getitem__(self, i: int) -> ResultRow:
        return self.rows[i]

    @property
    def total_retries(self) -> int:
        return sum(r.retries for r in self.rows)

    def column(self, name: str) -> np.ndarray:
        """One column of the table as a float array."""
        if name not in RESULT_COLUMNS:
            raise KeyError(f"Unknown result column '{name}'. Available: {RESULT_COLUMNS}")
        return np.array([getattr(r, name) for r in self.rows], dtype=np.float64)
