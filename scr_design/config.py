"""Configuration system for SCR-Design.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → command-line / sweep overrides

Sections map 1:1 to YAML top-level keys:
  simulation: simulation truth (N, p0, sigma, K), replicate target and
              driver controls (seed, trial ceiling, workers)
  spatial:    where the state-space and trap layout come from
  fit:        SCR0 likelihood fitting controls
  output:     result files

Design decisions:
  - p0 == 0 is accepted (degenerate but well defined); the trial ceiling
    turns the resulting endless rejection into SearchExhaustedError
  - fit failures are retried like rejected datasets unless
    fit.retry_on_fit_failure is false
"""

from __future__ import annotations

import copy
import dataclasses
import numbers
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from scr_design.errors import ConfigurationError
from scr_design.types import Parameters


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Simulation truth and replication-driver controls."""
    N: int = 20                  # true population size
    p0: float = 0.2              # baseline detection per occasion
    sigma: float = 2.0           # half-normal scale (coordinate units)
    K: int = 5                   # sampling occasions
    nsim: int = 100              # accepted replicates required
    seed: int = 0                # base seed; trial t uses SeedSequence([seed, t])
    max_trials: Optional[int] = 100_000  # None = unbounded
    n_workers: int = 1           # >1 evaluates trials in a thread pool
    batch_size: int = 0          # trials claimed per parallel batch (0 = 2 × n_workers)


@dataclass
class SpatialSection:
    """Inputs for building the state-space and trap array.

    Either point files are given directly, or a study-area polygon is
    buffered and gridded.

    A state_space_file carries only pixel centres, so its pixel area is
    taken from pixel_area, or from state_space_spacing squared when
    pixel_area is unset (i.e. the file is assumed to be a regular grid at
    that spacing). Gridded state-spaces always use state_space_spacing.
    """
    state_space_file: Optional[str] = None   # CSV with x,y columns
    trap_file: Optional[str] = None          # CSV with x,y columns
    study_area_file: Optional[str] = None    # vector file (shp/gpkg/geojson)
    buffer: float = 8.0                      # state-space buffer around study area
    state_space_spacing: float = 1.0         # pixel side length
    pixel_area: Optional[float] = None       # area of one state_space_file pixel
    trap_spacing: float = 2.0                # candidate trap grid spacing


@dataclass
class FitSection:
    """SCR0 maximum-likelihood fitting controls."""
    trim_multiplier: float = 3.0     # ignore pixels farther than this × sigma from all traps
    method: str = "Nelder-Mead"      # scipy.optimize.minimize method
    maxiter: int = 2000
    retry_on_fit_failure: bool = True


@dataclass
class OutputSection:
    """Output control."""
    results_file: str = "results/scr_design_results.csv"
    write_metadata: bool = True


@dataclass
class RunConfig:
    """Complete run configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    spatial: SpatialSection = field(default_factory=SpatialSection)
    fit: FitSection = field(default_factory=FitSection)
    output: OutputSection = field(default_factory=OutputSection)

    def parameters(self) -> Parameters:
        """The immutable Parameters bundle for this configuration."""
        s = self.simulation
        return Parameters(N=s.N, p0=s.p0, sigma=s.sigma, K=s.K, nsim=s.nsim)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'spatial': SpatialSection,
    'fit': FitSection,
    'output': OutputSection,
}

_VALID_METHODS = {"Nelder-Mead", "BFGS", "L-BFGS-B", "Powell"}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Merged copy of two nested dicts; override wins on conflicts.

    Nested dicts are merged key by key, anything else in override
    replaces the base value. Neither argument is modified.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        old = merged.get(key)
        if isinstance(old, dict) and isinstance(value, dict):
            merged[key] = deep_merge(old, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_yaml(path: Path) -> Dict:
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    return data


def _build_section(name: str, section_cls, data: Dict) -> Any:
    """Instantiate one section, warning about keys it does not define."""
    known = {f.name for f in dataclasses.fields(section_cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        warnings.warn(f"{name}: ignoring unknown key(s) {unknown}",
                      UserWarning, stacklevel=3)
    return section_cls(**{k: v for k, v in data.items() if k in known})


def _yaml_to_config(data: Dict) -> RunConfig:
    """Merged YAML mapping → RunConfig. Missing sections take defaults."""
    extra = sorted(set(data) - set(_SECTION_MAP))
    if extra:
        warnings.warn(f"ignoring unknown config section(s) {extra}",
                      UserWarning, stacklevel=3)
    return RunConfig(**{
        name: _build_section(name, cls, data.get(name) or {})
        for name, cls in _SECTION_MAP.items()
    })


# Type-checked before the range checks below.
_INTEGER_FIELDS = {
    'simulation': ('seed', 'max_trials', 'n_workers', 'batch_size'),
    'fit': ('maxiter',),
}
_REAL_FIELDS = {
    'spatial': ('buffer', 'state_space_spacing', 'trap_spacing', 'pixel_area'),
    'fit': ('trim_multiplier',),
}
_NULLABLE_FIELDS = {'max_trials', 'pixel_area'}


def _check_types(config: RunConfig) -> None:
    """Raise ConfigurationError for non-numeric values in numeric fields.

    None is accepted only where it is the field's own default.
    """
    for kinds, ok, label in ((_INTEGER_FIELDS, numbers.Integral, "an integer"),
                             (_REAL_FIELDS, numbers.Real, "a number")):
        for section_name, names in kinds.items():
            section = getattr(config, section_name)
            for name in names:
                value = getattr(section, name)
                if value is None and name in _NULLABLE_FIELDS:
                    continue
                if isinstance(value, bool) or not isinstance(value, ok):
                    raise ConfigurationError(
                        f"{section_name}.{name} must be {label}, got {value!r}"
                    )


def validate_config(config: RunConfig) -> None:
    """Validate configuration constraints. Raises ConfigurationError on failure.

    Checks:
      - Simulation truth is in its valid domain (delegated to Parameters)
      - Driver controls (seed, ceiling, workers) are sane
      - Spatial spacings and buffer are positive
      - Fit controls are usable
    """
    config.parameters().validate()
    _check_types(config)

    sim = config.simulation
    if sim.seed < 0:
        raise ConfigurationError("simulation.seed must be non-negative")
    if sim.max_trials is not None and sim.max_trials < sim.nsim:
        raise ConfigurationError(
            f"simulation.max_trials ({sim.max_trials}) must be >= "
            f"simulation.nsim ({sim.nsim})"
        )
    if sim.n_workers < 1:
        raise ConfigurationError(
            f"simulation.n_workers must be >= 1, got {sim.n_workers}"
        )
    if sim.batch_size < 0:
        raise ConfigurationError(
            f"simulation.batch_size must be >= 0, got {sim.batch_size}"
        )

    sp = config.spatial
    if sp.buffer < 0:
        raise ConfigurationError(f"spatial.buffer must be >= 0, got {sp.buffer}")
    if sp.state_space_spacing <= 0:
        raise ConfigurationError("spatial.state_space_spacing must be positive")
    if sp.trap_spacing <= 0:
        raise ConfigurationError("spatial.trap_spacing must be positive")
    if sp.pixel_area is not None and sp.pixel_area <= 0:
        raise ConfigurationError(f"spatial.pixel_area must be positive, got {sp.pixel_area}")
    for name in ('state_space_file', 'trap_file', 'study_area_file'):
        path = getattr(sp, name)
        if path is not None and not os.path.exists(path):
            warnings.warn(
                f"spatial.{name} '{path}' does not exist. "
                f"Loading will fail at runtime.",
                UserWarning,
                stacklevel=2,
            )

    fit = config.fit
    if fit.trim_multiplier <= 0:
        raise ConfigurationError(
            f"fit.trim_multiplier must be positive, got {fit.trim_multiplier}"
        )
    if fit.method not in _VALID_METHODS:
        raise ConfigurationError(
            f"fit.method must be one of {_VALID_METHODS}, got '{fit.method}'"
        )
    if fit.maxiter < 1:
        raise ConfigurationError(f"fit.maxiter must be >= 1, got {fit.maxiter}")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> RunConfig:
    """Load base YAML, layer a scenario file and overrides on top, validate.

    Later layers replace only the keys they set. A missing scenario file
    is a warning, a missing base file an error.

    Raises:
        FileNotFoundError: base_path does not exist.
        ConfigurationError: The merged configuration is invalid.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")
    merged = _read_yaml(base_path)

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            merged = deep_merge(merged, _read_yaml(scenario_path))
        else:
            warnings.warn(
                f"Scenario file '{scenario_path}' not found; using base config only",
                UserWarning,
                stacklevel=2,
            )
    if overrides:
        merged = deep_merge(merged, overrides)

    config = _yaml_to_config(merged)
    validate_config(config)
    return config


def save_config(config: RunConfig, path: Union[str, Path]) -> None:
    """Write a RunConfig back to YAML (round-trips through load_config)."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, 'w') as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def default_config() -> RunConfig:
    """Return a RunConfig with all default values."""
    config = RunConfig()
    validate_config(config)
    return config
