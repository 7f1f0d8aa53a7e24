"""SCR-Design: Monte Carlo evaluation of spatial capture-recapture designs.

Given a discretised state-space and a fixed trap layout, repeatedly:
  - samples N activity centres without replacement
  - draws binomial encounter histories under a half-normal detection model
  - discards datasets with no captures or no spatial recaptures
  - fits the SCR0 model by maximum likelihood
  - accumulates parameter estimates for bias / precision assessment

Typical use:

    from scr_design import Parameters, StateSpace, TrapArray, simulate_design
    from scr_design.spatial import make_grid

    ss = StateSpace(make_grid(0, 10, 0, 10, spacing=1.0))
    traps = TrapArray(make_grid(3, 6, 3, 6, spacing=1.5))
    table = simulate_design(ss, traps, Parameters(N=20, p0=0.2, sigma=2.0, K=5, nsim=3))
"""

__version__ = "0.1.0"

from scr_design.errors import (  # noqa: E402
    ConfigurationError,
    FitError,
    SearchExhaustedError,
)
from scr_design.types import (  # noqa: E402
    Parameters,
    Replicate,
    ResultRow,
    ResultTable,
    StateSpace,
    TrapArray,
    Verdict,
)
from scr_design.simulate import iter_replicates, simulate_design  # noqa: E402

__all__ = [
    "ConfigurationError",
    "FitError",
    "SearchExhaustedError",
    "Parameters",
    "Replicate",
    "ResultRow",
    "ResultTable",
    "StateSpace",
    "TrapArray",
    "Verdict",
    "iter_replicates",
    "simulate_design",
]
