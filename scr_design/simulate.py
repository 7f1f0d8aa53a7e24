"""Replication driver: simulate → validate → fit → accumulate.

Each trial t = 1, 2, 3, ... :
  1. builds a fresh Generator from (base_seed, t)
  2. samples N activity centres, computes detection probabilities and
     draws an (N, T, K) encounter array
  3. classifies the dataset; rejected datasets only bump the retry counter
  4. fits accepted datasets and records one ResultRow carrying the number
     of rejected trials that preceded it

The loop ends when nsim rows are recorded. The trial counter never
resets, so a run is fully determined by its inputs and base seed.

With n_workers > 1, consecutive trial indices are evaluated in a thread
pool, but outcomes are consumed strictly in trial order, so the result
table (including retry counts) is identical to the sequential run.
Trials evaluated beyond the last accepted one are discarded.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import count
from typing import Callable, Iterator, Optional

import numpy as np
from scipy.special import logit

from scr_design.config import RunConfig
from scr_design.detection import (
    detection_probability,
    sample_activity_centers,
    simulate_encounters,
)
from scr_design.errors import ConfigurationError, FitError, SearchExhaustedError
from scr_design.likelihood import FitResult, default_start, fit_scr0
from scr_design.rng import trial_rng
from scr_design.spatial import trim_mask
from scr_design.types import (
    Parameters,
    Replicate,
    ResultRow,
    ResultTable,
    StateSpace,
    TrapArray,
)
from scr_design.validity import capture_counts, classify, summarize

# fitter(y_captured, traps, state_space) -> object with p0, sigma, d0, n_hat
Fitter = Callable[[np.ndarray, TrapArray, StateSpace], FitResult]
ProgressCallback = Callable[[int, int, int], None]


# ═══════════════════════════════════════════════════════════════════════
# SINGLE TRIAL
# ═══════════════════════════════════════════════════════════════════════

def run_trial(
    trial: int,
    state_space: StateSpace,
    traps: TrapArray,
    params: Parameters,
    base_seed: int = 0,
) -> Replicate:
    """Generate and classify one synthetic dataset. Deterministic in (trial, base_seed)."""
    rng = trial_rng(trial, base_seed)
    centers = sample_activity_centers(len(state_space), params.N, rng)
    prob = detection_probability(state_space.coords[centers], traps.coords,
                                 params.p0, params.sigma)
    y = simulate_encounters(prob, params.K, rng)
    y.setflags(write=False)
    return Replicate(
        trial=trial,
        centers=centers,
        y=y,
        counts=capture_counts(y),
        verdict=classify(y),
    )


@dataclass(frozen=True)
class TrialOutcome:
    """A classified trial plus, for valid ones, its fit or fit failure."""
    replicate: Replicate
    fit: Optional[FitResult] = None
    fit_error: Optional[FitError] = None

    @property
    def accepted(self) -> bool:
        return self.replicate.verdict.is_valid and self.fit is not None


def evaluate_trial(
    trial: int,
    state_space: StateSpace,
    traps: TrapArray,
    params: Parameters,
    fitter: Fitter,
    base_seed: int = 0,
) -> TrialOutcome:
    """run_trial, then fit the captured individuals if the dataset is valid."""
    rep = run_trial(trial, state_space, traps, params, base_seed)
    if not rep.verdict.is_valid:
        return TrialOutcome(rep)
    try:
        fit = fitter(rep.captured_history(), traps, state_space)
    except FitError as e:
        e.trial = trial
        return TrialOutcome(rep, fit_error=e)
    return TrialOutcome(rep, fit=fit)


def make_scr0_fitter(
    params: Parameters,
    trim_multiplier: float = 3.0,
    method: str = "Nelder-Mead",
    maxiter: int = 2000,
) -> Fitter:
    """Default fitter: SCR0 MLE started at the simulation truth.

    Trimming distance is trim_multiplier × true sigma.
    """
    trim = trim_multiplier * params.sigma

    def fitter(y: np.ndarray, traps: TrapArray, state_space: StateSpace) -> FitResult:
        if 0.0 < params.p0 < 1.0:
            start = np.array([logit(params.p0), np.log(params.sigma),
                              np.log(params.N / len(state_space))])
        else:
            start = default_start(y.shape[0], traps, state_space)
        return fit_scr0(y, traps, state_space, params.K, trim=trim,
                        start=start, method=method, maxiter=maxiter)

    return fitter


# ═══════════════════════════════════════════════════════════════════════
# DRIVER
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AcceptedReplicate:
    """One accepted trial as yielded by ReplicationDriver."""
    row: ResultRow
    replicate: Replicate
    fit: FitResult


class ReplicationDriver:
    """Retry-until-valid loop over trials, yielding accepted replicates lazily.

    Bookkeeping (trial counter, accepted count, retries for the slot
    currently being filled) lives on the driver instance and is only
    touched by the consuming thread.

    Usage:
        driver = ReplicationDriver(ss, traps, params)
        table = driver.run()            # or: for acc in driver: ...
    """

    def __init__(
        self,
        state_space: StateSpace,
        traps: TrapArray,
        params: Parameters,
        *,
        seed: int = 0,
        fitter: Optional[Fitter] = None,
        trim_multiplier: float = 3.0,
        fit_method: str = "Nelder-Mead",
        fit_maxiter: int = 2000,
        max_trials: Optional[int] = None,
        retry_on_fit_failure: bool = True,
        n_workers: int = 1,
        batch_size: int = 0,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        # Configuration errors surface here, before any trial runs.
        params.validate(state_space)
        if seed < 0:
            raise ConfigurationError(f"seed must be non-negative, got {seed}")
        if max_trials is not None and max_trials < 1:
            raise ConfigurationError(f"max_trials must be >= 1, got {max_trials}")
        if n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {n_workers}")
        if batch_size < 0:
            raise ConfigurationError(f"batch_size must be >= 0, got {batch_size}")
        if fitter is None:
            if not trim_mask(state_space, traps, trim_multiplier * params.sigma).any():
                raise ConfigurationError(
                    f"no state-space pixel lies within {trim_multiplier} × sigma "
                    f"of any trap"
                )
            fitter = make_scr0_fitter(params, trim_multiplier, fit_method, fit_maxiter)

        self.state_space = state_space
        self.traps = traps
        self.params = params
        self.seed = seed
        self.fitter = fitter
        self.max_trials = max_trials
        self.retry_on_fit_failure = retry_on_fit_failure
        self.n_workers = n_workers
        self.batch_size = batch_size or 2 * n_workers
        self.progress_callback = progress_callback

        self.trials = 0
        self.accepted = 0
        self.retries = 0
        self.fit_failures = 0

    @property
    def done(self) -> bool:
        return self.accepted >= self.params.nsim

    def _trial_indices(self) -> Iterator[int]:
        start = self.trials + 1
        if self.max_trials is None:
            return count(start)
        return iter(range(start, self.max_trials + 1))

    def _evaluate(self, trial: int) -> TrialOutcome:
        return evaluate_trial(trial, self.state_space, self.traps, self.params,
                              self.fitter, self.seed)

    def _outcomes(self) -> Iterator[TrialOutcome]:
        """Trial outcomes in strict trial order."""
        if self.n_workers == 1:
            for t in self._trial_indices():
                yield self._evaluate(t)
            return

        indices = self._trial_indices()
        with ThreadPoolExecutor(max_workers=self.n_workers) as pool:
            while True:
                batch = [t for _, t in zip(range(self.batch_size), indices)]
                if not batch:
                    return
                yield from pool.map(self._evaluate, batch)

    def _record(self, outcome: TrialOutcome) -> AcceptedReplicate:
        rep, fit = outcome.replicate, outcome.fit
        avg_caps, avg_spatial, mmdm = summarize(rep.captured_history(), self.traps.coords)
        row = ResultRow(
            p0=float(fit.p0),
            sigma=float(fit.sigma),
            d0=float(fit.d0),
            n=rep.n_captured,
            avg_caps=avg_caps,
            avg_spatial=avg_spatial,
            mmdm=mmdm,
            retries=self.retries,
            n_hat=float(fit.n_hat),
            trial=rep.trial,
        )
        return AcceptedReplicate(row=row, replicate=rep, fit=fit)

    def __iter__(self) -> Iterator[AcceptedReplicate]:
        if self.done:
            return
        outcomes = self._outcomes()
        try:
            for outcome in outcomes:
                self.trials = outcome.replicate.trial
                if outcome.fit_error is not None:
                    self.fit_failures += 1
                    if not self.retry_on_fit_failure:
                        raise outcome.fit_error
                if not outcome.accepted:
                    self.retries += 1
                    self._report()
                    continue

                accepted = self._record(outcome)
                self.accepted += 1
                self.retries = 0
                self._report()
                yield accepted
                if self.done:
                    return
        finally:
            outcomes.close()

        raise SearchExhaustedError(self.trials, self.accepted, self.params.nsim)

    def _report(self) -> None:
        if self.progress_callback is not None:
            self.progress_callback(self.accepted, self.params.nsim, self.retries)

    def run(self) -> ResultTable:
        """Drive to completion and return the full ResultTable."""
        rows = [acc.row for acc in self]
        return ResultTable(params=self.params, rows=rows, n_trials=self.trials)


# ═══════════════════════════════════════════════════════════════════════
# CONVENIENCE ENTRY POINTS
# ═══════════════════════════════════════════════════════════════════════

def iter_replicates(
    state_space: StateSpace,
    traps: TrapArray,
    params: Parameters,
    **kwargs,
) -> Iterator[AcceptedReplicate]:
    """Lazily yield accepted replicates; see ReplicationDriver for options."""
    return iter(ReplicationDriver(state_space, traps, params, **kwargs))


def simulate_design(
    state_space: StateSpace,
    traps: TrapArray,
    params: Parameters,
    **kwargs,
) -> ResultTable:
    """Evaluate one trap design: exactly params.nsim accepted, fitted replicates.

    Raises:
        ConfigurationError: Invalid inputs (before any trial runs).
        SearchExhaustedError: max_trials reached first.
        FitError: A fit failed and retry_on_fit_failure is False.
    """
    return ReplicationDriver(state_space, traps, params, **kwargs).run()


def simulate_from_config(
    config: RunConfig,
    state_space: StateSpace,
    traps: TrapArray,
    progress_callback: Optional[ProgressCallback] = None,
) -> ResultTable:
    """simulate_design with every option taken from a RunConfig."""
    sim, fit = config.simulation, config.fit
    params = config.parameters()
    driver = ReplicationDriver(
        state_space, traps, params,
        seed=sim.seed,
        trim_multiplier=fit.trim_multiplier,
        fit_method=fit.method,
        fit_maxiter=fit.maxiter,
        max_trials=sim.max_trials,
        retry_on_fit_failure=fit.retry_on_fit_failure,
        n_workers=sim.n_workers,
        batch_size=sim.batch_size,
        progress_callback=progress_callback,
    )
    return driver.run()
