"""Command-line entry point: evaluate one trap design from a YAML config.

Example:
    scr-design-sim configs/default.yaml --traps design.csv --nsim 200 --workers 4
"""

from __future__ import annotations

import argparse
import sys
import warnings
from typing import List, Optional, Tuple

from scr_design.config import RunConfig, load_config
from scr_design.errors import ConfigurationError, FitError, SearchExhaustedError
from scr_design.results import format_summary, save_results
from scr_design.simulate import simulate_from_config
from scr_design.spatial import (
    load_points_csv,
    load_study_area,
    make_candidate_traps,
    make_state_space,
)
from scr_design.types import StateSpace, TrapArray
from scr_design.utils import Stopwatch, provenance


def build_inputs(config: RunConfig) -> Tuple[StateSpace, TrapArray]:
    """Resolve the state-space and trap array described by config.spatial.

    Point files take precedence; otherwise both are derived from the
    study-area polygon (all candidate grid points become traps). A
    state-space file's pixel area is spatial.pixel_area, falling back to
    state_space_spacing squared.
    """
    sp = config.spatial
    study_area = None
    if sp.study_area_file is not None:
        study_area = load_study_area(sp.study_area_file)

    if sp.state_space_file is not None:
        pixel_area = sp.pixel_area if sp.pixel_area is not None else sp.state_space_spacing ** 2
        state_space = StateSpace(load_points_csv(sp.state_space_file), pixel_area=pixel_area)
    elif study_area is not None:
        state_space = make_state_space(study_area, sp.buffer, sp.state_space_spacing)
    else:
        raise ConfigurationError(
            "spatial.state_space_file or spatial.study_area_file is required"
        )

    if sp.trap_file is not None:
        traps = TrapArray(load_points_csv(sp.trap_file))
    elif study_area is not None:
        warnings.warn(
            "spatial.trap_file not set; evaluating every candidate trap location",
            UserWarning,
            stacklevel=2,
        )
        traps = make_candidate_traps(study_area, sp.trap_spacing)
    else:
        raise ConfigurationError(
            "spatial.trap_file or spatial.study_area_file is required"
        )
    return state_space, traps


def _overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    sim = {k: v for k, v in (('nsim', args.nsim), ('seed', args.seed),
                             ('n_workers', args.workers)) if v is not None}
    spatial = {k: v for k, v in (('state_space_file', args.state_space),
                                 ('trap_file', args.traps)) if v is not None}
    if sim:
        overrides['simulation'] = sim
    if spatial:
        overrides['spatial'] = spatial
    if args.out is not None:
        overrides['output'] = {'results_file': args.out}
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="scr-design-sim",
        description="Evaluate an SCR trap design by Monte Carlo simulation and refitting.",
        epilog="Example: scr-design-sim configs/default.yaml --traps design.csv",
    )
    parser.add_argument("config", help="Base configuration YAML")
    parser.add_argument("--scenario", default=None,
                        help="Scenario YAML merged over the base config")
    parser.add_argument("--state-space", default=None,
                        help="CSV of state-space pixel centres (x,y)")
    parser.add_argument("--traps", default=None,
                        help="CSV of trap locations (x,y)")
    parser.add_argument("--nsim", type=int, default=None,
                        help="Accepted replicates required")
    parser.add_argument("--seed", type=int, default=None,
                        help="Base seed")
    parser.add_argument("--workers", type=int, default=None,
                        help="Thread-pool workers for trial evaluation")
    parser.add_argument("--out", default=None,
                        help="Results CSV path (default: from config)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Load config and inputs, then exit")
    parser.add_argument("--quiet", action="store_true",
                        help="Suppress progress output")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config, args.scenario, _overrides(args))
        state_space, traps = build_inputs(config)
        config.parameters().validate(state_space)
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    params = config.parameters()
    if not args.quiet:
        print("=" * 60)
        print("SCR design evaluation")
        print("=" * 60)
        print(f"  State-space pixels: {len(state_space)}")
        print(f"  Traps:              {len(traps)}")
        print(f"  Truth:              N={params.N} p0={params.p0} "
              f"sigma={params.sigma} K={params.K}")
        print(f"  Replicates:         {params.nsim} (seed {config.simulation.seed})")
    if args.dry_run:
        return 0

    def progress(accepted: int, nsim: int, retries: int) -> None:
        print(f"\r  replicate {accepted}/{nsim}  retries {retries:<6}",
              end="\n" if accepted == nsim else "", flush=True)

    try:
        with Stopwatch() as sw:
            table = simulate_from_config(
                config, state_space, traps,
                progress_callback=None if args.quiet else progress,
            )
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except (SearchExhaustedError, FitError) as e:
        print(f"\nRun failed: {e}", file=sys.stderr)
        return 1

    extra = provenance(config)
    extra["elapsed_s"] = round(sw.elapsed, 3)
    out = save_results(table, config.output.results_file,
                       write_metadata=config.output.write_metadata,
                       extra_metadata=extra)

    if not args.quiet:
        print(f"  Finished in {sw.elapsed:.1f}s")
        print(format_summary(table))
        print(f"Results written to {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
