#!/usr/bin/env python3
# src/cases_from_deaths/runner.py: concise runner
#
#   PYTHONPATH=src python -m cases_from_deaths.runner simulate --deaths 2020-03-01,2020-03-03 --R 2 --cfr 0.02
#   PYTHONPATH=src python -m cases_from_deaths.runner grid --deaths 2020-03-01 --R-values 1.5,2,3 --cfr-values 0.01,0.02

import argparse
import logging
import re
import time
from typing import List, Optional

from .simulate.batch_processing import run_parameter_grid
from .simulate.simulate_cases import CaseSimulator, make_config
from .summarise.summary_stats import summarise_at, summarise_draws, summarise_ensemble


# Parser for lists like 1,2,3 or "2020-03-01 2020-03-04"
def parse_list(s: Optional[str]) -> List[str]:
    if not s:
        return []
    return [x for x in re.split(r"[,\s;]+", s.strip()) if x]


def parse_float_list(s: Optional[str]) -> List[float]:
    return [float(x) for x in parse_list(s)]


def add_simulation_args(p):
    p.add_argument("--deaths", required=True, metavar="DATES",
                   help="Death dates, ISO format, comma/space separated; repeat a date for several deaths")
    p.add_argument("--n-sim", dest="n_sim", type=int, default=100, metavar="N",
                   help="Outer repetitions (default: 100, minimum 10)")
    p.add_argument("--duration", type=int, default=1, metavar="DAYS",
                   help="Days projected beyond the last death (default: 1)")
    p.add_argument("--inner-n-sim", dest="inner_n_sim", type=int, default=10, metavar="N",
                   help="Branching process realizations per death and repetition (default: 10)")
    p.add_argument("--delay", choices=("lognormal", "gamma"), default="lognormal",
                   help="Onset-to-death delay distribution (default: lognormal)")
    p.add_argument("--seed", type=int, default=None, metavar="SEED",
                   help="RNG seed for reproducibility")
    p.add_argument("--n-jobs", dest="n_jobs", type=int, default=1, metavar="JOBS",
                   help="Parallel workers (default: 1)")
    p.add_argument("--out", default=None, metavar="PATH",
                   help="Output CSV path")


def main(argv=None):
    p = argparse.ArgumentParser(description="Estimate current cases from recently reported deaths")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", help="Simulate cases for one (R, cfr) pair")
    add_simulation_args(sim_p)
    sim_p.add_argument("--R", dest="R", type=float, default=2.0, metavar="R",
                       help="Reproduction number (default: 2.0)")
    sim_p.add_argument("--cfr", type=float, default=0.02, metavar="CFR",
                       help="Case fatality ratio in (0, 1] (default: 0.02)")
    sim_p.add_argument("--cumulative", action="store_true",
                       help="Write cumulative instead of daily cases to --out")

    # ---------- grid ----------
    grid_p = sub.add_parser("grid", help="Simulate cases over a grid of (R, cfr) pairs")
    add_simulation_args(grid_p)
    grid_p.add_argument("--R-values", dest="R_values", type=str, default="1.5,2,3", metavar="LIST",
                        help="Reproduction numbers (default: '1.5,2,3')")
    grid_p.add_argument("--cfr-values", dest="cfr_values", type=str, default="0.01,0.02,0.03", metavar="LIST",
                        help="Case fatality ratios (default: '0.01,0.02,0.03')")

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    t0 = time.perf_counter()

    deaths = parse_list(args.deaths)
    simulator = CaseSimulator(make_config(delay=args.delay, inner_n_sim=args.inner_n_sim))

    if args.cmd == "simulate":
        output = simulator.simulate(
            deaths,
            R=args.R,
            cfr=args.cfr,
            n_sim=args.n_sim,
            duration=args.duration,
            seed=args.seed,
            n_jobs=args.n_jobs,
        )
        at_end = summarise_at(output.projections, output.end_date)
        print(f"Cumulative cases by {output.end_date}:")
        print(at_end.drop(columns="date").round(1).to_string(index=False))
        print(summarise_draws(output).round(2).to_string())
        if args.out:
            summarise_ensemble(output.projections, cumulative=args.cumulative).to_csv(args.out, index=False)
            print("Summary ->", args.out)

    elif args.cmd == "grid":
        table, csv_path = run_parameter_grid(
            deaths,
            R_values=parse_float_list(args.R_values),
            cfr_values=parse_float_list(args.cfr_values),
            simulator=simulator,
            n_sim=args.n_sim,
            duration=args.duration,
            seed=args.seed,
            n_jobs=args.n_jobs,
            out_path=args.out,
            use_tempfile=args.out is None,
        )
        last = table.groupby(["R", "cfr"], sort=False).tail(1)
        print(last.drop(columns="date").round(1).to_string(index=False))
        print("Grid ->", csv_path)

    print(f"Done in {time.perf_counter() - t0:.2f}s")


if __name__ == "__main__":
    main()
