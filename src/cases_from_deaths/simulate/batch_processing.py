# src/cases_from_deaths/simulate/batch_processing.py
# Run the simulator over a grid of (R, cfr) values and collect the summaries
# of cumulative cases into one long table, optionally written to a .csv or a
# Python tempfile.

import itertools
import logging
import tempfile
from pathlib import Path

import pandas as pd
from joblib import Parallel, delayed
from numpy.random import SeedSequence

from ..summarise.summary_stats import DEFAULT_QUANTILES, summarise_ensemble
from .simulate_cases import CaseSimulator

logger = logging.getLogger(__name__)


def default_csv_path():
    """Define the filepath of a tempfile csv"""
    tf = tempfile.NamedTemporaryFile(prefix="simulated_cases_", suffix=".csv")
    p = Path(tf.name)
    tf.close()
    return p


def _run_pair(simulator, death_dates, R, cfr, n_sim, duration, seed_seq, quantiles):
    output = simulator.simulate(death_dates, R=R, cfr=cfr, n_sim=n_sim, duration=duration, seed=seed_seq)
    table = summarise_ensemble(output.projections, quantiles=quantiles, cumulative=True)
    # Effective values, after any clamping
    table.insert(0, "cfr", output.cfr)
    table.insert(0, "R", output.R)
    return table


def run_parameter_grid(
    death_dates,
    R_values,
    cfr_values,
    simulator=None,
    n_sim=100,
    duration=1,
    seed=None,
    n_jobs=1,
    quantiles=DEFAULT_QUANTILES,
    out_path=None,
    use_tempfile=False,
):
    """Simulate every (R, cfr) pair and stack the cumulative-case summaries.

    Each pair gets its own child SeedSequence, so a given seed reproduces the
    same table whatever ``n_jobs`` is. Pairs run in parallel; repetitions
    within a pair run serially.

    Returns:
        (pandas.DataFrame, Path or None): the table with columns
        R, cfr, date, mean, median, q..., and the csv path if one was written
    """
    death_dates = list(death_dates)
    pairs = list(itertools.product([float(r) for r in R_values], [float(c) for c in cfr_values]))
    if not pairs:
        raise ValueError("R_values and cfr_values must each hold at least one value")
    if simulator is None:
        simulator = CaseSimulator()

    logger.info("Running %d parameter combination(s) with n_jobs=%s", len(pairs), n_jobs)
    children = SeedSequence(seed).spawn(len(pairs))
    tables = Parallel(n_jobs=n_jobs)(
        delayed(_run_pair)(simulator, death_dates, R, cfr, n_sim, duration, child, quantiles)
        for (R, cfr), child in zip(pairs, children)
    )
    table = pd.concat(tables, ignore_index=True)

    csv_path = None
    if out_path is not None or use_tempfile:
        csv_path = Path(out_path) if out_path is not None else default_csv_path()
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(csv_path, index=False)
        logger.info("CSV written to: %s", csv_path)

    return table, csv_path
