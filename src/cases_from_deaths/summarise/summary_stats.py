# src/cases_from_deaths/summarise/summary_stats.py
# Per-date statistics across the realizations of a projection ensemble.

from typing import Sequence

import numpy as np
import pandas as pd

from ..simulate.projections import ProjectionEnsemble, as_day

DEFAULT_QUANTILES = (0.025, 0.25, 0.5, 0.75, 0.975)


def quantile_label(q: float) -> str:
    """0.025 -> 'q2.5', 0.5 -> 'q50'."""
    return "q" + f"{100.0 * q:.6g}"


def _summary_frame(arr: np.ndarray, dates, quantiles: Sequence[float]) -> pd.DataFrame:
    qs = [float(q) for q in quantiles]
    if any(not (0.0 <= q <= 1.0) for q in qs):
        raise ValueError(f"quantiles must lie in [0, 1], got {list(quantiles)}")
    arr = np.asarray(arr, dtype=float)
    out = pd.DataFrame({
        "date": pd.DatetimeIndex(dates),
        "mean": arr.mean(axis=1),
        "median": np.median(arr, axis=1),
    })
    if qs:
        qvals = np.quantile(arr, qs, axis=1)
        for q, vals in zip(qs, qvals):
            out[quantile_label(q)] = vals
    return out


def summarise_ensemble(ensemble: ProjectionEnsemble, quantiles=DEFAULT_QUANTILES, cumulative=False) -> pd.DataFrame:
    """
    One row per date of ``ensemble`` with the mean, median and requested
    quantiles across realizations.

    Parameters
    ----------
    ensemble :
        ProjectionEnsemble of daily new cases.
    quantiles :
        Probabilities in [0, 1]; each becomes a column named by quantile_label.
    cumulative :
        If True, summarise cumulative cases instead of daily incidence.

    Returns
    -------
    pandas.DataFrame with columns date, mean, median, q...
    """
    if cumulative:
        ensemble = ensemble.cumulate()
    return _summary_frame(ensemble.counts, ensemble.dates, quantiles)


def summarise_at(ensemble: ProjectionEnsemble, date, quantiles=DEFAULT_QUANTILES, cumulative=True) -> pd.DataFrame:
    """Single-row summary on ``date``; by default of cumulative cases up to it."""
    day = as_day(date)
    if day < ensemble.start or day > ensemble.end:
        raise ValueError(f"{day} lies outside the ensemble axis [{ensemble.start}, {ensemble.end}]")
    if cumulative:
        ensemble = ensemble.cumulate()
    row = ensemble.values_at(day).reshape(1, -1)
    return _summary_frame(row, [day], quantiles)


def summarise_draws(output) -> pd.DataFrame:
    """Mean, median, min and max of the simulated delays and case counts."""
    draws = pd.DataFrame({
        "onset_to_death": np.asarray(output.delays),
        "cases_per_death": np.asarray(output.case_counts),
    })
    return draws.agg(["mean", "median", "min", "max"]).T
