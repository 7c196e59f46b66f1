# src/cases_from_deaths/simulate/infer_cases.py
# Number of primary cases implied by one death, given the case fatality ratio.
# Each case dies with probability cfr, so the number of cases up to and
# including the fatal one is the number of Bernoulli trials to the first
# success: 1 + Geometric(failures), which is numpy's geometric directly.

import numpy as np
from numpy.random import default_rng


def check_cfr(cfr):
    """Raise unless 0 < cfr <= 1."""
    cfr = float(cfr)
    if not (0.0 < cfr <= 1.0):
        raise ValueError(f"cfr must lie in (0, 1], got {cfr}")
    return cfr


def cases_for_death(cfr, rng=None):
    """Draw the number of cases behind a single death (always >= 1)."""
    cfr = check_cfr(cfr)
    if rng is None:
        rng = default_rng()
    return int(rng.geometric(cfr))


def cases_for_deaths(cfr, n, rng=None):
    """Draw case counts for ``n`` deaths, independently.

    Returns:
        np.ndarray shape (n,), integers >= 1
    """
    cfr = check_cfr(cfr)
    if n < 0:
        raise ValueError("n must be >= 0")
    if rng is None:
        rng = default_rng()
    return rng.geometric(cfr, size=int(n)).astype(int)
