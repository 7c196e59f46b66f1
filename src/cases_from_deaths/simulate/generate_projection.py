# src/cases_from_deaths/simulate/generate_projection.py
# Forward projection of a batch of cases with a discrete-time Poisson
# branching process: on day t every realization draws
#     I_t ~ Poisson(R * sum_{s=1..t} I_{t-s} * w_s)
# where w_s is the serial interval mass at lag s.
# Rates above POISSON_LAM_MAX use a rounded normal approximation, and daily
# incidence saturates at MAX_DAILY_CASES so int64 counts cannot overflow.

import logging

import numpy as np
from numpy.random import default_rng

from .projections import ProjectionEnsemble, as_day

logger = logging.getLogger(__name__)

POISSON_LAM_MAX = 1e7
MAX_DAILY_CASES = 10**12


def project(seed_date, seed_count, R, serial_interval, n_sim, horizon_days, rng=None):
    """Simulate ``n_sim`` independent trajectories from one incidence seed.

    Args:
        seed_date: day on which the ``seed_count`` primary cases have onset
        seed_count (int): number of primary cases, >= 1
        R (float): reproduction number, used as given
        serial_interval (DiscreteDelay): serial interval distribution
        n_sim (int): number of realizations
        horizon_days (int): days simulated after ``seed_date``, >= 0
        rng (np.random.Generator): random source
    Returns:
        ProjectionEnsemble on [seed_date, seed_date + horizon_days]
    Raises:
        ValueError
    """
    if horizon_days < 0:
        raise ValueError(f"horizon_days must be >= 0, got {horizon_days}")
    if n_sim < 1:
        raise ValueError(f"n_sim must be >= 1, got {n_sim}")
    if seed_count < 1:
        raise ValueError(f"seed_count must be >= 1, got {seed_count}")
    if rng is None:
        rng = default_rng()

    horizon_days = int(horizon_days)
    R = float(R)

    # w[s] = pmf at lag s; w[0] is never used
    w = serial_interval.weights(horizon_days)

    counts = np.zeros((horizon_days + 1, int(n_sim)), dtype=np.int64)
    counts[0, :] = int(seed_count)

    for t in range(1, horizon_days + 1):
        # w_t .. w_1 lines up with days 0 .. t-1
        kernel = w[t:0:-1]
        lam = np.minimum(R * (kernel @ counts[:t]), MAX_DAILY_CASES)
        counts[t] = _draw_poisson(lam, rng)

    saturated = int(np.count_nonzero(counts == MAX_DAILY_CASES))
    if saturated:
        logger.debug("Daily incidence reached the %d ceiling on %d day-realization(s)",
                     MAX_DAILY_CASES, saturated)
    logger.debug(
        "Projected %d case(s) from %s over %d day(s), %d realization(s)",
        seed_count, as_day(seed_date), horizon_days, n_sim,
    )
    return ProjectionEnsemble(start=seed_date, counts=counts)


def _draw_poisson(lam, rng):
    """Poisson draws, switching to a rounded normal for rates above POISSON_LAM_MAX."""
    big = lam > POISSON_LAM_MAX
    out = rng.poisson(np.where(big, 0.0, lam))
    if big.any():
        approx = rng.normal(lam[big], np.sqrt(lam[big]))
        out[big] = np.clip(np.rint(approx), 0, MAX_DAILY_CASES).astype(np.int64)
    return out
